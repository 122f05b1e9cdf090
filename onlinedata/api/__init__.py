"""
API module for the online network data service.

Provides REST endpoints for:
- Online aircraft, controllers and servers
- Download status and operator messages
- Simulator traffic updates
"""

from onlinedata.api.online import online_bp
from onlinedata.api.simulator import simulator_bp

__all__ = ['online_bp', 'simulator_bp']
