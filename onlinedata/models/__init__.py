"""
Database models for the online network data.

The tables only ever hold the latest feed. Each fresh feed replaces
their contents completely:
1. client - pilots, queried by bounding box
2. atc - controllers with coverage radius
3. server - network and voice servers
"""

from onlinedata.models.base import (
    Base,
    engine,
    SessionLocal,
    init_db,
    get_session,
    make_engine,
    make_session_factory,
)
from onlinedata.models.client import Client
from onlinedata.models.atc import Atc
from onlinedata.models.server import Server

__all__ = [
    'Base',
    'engine',
    'SessionLocal',
    'init_db',
    'get_session',
    'make_engine',
    'make_session_factory',
    'Client',
    'Atc',
    'Server',
]
