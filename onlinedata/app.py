"""
Online network data Flask application.

Main entry point for the web application. Initializes:
- Database schema
- Download loop and controller
- API routes

Usage:
    python -m onlinedata.app

Or with gunicorn:
    gunicorn 'onlinedata.app:create_app()'
"""

import atexit
import logging
import os
from collections import deque
from typing import Optional

from flask import Flask
from flask_cors import CORS

from onlinedata.api import online_bp, simulator_bp
from onlinedata.cache import AircraftQueryCache
from onlinedata.config import config
from onlinedata.eventloop import EventLoop
from onlinedata.ingestion import HttpDownloader, OnlineDataController
from onlinedata.models import SessionLocal
from onlinedata.store import OnlineDataManager

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger = logging.getLogger(__name__)

# Keep the last messages and errors for the front end
MAX_NOTIFICATIONS = 50


def build_controller(loop: EventLoop, manager: Optional[OnlineDataManager] = None) -> OnlineDataController:
    """Wire store, transport and cache into a controller using application config."""
    manager = manager or OnlineDataManager(SessionLocal)
    manager.set_atc_radius(config.atc_radii)

    cache = AircraftQueryCache(
        manager,
        inflation_factor=config.cache.inflation_factor,
        inflation_increment=config.cache.inflation_increment,
        max_rows=config.cache.max_rows,
    )
    downloader = HttpDownloader(loop)

    return OnlineDataController(manager, downloader, loop, config.network, cache=cache)


def create_app(start_processing: bool = True, controller: Optional[OnlineDataController] = None) -> Flask:
    """
    Application factory for Flask.

    Args:
        start_processing: Whether to start the download loop.
                          Set to False for testing.
        controller: Use this controller instead of building one from config.

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__)

    app.config['SECRET_KEY'] = config.secret_key

    # Enable CORS for API endpoints
    CORS(app, resources={r'/api/*': {'origins': '*'}})

    if controller is None:
        logger.info('Initializing database...')
        controller = build_controller(EventLoop())

    notifications = deque(maxlen=MAX_NOTIFICATIONS)

    def on_message(text: str):
        notifications.append({'type': 'message', 'text': text})

    def on_error(text: str):
        logger.error(text.replace('\n\n', ' '))
        notifications.append({'type': 'error', 'text': text})

    controller.message.connect(on_message)
    controller.error.connect(on_error)

    app.config['ONLINE_CONTROLLER'] = controller
    app.config['ONLINE_NOTIFICATIONS'] = notifications

    app.register_blueprint(online_bp)
    app.register_blueprint(simulator_bp)

    if start_processing:
        loop = controller.loop
        loop.call_soon(controller.start_processing)
        loop.start_background()

        def shutdown():
            loop.stop()
            controller.close()

        atexit.register(shutdown)

        if controller.is_network_active():
            logger.info(f'Online data processing started for {controller.get_network()}')
        else:
            logger.warning('No online network configured. Set ONLINE_NETWORK in .env or POST /api/online/options')

    @app.route('/health')
    def health():
        """Simple health check endpoint."""
        return {'status': 'ok'}

    @app.errorhandler(404)
    def not_found(e):
        return {'error': 'Not found'}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return {'error': 'Internal server error'}, 500

    return app


def run_development_server():
    """Run the development server."""
    app = create_app()

    port = int(os.environ.get('PORT', 5000))

    logger.info(f'Starting online data service on http://localhost:{port}')

    app.run(
        host='0.0.0.0',
        port=port,
        debug=config.debug,
        use_reloader=False,  # Disable reloader to prevent duplicate download loops
    )


if __name__ == '__main__':
    run_development_server()
