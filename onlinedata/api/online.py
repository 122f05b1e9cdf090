"""
Online network API endpoints.

Provides endpoints for:
- GET /api/online/aircraft - Online aircraft in a rectangle (map view)
- GET /api/online/clients/<id> - Single online client
- GET /api/online/atc - Online controllers
- GET /api/online/servers - Network and voice servers
- GET /api/online/status - Download state and statistics
- GET /api/online/messages - Messages and errors for the operator
- POST /api/online/messages/ack - Acknowledge errors and retry now
- POST /api/online/options - Change network options
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request

from onlinedata.config import NetworkConfig, OnlineFormat, OnlineNetwork
from onlinedata.geo import Rect

logger = logging.getLogger(__name__)

online_bp = Blueprint('online', __name__, url_prefix='/api/online')


def _controller():
    return current_app.config['ONLINE_CONTROLLER']


def _parse_rect(args) -> Rect:
    """
    Read west, south, east, north from query parameters.

    Raises:
        ValueError if a value is missing or out of range
    """
    try:
        rect = Rect(
            west=float(args['west']),
            south=float(args['south']),
            east=float(args['east']),
            north=float(args['north']),
        )
    except KeyError as e:
        raise ValueError(f'Missing parameter {e.args[0]}')

    if not rect.is_valid():
        raise ValueError('Rectangle out of range')
    return rect


@online_bp.route('/aircraft', methods=['GET'])
def list_aircraft():
    """
    List online aircraft inside a rectangle.

    Query parameters:
    - west, south, east, north: rectangle in degrees (west > east crosses the anti-meridian)
    - lazy: boolean, only return cached results (default false)
    - detail: map detail level, a change reloads from the database
    """
    start_time = time.perf_counter()

    try:
        rect = _parse_rect(request.args)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    lazy = request.args.get('lazy', 'false').lower() == 'true'
    detail = request.args.get('detail')

    aircraft = _controller().get_aircraft(rect, detail, lazy)

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'aircraft': [a.to_dict() for a in aircraft],
        'count': len(aircraft),
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })


@online_bp.route('/clients/<int:client_id>', methods=['GET'])
def get_client(client_id: int):
    """Get a single online client by id."""
    client = _controller().get_client_aircraft_by_id(client_id)
    if client is None:
        return jsonify({'error': 'Client not found'}), 404
    return jsonify(client.to_dict())


@online_bp.route('/atc', methods=['GET'])
def list_atc():
    atcs = _controller().manager.atc_records()
    return jsonify({'atc': [a.to_dict() for a in atcs], 'count': len(atcs)})


@online_bp.route('/servers', methods=['GET'])
def list_servers():
    servers = _controller().manager.server_records()
    return jsonify({'servers': [s.to_dict() for s in servers], 'count': len(servers)})


@online_bp.route('/status', methods=['GET'])
def get_status():
    """
    Get download state and data freshness.

    Returns network, current download stage, last cycle completion,
    client count and aircraft cache statistics.
    """
    controller = _controller()
    timestamps = controller.timestamps

    return jsonify({
        'network': controller.get_network(),
        'active': controller.is_network_active(),
        'state': controller.state.value,
        'has_data': controller.has_data(),
        'clients': controller.get_num_clients(),
        'last_update': timestamps.last_update.isoformat(),
        'last_server_download': timestamps.last_server_download.isoformat(),
        'feed_update': _isoformat(controller.manager.get_last_update_time_from_whazzup()),
        'simulator_connected': controller.simulator.is_connected,
        'cache': controller.cache.stats,
        'timestamp': datetime.now(timezone.utc).isoformat(),
    })


def _isoformat(value):
    return value.isoformat() if value else None


@online_bp.route('/messages', methods=['GET'])
def list_messages():
    """Messages from status files and download errors, oldest first."""
    notifications = current_app.config['ONLINE_NOTIFICATIONS']
    return jsonify({'messages': list(notifications)})


@online_bp.route('/messages/ack', methods=['POST'])
def acknowledge_messages():
    """Acknowledge download errors. A failed download is retried right away."""
    controller = _controller()
    controller.loop.call_soon_threadsafe(controller.acknowledge_error)
    return jsonify({'acknowledged': True}), 202


@online_bp.route('/options', methods=['POST'])
def change_options():
    """
    Change network options.

    Body: {"network": "vatsim", "status_url": ..., "whazzup_url": ...,
           "format": "ivao", "reload_seconds": 180, "reload_seconds_config": -1}

    The reset runs on the download loop. Returns 202 with the new options.
    """
    data = request.get_json(silent=True) or {}

    try:
        network = OnlineNetwork(str(data.get('network', '')).lower())
        online_format = OnlineFormat(data['format'].lower()) if data.get('format') else None
        options = NetworkConfig.for_network(
            network,
            status_url=data.get('status_url'),
            whazzup_url=data.get('whazzup_url'),
            online_format=online_format,
            reload_seconds=int(data.get('reload_seconds', 180)),
            reload_seconds_config=int(data.get('reload_seconds_config', -1)),
        )
    except (ValueError, TypeError, AttributeError) as e:
        return jsonify({'error': f'Invalid options: {e}'}), 400

    controller = _controller()
    controller.loop.call_soon_threadsafe(controller.options_changed, options)

    logger.info(f'Options change requested: {network.value}')

    return jsonify({
        'network': options.network.value,
        'status_url': options.status_url,
        'whazzup_url': options.whazzup_url,
        'format': options.online_format.value,
    }), 202
