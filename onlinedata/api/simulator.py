"""
Simulator traffic endpoint.

The simulator connection pushes its aircraft here so online clients
flying the same aircraft are not shown twice:

PUT /api/simulator
    {"connected": true, "debug": false,
     "user": {"registration": "N12345", "latitude": 47.4, "longitude": -122.3},
     "ai": [{"registration": "D-AIAB", "latitude": 50.0, "longitude": 8.5}]}
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from onlinedata.simulator import SimAircraft

logger = logging.getLogger(__name__)

simulator_bp = Blueprint('simulator', __name__, url_prefix='/api/simulator')


@simulator_bp.route('', methods=['PUT'])
def update_simulator():
    data = request.get_json(silent=True)
    if data is None:
        return jsonify({'error': 'JSON body required'}), 400

    try:
        user = SimAircraft.from_dict(data['user']) if data.get('user') else None
        ai = [SimAircraft.from_dict(entry) for entry in data.get('ai') or []]
    except (KeyError, TypeError, ValueError) as e:
        return jsonify({'error': f'Invalid aircraft: {e}'}), 400

    state = current_app.config['ONLINE_CONTROLLER'].simulator
    state.update(
        user=user,
        ai=ai,
        connected=bool(data.get('connected', False)),
        debug=bool(data.get('debug', False)),
    )

    logger.debug(f'Simulator traffic updated: user={user.registration if user else None}, {len(ai)} AI')
    return jsonify({'user': user is not None, 'ai': len(ai)})


@simulator_bp.route('', methods=['DELETE'])
def clear_simulator():
    current_app.config['ONLINE_CONTROLLER'].simulator.clear()
    return jsonify({'cleared': True})
