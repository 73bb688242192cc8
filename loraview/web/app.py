# --- File: loraview/web/app.py ---
import logging
import time
from typing import Optional
from flask import Flask, jsonify, request

from ..core.engine import StateEngine
from ..core.models import ACTIVITY_KINDS

# Flask app setup. Read-only view of the engine plus the mobility toggle.
app = Flask(__name__)

logger = logging.getLogger(__name__)

# --- Engine handle passed from main ---
_engine: Optional[StateEngine] = None

def init_web(engine: StateEngine) -> Flask:
    """Binds the app to an engine instance and returns the app."""
    global _engine
    _engine = engine
    return app

def _require_engine() -> StateEngine:
    if _engine is None:
        raise RuntimeError("Web app used before init_web()")
    return _engine

# --- Flask Routes ---

@app.route('/api/state')
def api_state():
    """Everything the presentation layer needs in one consistent snapshot."""
    data = _require_engine().snapshot()
    data['server_time'] = time.time()
    return jsonify(data)

@app.route('/api/config')
def api_config():
    return jsonify(_require_engine().config().to_dict())

@app.route('/api/nodes')
def api_nodes():
    return jsonify([node.to_dict() for node in _require_engine().nodes()])

@app.route('/api/nodes/<node_id>')
def api_node(node_id):
    node = _require_engine().node_by_id(node_id)
    if node is None:
        return jsonify({'error': f"Unknown node '{node_id}'"}), 404
    return jsonify(node.to_dict())

@app.route('/api/reach-lines')
def api_reach_lines():
    return jsonify([line.to_dict() for line in _require_engine().reach_lines()])

@app.route('/api/node-state')
def api_node_state():
    """Live activity counters. Any value > 0 means the node is active for that kind."""
    engine = _require_engine()
    kind = request.args.get('kind')
    node_id = request.args.get('id')
    if node_id is not None and kind is not None:
        if kind not in ACTIVITY_KINDS:
            return jsonify({'error': f"Unknown kind '{kind}'"}), 400
        return jsonify({'id': node_id, 'kind': kind, 'value': engine.node_state_by_id(node_id, kind)})
    return jsonify(engine.node_state())

@app.route('/api/node-stats')
def api_node_stats():
    stats = _require_engine().node_stats()
    return jsonify({node_id: timeline.to_dict() for node_id, timeline in stats.items()})

@app.route('/api/events')
def api_events():
    return jsonify(_require_engine().events())

@app.route('/api/emu/pause', methods=['GET', 'POST'])
def api_emu_pause():
    engine = _require_engine()
    mobility = engine.mobility()
    if request.method == 'GET':
        if not mobility['available']:
            return jsonify('no mobility file active'), 404
        return jsonify(mobility['paused'])

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or not isinstance(payload.get('state'), bool):
        return jsonify({'error': "Expected JSON body {\"state\": <bool>}"}), 400
    if not mobility['available']:
        return jsonify('no mobility file active'), 404

    engine.set_mobility(available=True, paused=payload['state'])
    logger.info(f"Mobility pause requested: {payload['state']}")
    return '', 200


# Function to start the Flask app (called from main.py)
def start_web_app(engine: StateEngine, host: str, port: int):
    """Initializes and runs the Flask web application."""
    init_web(engine)
    logger.info(f"Attempting to start Flask web server on http://{host}:{port}")

    try:
        app.run(host=host, port=port, debug=False, use_reloader=False) # No reloader when run by main
        logger.info("Flask web server stopped.")
    except OSError as e:
        # Common error: Port already in use
        logger.error(f"Failed to start Flask web server on {host}:{port}. Error: {e}", exc_info=True)
        logger.error("Please check if another application is using this port or change the 'web_port' in config.yaml.")
    except Exception as e:
        logger.error(f"Flask web server encountered an unexpected error: {e}", exc_info=True)
