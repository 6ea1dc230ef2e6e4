# routes/orchestrator.py
from flask import Blueprint, current_app, jsonify, request
import logging

from schemas.results import Err, ErrorKind

orchestrator_bp = Blueprint('orchestrator', __name__)
logger = logging.getLogger(__name__)


@orchestrator_bp.route('', methods=['POST'])
def orchestrate():
    """Single routed endpoint: {action, ...params} in, {data, error} out."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400

    params = dict(payload)
    action = params.pop('action', None)
    transport = current_app.extensions['content_transport']

    if not transport.supports(action):
        return jsonify({'error': f'Invalid Action: {action}'}), 400

    logger.info(f"[Orchestrator] Action: {action}")
    try:
        result = transport.call(action, params)
    except Exception as e:
        logger.error(f"Critical Orchestrator Error: {str(e)}", exc_info=True)
        return jsonify({'error': str(e)}), 500

    if isinstance(result, Err):
        status = 400 if result.kind == ErrorKind.VALIDATION else 200
        return jsonify({'data': None, 'error': {'message': result.message}}), status

    return jsonify({'data': result.value, 'error': None})
