"""
Dashboard routes — health checks, circuit breaker state, metrics snapshot.
"""
import logging
from flask import Blueprint, jsonify, request

from leadintel.config import HOT_LEAD_THRESHOLD, WARM_LEAD_FLOOR
from leadintel.engine.metrics import build_metrics_snapshot, empty_metrics_snapshot
from leadintel.services.circuit_breaker import get_all_breakers
from leadintel.services.lead_data import fetch_dashboard_inputs

logger = logging.getLogger('routes.dashboard')

bp = Blueprint('dashboard', __name__)


@bp.route('/health')
def health_check():
    """Health check endpoint."""
    return jsonify({"status": "healthy"}), 200


@bp.route('/api/health')
def api_health():
    """Circuit breaker state for every generation provider."""
    services = {name: cb.get_health() for name, cb in get_all_breakers().items()}
    return jsonify({'services': services})


@bp.route('/api/health/<service>/reset', methods=['POST'])
def reset_circuit(service):
    cb = get_all_breakers().get(service)
    if cb is None:
        return jsonify({'error': f"Unknown service '{service}'"}), 404
    cb.reset()
    return jsonify({'ok': True, 'service': service, 'state': cb.state})


@bp.route('/api/metrics')
def metrics():
    """Dashboard metrics snapshot. ?hotLeadThreshold= overrides the hot cutoff."""
    threshold = request.args.get('hotLeadThreshold', default=HOT_LEAD_THRESHOLD, type=int)

    inputs = fetch_dashboard_inputs()
    try:
        snapshot = build_metrics_snapshot(
            inputs['leads'],
            inputs['sessions'],
            inputs['messages'],
            inputs['stage_changes'],
            hot_lead_threshold=threshold,
            warm_floor=WARM_LEAD_FLOOR,
        )
    except Exception:
        logger.error("Error building metrics snapshot", exc_info=True)
        snapshot = empty_metrics_snapshot(hot_lead_threshold=threshold, warm_floor=WARM_LEAD_FLOOR)
    return jsonify(snapshot)
