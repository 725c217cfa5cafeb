"""
Per-lead routes — score breakdown, reconciled booking, narrative summary.
"""
import logging
from flask import Blueprint, jsonify

from leadintel.engine.base import CanonicalBooking, ScoreBreakdown
from leadintel.engine.facts import resolve_booking
from leadintel.engine.scoring import calculate_lead_score
from leadintel.engine.summary import resolve_summary, unavailable_summary
from leadintel.services.generation import generate_summary, provider_name
from leadintel.services.lead_data import fetch_lead_inputs, get_lead, get_user

logger = logging.getLogger('routes.leads')

bp = Blueprint('leads', __name__)


def _load_lead(lead_id, degraded):
    """
    (lead, response): exactly one of them is None. A failed lookup answers
    with ``degraded`` (the empty result) instead of an error status.
    """
    try:
        lead = get_lead(lead_id)
    except Exception:
        logger.error("Error fetching lead %s", lead_id, exc_info=True)
        return None, jsonify(degraded)
    if lead is None:
        return None, (jsonify({'error': 'Lead not found'}), 404)
    return lead, None


@bp.route('/api/leads/<lead_id>/score')
def lead_score(lead_id):
    """Weighted score breakdown + health band."""
    lead, response = _load_lead(lead_id, ScoreBreakdown().to_dict())
    if response is not None:
        return response
    inputs = fetch_lead_inputs(lead_id)
    breakdown = calculate_lead_score(lead, inputs['messages'], inputs['sessions'])
    return jsonify(breakdown.to_dict())


@bp.route('/api/leads/<lead_id>/booking')
def lead_booking(lead_id):
    """Reconciled booking date/time."""
    lead, response = _load_lead(lead_id, CanonicalBooking().to_dict())
    if response is not None:
        return response
    inputs = fetch_lead_inputs(lead_id)
    return jsonify(resolve_booking(lead, inputs['sessions']).to_dict())


@bp.route('/api/leads/<lead_id>/summary')
def lead_summary(lead_id):
    """Narrative summary + attribution. Degrades to a placeholder, never a 5xx."""
    try:
        lead = get_lead(lead_id)
    except Exception as e:
        logger.error("Error fetching lead %s for summary", lead_id, exc_info=True)
        return jsonify(unavailable_summary(e))
    if lead is None:
        return jsonify({'error': 'Lead not found'}), 404

    try:
        inputs = fetch_lead_inputs(lead_id)
        result = resolve_summary(
            lead,
            messages=inputs['messages'],
            activities=inputs['activities'],
            stage_changes=inputs['stage_changes'],
            sessions=inputs['sessions'],
            user_lookup=get_user,
            generate=generate_summary if provider_name() else None,
        )
    except Exception as e:
        logger.error("Error building summary for lead %s", lead_id, exc_info=True)
        return jsonify(unavailable_summary(e))
    return jsonify(result)
