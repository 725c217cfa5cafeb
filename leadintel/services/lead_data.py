"""
Read-only data access for the engine.

Rows come back as plain dicts (each model's to_dict()). Independent fetches
run in parallel, each in its own session; a failed fetch is logged and
yields an empty list so only the figures it feeds degrade.
"""
import concurrent.futures
import logging

from sqlalchemy import select

from leadintel.database import get_session
from leadintel.models.activity import Activity
from leadintel.models.channel_session import ChannelSession
from leadintel.models.dashboard_user import DashboardUser
from leadintel.models.lead import Lead
from leadintel.models.message import Message
from leadintel.models.stage_change import StageChange

logger = logging.getLogger('services.lead_data')

FETCH_WORKERS = 4
DASHBOARD_STAGE_CHANGES = 50


def _fetch_rows(label, stmt):
    """Run one SELECT in its own session, returning dict rows ([] on error)."""
    session = None
    try:
        session = get_session()
        return [row.to_dict() for row in session.scalars(stmt)]
    except Exception:
        logger.error("Failed to fetch %s", label, exc_info=True)
        return []
    finally:
        if session is not None:
            session.close()


def _fetch_parallel(queries):
    """Run {label: stmt} concurrently; returns {label: rows}."""
    results = {}
    with concurrent.futures.ThreadPoolExecutor(max_workers=FETCH_WORKERS) as executor:
        futures = {executor.submit(_fetch_rows, label, stmt): label for label, stmt in queries.items()}
        for future in concurrent.futures.as_completed(futures):
            results[futures[future]] = future.result()
    return results


# ── Single lookups (errors propagate) ────────────────────────────────────────

def get_lead(lead_id):
    """Lead row as a dict, or None if it does not exist."""
    session = get_session()
    try:
        lead = session.get(Lead, lead_id)
        return lead.to_dict() if lead else None
    finally:
        session.close()


def get_user(user_id):
    """Dashboard user as {id, name, email}, or None."""
    session = get_session()
    try:
        user = session.get(DashboardUser, user_id)
        return user.to_dict() if user else None
    finally:
        session.close()


# ── Batched fetches ──────────────────────────────────────────────────────────

def fetch_lead_inputs(lead_id):
    """Messages, sessions, activities and stage history for one lead, in parallel."""
    return _fetch_parallel({
        'messages': select(Message).where(Message.lead_id == lead_id)
                                   .order_by(Message.created_at, Message.id),
        'sessions': select(ChannelSession).where(ChannelSession.lead_id == lead_id)
                                          .order_by(ChannelSession.created_at),
        'activities': select(Activity).where(Activity.lead_id == lead_id)
                                      .order_by(Activity.created_at, Activity.id),
        'stage_changes': select(StageChange).where(StageChange.lead_id == lead_id)
                                            .order_by(StageChange.changed_at, StageChange.id),
    })


def fetch_dashboard_inputs():
    """Every collection the metrics snapshot needs, in parallel."""
    return _fetch_parallel({
        'leads': select(Lead).order_by(Lead.lead_score.desc()),
        'sessions': select(ChannelSession),
        'messages': select(Message).order_by(Message.created_at, Message.id),
        'stage_changes': select(StageChange).order_by(StageChange.changed_at.desc())
                                            .limit(DASHBOARD_STAGE_CHANGES),
    })
