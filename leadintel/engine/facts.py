"""
Fact reconciliation — one canonical view of a lead's scattered context.

The unified context is a versionless JSON document written independently by
each channel agent, so the same fact can live under several paths. The
ordered chains below are the only place that document is read; everything
downstream consumes the CanonicalContext built here.

Channel priority everywhere: web → whatsapp → voice → social.
"""
from datetime import datetime, date, timezone
from typing import Dict, List, Any, Optional, Iterable

from leadintel.config import CHANNELS
from leadintel.engine.base import CanonicalBooking, CanonicalContext, KeyInfo
from leadintel.engine.clock import parse_timestamp


# Undated sessions lose to every dated one
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _clean(value: Any) -> Optional[str]:
    """Normalize a stored fact: empty strings and unknown shapes count as missing."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, (list, tuple)):
        joined = ', '.join(v.strip() for v in value if isinstance(v, str) and v.strip())
        return joined or None
    return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def unified_context(lead: Dict[str, Any]) -> Dict[str, Any]:
    return _as_dict((lead or {}).get('unified_context'))


def _first(candidates: Iterable[Any]) -> Optional[str]:
    for value in candidates:
        cleaned = _clean(value)
        if cleaned:
            return cleaned
    return None


# ── Booking ──────────────────────────────────────────────────────────────────

def _booking_field_from_context(uc: Dict[str, Any], field: str) -> Optional[str]:
    """Direct keys first across all channels, then the nested booking object."""
    direct = _first(_as_dict(uc.get(ch)).get(f'booking_{field}') for ch in CHANNELS)
    if direct:
        return direct

    nested = []
    for ch in CHANNELS:
        booking = _as_dict(_as_dict(uc.get(ch)).get('booking'))
        nested.append(booking.get(field))
        nested.append(booking.get(f'booking_{field}'))
    return _first(nested)


def _booking_field_from_sessions(sessions: List[Dict[str, Any]], field: str) -> Optional[str]:
    """
    Most recently created session carrying the field. Strict comparison, so
    on equal timestamps the first session scanned is kept.
    """
    best_value, best_ts = None, None
    for s in sessions or []:
        value = _clean((s or {}).get(f'booking_{field}'))
        if not value:
            continue
        ts = parse_timestamp(s.get('created_at')) or _EPOCH
        if best_ts is None or ts > best_ts:
            best_value, best_ts = value, ts
    return best_value


def resolve_booking(lead: Dict[str, Any], sessions: List[Dict[str, Any]] = None) -> CanonicalBooking:
    """
    Resolve {date, time} for a lead. Each field walks the chain on its own,
    so a date from the context can pair with a time from a session.
    """
    uc = unified_context(lead)
    resolved = {}
    for field in ('date', 'time'):
        resolved[field] = (
            _booking_field_from_context(uc, field)
            or _booking_field_from_sessions(sessions, field)
        )
    return CanonicalBooking(date=resolved['date'], time=resolved['time'])


def has_booking(lead: Dict[str, Any], sessions: List[Dict[str, Any]] = None) -> bool:
    """True if either booking field resolved."""
    return resolve_booking(lead, sessions).exists


# ── Context ──────────────────────────────────────────────────────────────────

def _last_interaction(lead: Dict[str, Any], uc: Dict[str, Any]) -> Optional[datetime]:
    ts = parse_timestamp(lead.get('last_interaction_at'))
    if ts:
        return ts
    for ch in CHANNELS:
        ts = parse_timestamp(_as_dict(uc.get(ch)).get('last_interaction'))
        if ts:
            return ts
    return parse_timestamp(lead.get('created_at'))


def build_context(lead: Dict[str, Any], sessions: List[Dict[str, Any]] = None) -> CanonicalContext:
    """Populate CanonicalContext from a lead row (and optional sessions)."""
    lead = lead or {}
    uc = unified_context(lead)
    web = _as_dict(uc.get('web'))
    whatsapp = _as_dict(uc.get('whatsapp'))

    channel_summaries = {}
    for ch in CHANNELS:
        summary = _clean(_as_dict(uc.get(ch)).get('conversation_summary'))
        if summary:
            channel_summaries[ch] = summary

    key_info = KeyInfo(
        budget=_first([uc.get('budget'), web.get('budget'), whatsapp.get('budget')]),
        service_interest=_first([uc.get('service_interest'), web.get('service_interest')]),
        pain_points=_first([uc.get('pain_points'), web.get('pain_points')]),
    )

    return CanonicalContext(
        lead_id=_clean(lead.get('id')),
        name=_clean(lead.get('customer_name')) or 'Customer',
        email=_clean(lead.get('email')),
        phone=_clean(lead.get('phone')),
        stage=_clean(lead.get('lead_stage')),
        sub_stage=_clean(lead.get('sub_stage')),
        booking=resolve_booking(lead, sessions),
        unified_summary=_clean(uc.get('unified_summary')),
        channel_summaries=channel_summaries,
        key_info=key_info,
        next_touchpoint=_first([
            uc.get('next_touchpoint'),
            _as_dict(uc.get('sequence')).get('next_step'),
        ]),
        last_interaction_at=_last_interaction(lead, uc),
        created_at=parse_timestamp(lead.get('created_at')),
    )
