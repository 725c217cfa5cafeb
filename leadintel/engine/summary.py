"""
Lead summary resolution — narrative text + "last updated by" attribution.

Priority chain, first satisfied branch wins:
  1. unified_summary stored on the lead, verbatim
  2. web / WhatsApp conversation summaries, labelled
  3. external generation (prompt from recent messages, activities, key facts)
  4. deterministic fallback built from local data only

Attribution is computed independently of the branch taken.
"""
import logging
from typing import Callable, Dict, List, Any, Optional

from leadintel.config import AI_ACTOR_NAME, AGENT_DISPLAY_NAME, SYSTEM_ACTORS
from leadintel.engine.base import CanonicalContext
from leadintel.engine.clock import (
    days_since, hours_since, parse_timestamp, resolve_now, round_half_up, time_ago,
)
from leadintel.engine.facts import build_context

logger = logging.getLogger('engine.summary')

UNAVAILABLE_SUMMARY = 'Unable to load summary'

PROMPT_MESSAGES = 10
PROMPT_ACTIVITIES = 5
FALLBACK_PREVIEW_CHARS = 100
PROMPT_PREVIEW_CHARS = 150

SUMMARY_PROMPT = """Generate a unified summary for this lead in this EXACT format:

"[Time ago] via [channel]. Customer [last action]. Currently [status]. [Key extracted info: interested in X, budget Y, pain points Z]. Next: [recommended action]."

CRITICAL RULES FOR SUMMARY:
- ONLY state actions explicitly confirmed in messages
- "ok done" or "sure" does NOT mean signup completed
- If no explicit confirmation of signup/payment, state: "Inquiring about [topic]"
- NEVER assume actions that aren't explicitly stated
- Use actual message content, not inferred intent

Lead: {name}
Stage: {stage}
Days Inactive: {days_inactive}
Response Rate: {response_rate}%

Last 10 Messages:
{conversation}

Recent Activities:
{activities}

{last_message}

Conversation Status: {status}
{facts}

Generate the summary in the exact format specified above. Make it concise and actionable. Follow the CRITICAL RULES - only state explicitly confirmed actions."""


def unavailable_summary(error=None) -> Dict[str, Any]:
    """Worst-case payload when the lead itself could not be loaded."""
    if error is not None:
        logger.error("Summary unavailable: %s", error)
    return {
        'summary': UNAVAILABLE_SUMMARY,
        'attribution': '',
        'data': {'days_inactive': 0, 'response_rate': 0},
    }


# ── Helpers ──────────────────────────────────────────────────────────────────

def _sender_label(sender) -> str:
    return 'Customer' if sender == 'customer' else AGENT_DISPLAY_NAME


def _sort_by(rows: List[Dict[str, Any]], key: str) -> List[Dict[str, Any]]:
    """Ascending by timestamp; undated rows first, input order kept on ties."""
    dated = []
    for index, row in enumerate(rows):
        ts = parse_timestamp(row.get(key))
        dated.append((ts is not None, ts.timestamp() if ts else 0.0, index, row))
    dated.sort(key=lambda item: item[:3])
    return [item[3] for item in dated]


class _UserNames:
    """Per-call memo over a user lookup; lookup failures count as not found."""

    def __init__(self, lookup: Optional[Callable[[str], Optional[Dict[str, Any]]]]):
        self.lookup = lookup
        self._cache = {}

    def get(self, user_id, default='Team Member') -> str:
        if not user_id or self.lookup is None:
            return default
        if user_id not in self._cache:
            try:
                self._cache[user_id] = self.lookup(user_id)
            except Exception as e:
                logger.warning("User lookup failed for %s: %s", user_id, e)
                self._cache[user_id] = None
        user = self._cache[user_id] or {}
        return user.get('name') or user.get('email') or default


# ── Facts ────────────────────────────────────────────────────────────────────

def summary_data(ctx: CanonicalContext, messages: List[Dict[str, Any]], now) -> Dict[str, Any]:
    """Facts the summary is built from; returned to the caller as ``data``."""
    last = messages[-1] if messages else None

    customer = sum(1 for m in messages if m.get('sender') == 'customer')
    response_rate = round_half_up(100 * customer / len(messages)) if messages else 0

    days_inactive = days_since(ctx.last_interaction_at, now)
    days_inactive = max(0, days_inactive) if days_inactive is not None else 0

    hours = hours_since(last.get('created_at'), now) if last else None
    if hours is None:
        hours = days_inactive * 24

    if hours < 1:
        status = 'Actively chatting'
    elif last and last.get('sender') == 'agent':
        status = f'Waiting on customer ({hours}h ago)'
    elif last and last.get('sender') == 'customer':
        status = f'No response ({hours}h ago)'
    else:
        status = 'No recent activity'

    last_message = None
    if last:
        ts = parse_timestamp(last.get('created_at'))
        last_message = {
            'content': str(last.get('content') or ''),
            'sender': last.get('sender'),
            'timestamp': ts.isoformat() if ts else None,
            'channel': last.get('channel'),
        }

    return {
        'lead_name': ctx.name,
        'last_message': last_message,
        'hours_since_last_message': hours,
        'conversation_status': status,
        'response_rate': response_rate,
        'days_inactive': days_inactive,
        'next_touchpoint': ctx.next_touchpoint,
        'key_info': ctx.key_info.to_dict(),
        'lead_stage': ctx.stage,
        'sub_stage': ctx.sub_stage,
        'booking_date': ctx.booking.date,
        'booking_time': ctx.booking.time,
    }


def _stage_label(ctx: CanonicalContext) -> str:
    label = ctx.stage or 'Unknown'
    if ctx.sub_stage:
        label += f' ({ctx.sub_stage})'
    return label


# ── Branches ─────────────────────────────────────────────────────────────────

def stored_summary(ctx: CanonicalContext) -> Optional[str]:
    """Branches 1 and 2: summaries already written by the channel agents."""
    if ctx.unified_summary:
        return ctx.unified_summary
    parts = []
    if ctx.channel_summaries.get('web'):
        parts.append(f"Web: {ctx.channel_summaries['web']}")
    if ctx.channel_summaries.get('whatsapp'):
        parts.append(f"WhatsApp: {ctx.channel_summaries['whatsapp']}")
    return '\n\n'.join(parts) or None


def build_prompt(ctx: CanonicalContext, data: Dict[str, Any], messages: List[Dict[str, Any]],
                 activities: List[Dict[str, Any]], names: _UserNames) -> str:
    conversation = '\n'.join(
        f"[{m.get('created_at')}] {_sender_label(m.get('sender'))} ({m.get('channel')}): {m.get('content') or ''}"
        for m in messages[-PROMPT_MESSAGES:]
    )
    recent = list(reversed(activities))[:PROMPT_ACTIVITIES]
    activity_lines = '\n'.join(
        f"[{a.get('created_at')}] {names.get(a.get('created_by'), default='Team')}: "
        f"{a.get('activity_type')} - {a.get('note') or ''}"
        for a in recent
    )

    last = data['last_message']
    if last:
        last_line = (
            f"Last Message: {_sender_label(last['sender'])} sent "
            f"\"{last['content'][:PROMPT_PREVIEW_CHARS]}\" via {last['channel']} at {last['timestamp']}"
        )
    else:
        last_line = 'No messages yet'

    key_info = ctx.key_info
    facts = [
        f'Next Touchpoint: {ctx.next_touchpoint}' if ctx.next_touchpoint else '',
        f'Budget mentioned: {key_info.budget}' if key_info.budget else '',
        f'Service interest: {key_info.service_interest}' if key_info.service_interest else '',
        f'Pain points: {key_info.pain_points}' if key_info.pain_points else '',
    ]

    return SUMMARY_PROMPT.format(
        name=ctx.name,
        stage=_stage_label(ctx),
        days_inactive=data['days_inactive'],
        response_rate=data['response_rate'],
        conversation=conversation or 'No messages yet',
        activities=activity_lines or 'No team activities',
        last_message=last_line,
        status=data['conversation_status'],
        facts='\n'.join(f for f in facts if f),
    )


def fallback_summary(ctx: CanonicalContext, data: Dict[str, Any]) -> str:
    """Branch 4. Local data only, never empty."""
    parts = [f'{ctx.name} is currently in the {ctx.stage or "Unknown"} stage'
             + (f' ({ctx.sub_stage})' if ctx.sub_stage else '') + '.']

    last = data['last_message']
    if last:
        hours = data['hours_since_last_message']
        ago = f'{hours}h ago' if hours < 24 else f'{hours // 24}d ago'
        preview = last['content'][:FALLBACK_PREVIEW_CHARS]
        parts.append(f'Last message from {_sender_label(last["sender"])} {ago}: "{preview}...".')

    parts.append(f"Conversation status: {data['conversation_status']}.")
    parts.append(f"Response rate: {data['response_rate']}%.")

    key_info = ctx.key_info
    if not key_info.is_empty():
        parts.append('Key info:')
        if key_info.budget:
            parts.append(f'Budget: {key_info.budget}.')
        if key_info.service_interest:
            parts.append(f'Interest: {key_info.service_interest}.')
        if key_info.pain_points:
            parts.append(f'Pain points: {key_info.pain_points}.')

    return ' '.join(parts)


# ── Attribution ──────────────────────────────────────────────────────────────

def _attribution_line(actor: str, ts, now, action: str) -> str:
    head = ' '.join(p for p in ('Last updated by', actor, time_ago(ts, now)) if p)
    return f'{head} - {action}'


def build_attribution(messages: List[Dict[str, Any]], activities: List[Dict[str, Any]],
                      stage_changes: List[Dict[str, Any]], names: _UserNames, now) -> str:
    """
    Most recent stage change, else most recent team activity, else the last
    message sender. Inputs are ascending by timestamp.
    """
    if stage_changes:
        change = stage_changes[-1]
        changed_by = change.get('changed_by')
        if not changed_by or changed_by in SYSTEM_ACTORS:
            actor = AI_ACTOR_NAME
        else:
            actor = names.get(changed_by)
        return _attribution_line(actor, change.get('changed_at'), now,
                                 f"changed stage to {change.get('new_stage')}")

    if activities:
        activity = activities[-1]
        return _attribution_line(names.get(activity.get('created_by')), activity.get('created_at'),
                                 now, activity.get('activity_type') or 'activity')

    if messages:
        last = messages[-1]
        return _attribution_line(_sender_label(last.get('sender')), last.get('created_at'),
                                 now, 'message sent')

    return ''


# ── Entry point ──────────────────────────────────────────────────────────────

def resolve_summary(lead: Dict[str, Any], messages=None, activities=None, stage_changes=None,
                    sessions=None, now=None, user_lookup=None,
                    generate: Optional[Callable[[str], str]] = None) -> Dict[str, Any]:
    """
    Resolve {summary, attribution, data} for one lead.

    ``generate`` takes a prompt and returns text; any exception or empty
    result falls through to the deterministic fallback. ``user_lookup`` maps
    a dashboard user id to a {name, email} dict (or None).
    """
    now = resolve_now(now)
    lead_id = (lead or {}).get('id')
    ctx = build_context(lead, sessions)
    messages = _sort_by([m for m in (messages or []) if isinstance(m, dict)], 'created_at')
    activities = _sort_by([a for a in (activities or []) if isinstance(a, dict)], 'created_at')
    stage_changes = _sort_by([c for c in (stage_changes or []) if isinstance(c, dict)], 'changed_at')
    names = _UserNames(user_lookup)

    data = summary_data(ctx, messages, now)
    attribution = build_attribution(messages, activities, stage_changes, names, now)

    summary = stored_summary(ctx)
    source = 'unified' if ctx.unified_summary else 'channels'

    if summary is None and generate is not None:
        try:
            text = generate(build_prompt(ctx, data, messages, activities, names))
            summary = text.strip() if isinstance(text, str) and text.strip() else None
            if summary is None:
                logger.warning("Generation returned no text", extra={'lead_id': lead_id})
            source = 'generated'
        except Exception as e:
            logger.error("Error generating summary: %s", e, extra={'lead_id': lead_id})

    if summary is None:
        summary = fallback_summary(ctx, data)
        source = 'fallback'

    logger.info("Summary resolved from %s", source, extra={'lead_id': lead_id})
    data['source'] = source
    return {'summary': summary, 'attribution': attribution, 'data': data}
