"""
Dashboard metrics — windowed counts, rates, trends and daily series.

Input is the full set of lead / session / message / stage-history rows (as
dicts). Output is one JSON-ready snapshot. Everything is computed against an
injectable ``now``; UTC calendar days throughout.

Counting rules:
  - A unique conversation is one session row with message_count >= 1. Rows are
    not deduplicated across sessions; each channel is counted then summed.
  - "Has booking" always goes through engine.facts, never a raw column.
  - Every ratio short-circuits to 0 on a zero denominator.
"""
import logging
import math
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Any, Optional, Tuple

from leadintel.config import CHANNELS
from leadintel.engine.base import CanonicalContext
from leadintel.engine.clock import parse_timestamp, resolve_now, round_half_up, start_of_day
from leadintel.engine.facts import build_context

logger = logging.getLogger('engine.metrics')

STALE_AFTER = timedelta(hours=48)
ATTENTION_SCORE = 50
RECENT_DAYS = 7
SCORE_JUMP_POINTS = 20
HOT_STAGES = {'High Intent', 'Booking Made'}
TOP_N = 5


# ── Primitive helpers ────────────────────────────────────────────────────────

def lead_score_of(lead: Dict[str, Any]) -> int:
    """Stored lead_score as int; missing, non-numeric or non-finite is 0."""
    value = (lead or {}).get('lead_score')
    if isinstance(value, bool) or value is None:
        return 0
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0
    return round_half_up(score) if math.isfinite(score) else 0


def _to_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _pct(numerator, denominator) -> int:
    if not denominator:
        return 0
    return round_half_up(100 * numerator / denominator)


def _change_pct(series: List[Dict[str, Any]], invert=False) -> int:
    """First-vs-last change of a daily series, relative to max(first, 1)."""
    if len(series) < 2:
        return 0
    first, last = series[0]['value'], series[-1]['value']
    delta = first - last if invert else last - first
    return round_half_up(100 * delta / max(first, 1))


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def _days_between(earlier: Optional[datetime], now: datetime) -> float:
    if earlier is None:
        return 999.0
    return (now - earlier).total_seconds() / 86400


def _in_window(ts: Optional[datetime], start: datetime, end: Optional[datetime] = None) -> bool:
    if ts is None or ts < start:
        return False
    return end is None or ts < end


# ── Lead predicates ──────────────────────────────────────────────────────────

def _stale(ctx: CanonicalContext, now: datetime) -> bool:
    return ctx.last_interaction_at is not None and ctx.last_interaction_at < now - STALE_AFTER


def _needs_attention(ctx: CanonicalContext, score: int, now: datetime) -> bool:
    return score > ATTENTION_SCORE and _days_between(ctx.last_interaction_at, now) < RECENT_DAYS


def _recently_hot(ctx: CanonicalContext, score: int, now: datetime, threshold: int) -> bool:
    return score >= threshold and _days_between(ctx.last_interaction_at, now) <= RECENT_DAYS


def is_stale(lead: Dict[str, Any], now=None) -> bool:
    """Last interaction (or creation) more than 48h before now."""
    return _stale(build_context(lead), resolve_now(now))


def needs_attention(lead: Dict[str, Any], now=None) -> bool:
    """Score above 50 and interacted with in the last 7 days."""
    return _needs_attention(build_context(lead), lead_score_of(lead), resolve_now(now))


def is_recently_hot(lead: Dict[str, Any], now=None, threshold: int = 70) -> bool:
    """Score at or above threshold and interacted with within 7 days."""
    return _recently_hot(build_context(lead), lead_score_of(lead), resolve_now(now), threshold)


# ── Response latency ─────────────────────────────────────────────────────────

def _metadata_response_seconds(message: Dict[str, Any]) -> Optional[float]:
    metadata = message.get('metadata')
    if not isinstance(metadata, dict):
        return None
    raw = metadata.get('response_time_ms', metadata.get('responseTimeMs'))
    if raw is None or isinstance(raw, bool):
        return None
    try:
        ms = float(raw)
    except (TypeError, ValueError):
        return None
    return ms / 1000 if ms > 0 else None


def average_response_seconds(messages: List[Dict[str, Any]]) -> float:
    """
    Mean agent response latency in seconds. Uses recorded response_time_ms on
    agent messages; when none carry it, falls back to positive gaps between a
    customer message and the agent message right after it, per lead.
    """
    samples = []
    for m in messages:
        if m.get('sender') != 'agent':
            continue
        seconds = _metadata_response_seconds(m)
        if seconds is not None:
            samples.append(seconds)

    if not samples:
        by_lead = defaultdict(list)
        for m in messages:
            ts = parse_timestamp(m.get('created_at'))
            if ts is not None:
                by_lead[m.get('lead_id')].append((ts, m.get('sender')))
        for thread in by_lead.values():
            thread.sort(key=lambda pair: pair[0])
            for (ts_a, sender_a), (ts_b, sender_b) in zip(thread, thread[1:]):
                if sender_a == 'customer' and sender_b == 'agent':
                    gap = (ts_b - ts_a).total_seconds()
                    if gap > 0:
                        samples.append(gap)

    return sum(samples) / len(samples) if samples else 0.0


def response_status(avg_seconds: float) -> str:
    if avg_seconds < 5:
        return 'good'
    if avg_seconds < 10:
        return 'warning'
    return 'critical'


# ── Bookings ─────────────────────────────────────────────────────────────────

def _booking_datetime(ctx: CanonicalContext) -> Optional[datetime]:
    """Booking date + time; noon when the time is missing or unparseable."""
    if not ctx.booking.date:
        return None
    day = ctx.booking.date[:10]
    for time_part in (ctx.booking.time, '12:00:00'):
        if not time_part:
            continue
        dt = parse_timestamp(f'{day}T{time_part}')
        if dt is not None:
            return dt
    return None


def _booked_on(ctx: CanonicalContext, day: datetime) -> bool:
    return bool(ctx.booking.date) and ctx.booking.date.startswith(day.date().isoformat())


# ── Snapshot ─────────────────────────────────────────────────────────────────

class _Row:
    """Lead row with its reconciled context and stored score."""
    __slots__ = ('lead', 'ctx', 'score')

    def __init__(self, lead, ctx, score):
        self.lead = lead
        self.ctx = ctx
        self.score = score

    @property
    def id(self):
        return self.lead.get('id')

    @property
    def name(self):
        return self.lead.get('customer_name') or 'Unknown'

    @property
    def channel(self):
        return self.lead.get('first_touchpoint') or self.lead.get('last_touchpoint') or 'web'


def _conversation_counts(conversations: List[Tuple[str, Optional[datetime]]], start: datetime,
                         end: Optional[datetime] = None) -> Dict[str, int]:
    counts = Counter()
    for channel, ts in conversations:
        if _in_window(ts, start, end):
            counts[channel] += 1
    return dict(counts)


def _key_events(rows: List[_Row], stage_changes: List[Dict[str, Any]], now: datetime,
                threshold: int) -> List[Dict[str, Any]]:
    by_id = {r.id: r for r in rows}
    events = []

    changes = []
    for change in stage_changes:
        ts = parse_timestamp(change.get('changed_at'))
        if ts is not None:
            changes.append((ts, change))
    changes.sort(key=lambda pair: pair[0], reverse=True)

    # Stage transitions
    for ts, change in changes:
        row = by_id.get(change.get('lead_id'))
        old, new = change.get('old_stage'), change.get('new_stage')
        if row is None or not old or old == new:
            continue
        events.append({
            'lead_id': row.id,
            'type': 'stage_change',
            'timestamp': ts,
            'channel': row.channel,
            'content': f'{row.name} entered {new} stage (from {old})',
            'metadata': {'old_stage': old, 'new_stage': new, 'score': change.get('score_at_change')},
        })

    # Score jumps between consecutive stage changes of the same lead
    per_lead = defaultdict(list)
    for ts, change in changes:
        per_lead[change.get('lead_id')].append((ts, change))
    jumped = set()
    for lead_id, history in per_lead.items():
        row = by_id.get(lead_id)
        if row is None:
            continue
        for (ts, newer), (_, older) in zip(history, history[1:]):
            new_score, old_score = newer.get('score_at_change'), older.get('score_at_change')
            if not isinstance(new_score, (int, float)) or not isinstance(old_score, (int, float)):
                continue
            diff = new_score - old_score
            if abs(diff) >= SCORE_JUMP_POINTS:
                events.append({
                    'lead_id': row.id,
                    'type': 'score_change',
                    'timestamp': ts,
                    'channel': row.channel,
                    'content': (f"{row.name}'s score {'jumped' if diff > 0 else 'dropped'} "
                                f"{abs(diff)} points ({old_score} → {new_score})"),
                    'metadata': {'old_score': old_score, 'new_score': new_score, 'increase': diff},
                })
                jumped.add(lead_id)
                break

    recent_cutoff = now - timedelta(days=RECENT_DAYS)
    for row in rows:
        # Newly hot: hot now and a recent transition into a hot stage or score
        if row.id not in jumped and _recently_hot(row.ctx, row.score, now, threshold):
            promoted = any(
                ts >= recent_cutoff and (
                    change.get('new_stage') in HOT_STAGES
                    or (isinstance(change.get('score_at_change'), (int, float))
                        and change['score_at_change'] >= threshold)
                )
                for ts, change in per_lead.get(row.id, [])
            )
            if promoted:
                events.append({
                    'lead_id': row.id,
                    'type': 'hot_lead',
                    'timestamp': row.ctx.last_interaction_at,
                    'channel': row.channel,
                    'content': f'{row.name} became a hot lead (score: {row.score})',
                    'metadata': {'score': row.score},
                })

        first, last = row.lead.get('first_touchpoint'), row.lead.get('last_touchpoint')
        last_seen = parse_timestamp(row.lead.get('last_interaction_at'))
        if first and last and first != last and last_seen and _days_between(last_seen, now) <= RECENT_DAYS:
            events.append({
                'lead_id': row.id,
                'type': 'multichannel',
                'timestamp': last_seen,
                'channel': last,
                'content': f'{row.name} engaged via {last} (also uses {first})',
                'metadata': {'first_touchpoint': first, 'last_touchpoint': last},
            })

        if _stale(row.ctx, now):
            hours = (now - row.ctx.last_interaction_at).total_seconds() / 3600
            if hours <= RECENT_DAYS * 24:
                days = int(hours // 24)
                events.append({
                    'lead_id': row.id,
                    'type': 'went_cold',
                    'timestamp': row.ctx.last_interaction_at,
                    'channel': row.channel,
                    'content': f'{row.name} went cold ({days} days inactive)',
                    'metadata': {'days_inactive': days},
                })

    events = [e for e in events if e['timestamp'] is not None]
    events.sort(key=lambda e: e['timestamp'], reverse=True)
    for e in events:
        e['timestamp'] = _iso(e['timestamp'])
    return events[:10]


def build_metrics_snapshot(leads: List[Dict[str, Any]], sessions: List[Dict[str, Any]],
                           messages: List[Dict[str, Any]],
                           stage_changes: Optional[List[Dict[str, Any]]] = None,
                           now=None, hot_lead_threshold: int = 70,
                           warm_floor: int = 40) -> Dict[str, Any]:
    """
    Compute the dashboard snapshot.

    Args:
        leads:              all_leads rows.
        sessions:           channel session rows (booking facts + conversation counts).
        messages:           conversation rows.
        stage_changes:      stage_history rows (key events only).
        now:                injectable clock; defaults to current UTC time.
        hot_lead_threshold: score at or above which a lead counts as hot.
        warm_floor:         score at or above which a non-hot lead counts as warm.

    Returns:
        JSON-ready dict of counts, rates, lists and daily series.
    """
    now = resolve_now(now)
    threshold = hot_lead_threshold
    leads = [l for l in (leads or []) if isinstance(l, dict)]
    sessions = [s for s in (sessions or []) if isinstance(s, dict)]
    messages = [m for m in (messages or []) if isinstance(m, dict)]
    stage_changes = [c for c in (stage_changes or []) if isinstance(c, dict)]

    sessions_by_lead = defaultdict(list)
    for s in sessions:
        if s.get('lead_id'):
            sessions_by_lead[s['lead_id']].append(s)

    rows = [
        _Row(lead, build_context(lead, sessions_by_lead.get(lead.get('id'))), lead_score_of(lead))
        for lead in leads
    ]
    # Highest score first; stable for equal scores
    rows.sort(key=lambda r: r.score, reverse=True)
    booked = [r for r in rows if r.ctx.booking.exists]

    # ── Conversations ──
    conversations = [
        (s.get('channel') or 'unknown', parse_timestamp(s.get('created_at')))
        for s in sessions if _to_int(s.get('message_count')) >= 1
    ]
    windows = {}
    for days in (7, 14, 30):
        windows[days] = _conversation_counts(conversations, now - timedelta(days=days))
    previous = _conversation_counts(conversations, now - timedelta(days=14), now - timedelta(days=7))
    current_7d = sum(windows[7].values())
    previous_7d = sum(previous.values())
    trend_7d = _pct(current_7d - previous_7d, previous_7d)
    total_conversations = len(conversations)

    logger.info(
        "Conversations: total=%d 7d=%d 14d=%d 30d=%d previous_7d=%d trend=%d%%",
        total_conversations, current_7d, sum(windows[14].values()),
        sum(windows[30].values()), previous_7d, trend_7d,
    )

    # ── Rates ──
    customer_count = sum(1 for m in messages if m.get('sender') == 'customer')
    agent_count = sum(1 for m in messages if m.get('sender') == 'agent')
    response_rate = _pct(agent_count, customer_count)
    booking_rate = _pct(len(booked), len(rows))
    conversion_rate = _pct(len(booked), total_conversations)
    avg_seconds = average_response_seconds(messages)
    avg_score = round_half_up(sum(r.score for r in rows) / len(rows)) if rows else 0

    logger.info(
        "Bookings: leads=%d booked=%d booking_rate=%d%% conversion_rate=%d%%",
        len(rows), len(booked), booking_rate, conversion_rate,
    )

    # ── Today ──
    today = start_of_day(now)
    tomorrow = today + timedelta(days=1)
    today_activity = {
        'messages': sum(1 for m in messages if _in_window(parse_timestamp(m.get('created_at')), today, tomorrow)),
        'bookings': sum(1 for r in rows if _booked_on(r.ctx, today)),
        'new_leads': sum(1 for r in rows if _in_window(r.ctx.created_at, today, tomorrow)),
    }

    # ── Lead lists ──
    hot = [r for r in rows if r.score >= threshold]
    stale = [r for r in rows if _stale(r.ctx, now)]
    attention = [r for r in rows if _needs_attention(r.ctx, r.score, now)][:TOP_N]

    upcoming = []
    for r in booked:
        when = _booking_datetime(r.ctx)
        if when is not None and when >= now:
            upcoming.append((when, r))
    upcoming.sort(key=lambda pair: pair[0])

    # ── Funnel / channels / distribution ──
    lead_flow = {
        'new': sum(1 for r in rows if not r.ctx.stage or r.ctx.stage == 'New'),
        'engaged': sum(1 for r in rows if r.ctx.stage == 'Engaged'),
        'qualified': sum(1 for r in rows if r.ctx.stage == 'Qualified'),
        'booked': sum(1 for r in rows if r.ctx.stage == 'Booking Made' or r.ctx.booking.exists),
    }

    channel_performance = {}
    for ch in CHANNELS:
        touched = [r for r in rows if ch in (r.lead.get('first_touchpoint'), r.lead.get('last_touchpoint'))]
        channel_performance[ch] = {
            'total': len(touched),
            'booked': sum(1 for r in touched if r.ctx.booking.exists),
        }

    score_distribution = {
        'hot': len(hot),
        'warm': sum(1 for r in rows if warm_floor <= r.score < threshold),
        'cold': sum(1 for r in rows if r.score < warm_floor),
    }

    # ── Quick stats ──
    channel_counts = Counter(
        r.lead.get('first_touchpoint') or r.lead.get('last_touchpoint') or 'unknown' for r in rows
    )
    hour_counts = Counter()
    for m in messages:
        ts = parse_timestamp(m.get('created_at'))
        if ts is not None:
            hour_counts[ts.hour] += 1
    best_channel = channel_counts.most_common(1)[0][0] if channel_counts else 'web'
    busiest_hour = hour_counts.most_common(1)[0][0] if hour_counts else 14

    # ── Daily series (6 days ago .. today) ──
    series = {'leads': [], 'bookings': [], 'conversations': [], 'hot_leads': [], 'response_time': []}
    for i in range(6, -1, -1):
        day = today - timedelta(days=i)
        next_day = day + timedelta(days=1)
        label = day.date().isoformat()
        day_messages = [m for m in messages if _in_window(parse_timestamp(m.get('created_at')), day, next_day)]
        values = {
            'leads': sum(1 for r in rows if _in_window(r.ctx.created_at, day, next_day)),
            'bookings': sum(1 for r in rows if _booked_on(r.ctx, day)),
            'conversations': sum(1 for _, ts in conversations if _in_window(ts, day, next_day)),
            'hot_leads': sum(
                1 for r in rows
                if r.score >= threshold and _in_window(r.ctx.last_interaction_at, day, next_day)
            ),
            'response_time': round(average_response_seconds(day_messages), 1),
        }
        for key, value in values.items():
            series[key].append({'date': label, 'value': value})

    # Conversations and hot leads are reported without a change figure
    trends = {
        'leads': {'data': series['leads'], 'change': _change_pct(series['leads'])},
        'bookings': {'data': series['bookings'], 'change': _change_pct(series['bookings'])},
        'conversations': {'data': series['conversations'], 'change': 0},
        'hot_leads': {'data': series['hot_leads'], 'change': 0},
        'response_time': {'data': series['response_time'],
                          'change': _change_pct(series['response_time'], invert=True)},
    }

    return {
        'generated_at': _iso(now),
        'hot_lead_threshold': threshold,
        'total_conversations': {
            'count_7d': current_7d,
            'count_14d': sum(windows[14].values()),
            'count_30d': sum(windows[30].values()),
            'previous_7d': previous_7d,
            'trend_7d': trend_7d,
            'by_channel_7d': windows[7],
        },
        'total_leads': {
            'count': len(rows),
            'from_conversations': total_conversations,
            'conversion_rate': conversion_rate,
        },
        'rates': {
            'avg_score': avg_score,
            'response_rate': response_rate,
            'booking_rate': booking_rate,
            'conversion_rate': conversion_rate,
            'avg_response_time': round(avg_seconds, 1),
        },
        'response_health': {
            'avg_seconds': avg_seconds,
            'status': response_status(avg_seconds),
        },
        'hot_leads': {
            'count': len(hot),
            'leads': [{'id': r.id, 'name': r.name, 'score': r.score} for r in hot[:TOP_N]],
        },
        'today_activity': today_activity,
        'leads_needing_attention': [
            {
                'id': r.id,
                'name': r.name,
                'score': r.score,
                'last_contact': _iso(r.ctx.last_interaction_at),
                'stage': r.ctx.stage or 'New',
            }
            for r in attention
        ],
        'upcoming_bookings': [
            {
                'id': r.id,
                'name': r.name,
                'date': r.ctx.booking.date,
                'time': r.ctx.booking.time,
                'datetime': _iso(when),
            }
            for when, r in upcoming[:3]
        ],
        'stale_leads': {
            'count': len(stale),
            'leads': [{'id': r.id, 'name': r.name} for r in stale[:TOP_N]],
        },
        'lead_flow': lead_flow,
        'channel_performance': channel_performance,
        'score_distribution': score_distribution,
        'recent_activity': _key_events(rows, stage_changes, now, threshold),
        'quick_stats': {
            'best_channel': best_channel,
            'busiest_hour': f'{busiest_hour}:00',
        },
        'trends': trends,
    }


def empty_metrics_snapshot(now=None, hot_lead_threshold: int = 70, warm_floor: int = 40) -> Dict[str, Any]:
    """Zeroed snapshot, same shape as a real one."""
    return build_metrics_snapshot([], [], [], [], now=now, hot_lead_threshold=hot_lead_threshold,
                                  warm_floor=warm_floor)
