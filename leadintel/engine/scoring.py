"""
Lead health scoring — 60/30/10 weighted breakdown + health band.

  ai        (max 60) — keyword heuristics over summaries and message text
  activity  (max 30) — volume, response behaviour, recency, channel mix
  business  (max 10) — booking, contact details, multichannel presence

Each component is rounded half-up and capped before summing, so
total == ai + activity + business always holds.
"""
import os
import logging
from typing import Dict, List, Any, Optional

import yaml

from leadintel.engine.base import CanonicalContext, ScoreBreakdown
from leadintel.engine.clock import days_since, resolve_now, round_half_up
from leadintel.engine.facts import build_context

logger = logging.getLogger('engine.scoring')

NO_INTERACTION_DAYS = 999


# ── Scoring config (YAML with hardcoded fallback) ────────────────────────────

_scoring_config = None


def _default_config():
    """Hardcoded fallback if YAML is missing."""
    return {
        'version': 'default',
        'weights': {
            'ai': {'intent': 0.4, 'sentiment': 0.3, 'buying_signals': 0.3, 'scale': 0.6, 'cap': 60},
            'activity': {
                'scale': 0.3,
                'cap': 30,
                'message_count_norm': 100,
                'recency_days': 30,
                'channel_mix_bonus': 0.1,
            },
            'business': {'booking': 10, 'contact': 5, 'multichannel': 5, 'cap': 10},
        },
        'health_bands': {'hot': 90, 'warm': 70},
        'intent_keywords': {
            'pricing': ['price', 'cost', 'pricing', 'fee', 'charge', 'afford', 'budget',
                        'expensive', 'cheap', 'discount', 'offer'],
            'booking': ['book', 'booking', 'schedule', 'appointment', 'reserve', 'available',
                        'slot', 'time', 'date'],
            'urgency': ['urgent', 'asap', 'soon', 'immediately', 'quickly', 'fast', 'today',
                        'now', 'hurry', 'rushed'],
        },
        'positive_words': ['good', 'great', 'excellent', 'perfect', 'love', 'amazing', 'wonderful',
                           'happy', 'satisfied', 'interested', 'yes', 'sure', 'definitely'],
        'negative_words': ['bad', 'terrible', 'worst', 'hate', 'disappointed', 'frustrated',
                           'angry', 'no', 'not', "don't", "won't", 'cancel'],
        'buying_signals': ['when can', 'how much', 'what is the price', 'tell me about', 'i want',
                           'i need', 'interested in', 'looking for', 'considering', 'deciding',
                           'compare', 'options'],
    }


def load_scoring_config():
    """Load scoring config from YAML, with in-memory cache and hardcoded fallback."""
    global _scoring_config
    if _scoring_config is not None:
        return _scoring_config

    config_path = os.path.join(os.path.dirname(__file__), 'scoring_config.yaml')
    try:
        with open(config_path, 'r') as f:
            _scoring_config = yaml.safe_load(f)
        logger.info("Config loaded from YAML (version=%s)", _scoring_config.get('version', '?'))
    except Exception as e:
        logger.warning("YAML config not found (%s), using defaults", e)
        _scoring_config = _default_config()

    return _scoring_config


def health_band(score, config=None) -> str:
    """Hot (>= 90), Warm (>= 70), else Cold."""
    bands = (config or load_scoring_config())['health_bands']
    if score >= bands['hot']:
        return 'Hot'
    if score >= bands['warm']:
        return 'Warm'
    return 'Cold'


# ── Text corpus ──────────────────────────────────────────────────────────────

def build_corpus(ctx: CanonicalContext, messages: List[Dict[str, Any]]) -> str:
    """Unified summary + channel summaries + message contents, lower-cased."""
    parts = []
    if ctx.unified_summary:
        parts.append(ctx.unified_summary)
    parts.extend(ctx.channel_summaries.values())
    for m in messages:
        content = m.get('content')
        if isinstance(content, str) and content:
            parts.append(content)
    return ' '.join(parts).lower()


def _hits(text: str, terms: List[str]) -> List[str]:
    return [t for t in terms if t in text]


# ── Components ───────────────────────────────────────────────────────────────

def score_ai(text: str, config: Dict[str, Any]) -> Dict[str, Any]:
    """Intent, sentiment and buying-signal heuristics, each on a 0-100 scale."""
    weights = config['weights']['ai']

    categories = [name for name, words in config['intent_keywords'].items() if _hits(text, words)]
    intent_score = 100 * len(categories) / 3

    positives = _hits(text, config['positive_words'])
    negatives = _hits(text, config['negative_words'])
    if len(positives) > len(negatives):
        sentiment_score = min(100, 50 + 10 * len(positives))
    else:
        sentiment_score = max(0, 50 - 10 * len(negatives))

    signals = _hits(text, config['buying_signals'])
    buying_score = min(100, 20 * len(signals))

    raw = (
        weights['intent'] * intent_score
        + weights['sentiment'] * sentiment_score
        + weights['buying_signals'] * buying_score
    )
    return {
        'points': min(weights['cap'], round_half_up(raw * weights['scale'])),
        'raw': raw,
        'intent_score': intent_score,
        'intent_categories': categories,
        'sentiment_score': sentiment_score,
        'positive_hits': positives,
        'negative_hits': negatives,
        'buying_signal_score': buying_score,
        'buying_signals': signals,
    }


def score_activity(ctx: CanonicalContext, messages: List[Dict[str, Any]], now,
                   config: Dict[str, Any]) -> Dict[str, Any]:
    weights = config['weights']['activity']

    total = len(messages)
    customer = sum(1 for m in messages if m.get('sender') == 'customer')
    agent = sum(1 for m in messages if m.get('sender') == 'agent')
    channels = sorted({m['channel'] for m in messages if m.get('channel')})

    msg_count_norm = min(1.0, total / weights['message_count_norm'])
    response_rate = agent / max(1, customer)

    days = days_since(ctx.last_interaction_at, now)
    if days is None:
        days = NO_INTERACTION_DAYS
    recency = max(0.0, min(1.0, 1.0 - days / weights['recency_days']))

    bonus = weights['channel_mix_bonus'] if len(channels) >= 2 else 0.0
    raw = (msg_count_norm + response_rate + recency) / 3 + bonus

    return {
        'points': min(weights['cap'], round_half_up(min(100.0, raw * 100) * weights['scale'])),
        'raw': raw,
        'message_count': total,
        'customer_messages': customer,
        'agent_messages': agent,
        'response_rate': response_rate,
        'days_since_last_interaction': days,
        'recency': recency,
        'channels': channels,
        'channel_mix_bonus': bonus,
    }


def score_business(ctx: CanonicalContext, channel_count: int, config: Dict[str, Any]) -> Dict[str, Any]:
    """Point system; any two signals saturate the cap."""
    weights = config['weights']['business']
    raw = 0
    if ctx.booking.exists:
        raw += weights['booking']
    if ctx.has_contact:
        raw += weights['contact']
    if channel_count >= 2:
        raw += weights['multichannel']
    return {
        'points': min(weights['cap'], raw),
        'raw': raw,
        'has_booking': ctx.booking.exists,
        'has_contact': ctx.has_contact,
    }


# ── Entry point ──────────────────────────────────────────────────────────────

def calculate_lead_score(lead: Dict[str, Any], messages: Optional[List[Dict[str, Any]]],
                         sessions: Optional[List[Dict[str, Any]]] = None,
                         now=None) -> ScoreBreakdown:
    """
    Score one lead. Pure given (lead, messages, sessions, now); ``now`` is the
    injectable clock used for recency. Never raises: unexpected input shapes
    are logged and produce an all-zero breakdown.
    """
    lead_id = lead.get('id') if isinstance(lead, dict) else None
    try:
        config = load_scoring_config()
        now = resolve_now(now)
        messages = [m for m in (messages or []) if isinstance(m, dict)]
        ctx = build_context(lead, sessions)

        ai = score_ai(build_corpus(ctx, messages), config)
        activity = score_activity(ctx, messages, now, config)
        business = score_business(ctx, len(activity['channels']), config)

        total = max(0, min(100, ai['points'] + activity['points'] + business['points']))
        return ScoreBreakdown(
            ai=ai['points'],
            activity=activity['points'],
            business=business['points'],
            total=total,
            health=health_band(total, config),
            signals={'ai': ai, 'activity': activity, 'business': business},
        )
    except Exception as e:
        logger.error("Scoring failed: %s", e, exc_info=True, extra={'lead_id': lead_id})
        return ScoreBreakdown()
