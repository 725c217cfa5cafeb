"""
Shared client instances — Redis and Anthropic.

Initialized at import time without touching the network, so importing this
module is always safe (even when env vars are missing during tests).
"""
import logging

import redis

from leadintel.config import REDIS_URL, ANTHROPIC_API_KEY, SUMMARY_TIMEOUT_SECONDS

logger = logging.getLogger('leadintel.extensions')

# ── Redis ─────────────────────────────────────────────────────────────────────
redis_client = redis.from_url(REDIS_URL, decode_responses=True)

# ── Anthropic ─────────────────────────────────────────────────────────────────
anthropic_client = None
if ANTHROPIC_API_KEY:
    try:
        from anthropic import Anthropic
        # Retries stay low: the summary path has a deterministic fallback
        anthropic_client = Anthropic(
            api_key=ANTHROPIC_API_KEY,
            timeout=SUMMARY_TIMEOUT_SECONDS,
            max_retries=1,
        )
        logger.info("Anthropic client initialized successfully")
    except Exception as e:
        logger.error("Error initializing Anthropic client: %s", e)
else:
    logger.warning("ANTHROPIC_API_KEY not set — summaries fall back to local generation")
