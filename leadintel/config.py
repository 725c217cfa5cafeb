"""
Centralized configuration — env vars, channel order, actor names, thresholds.
"""
import os


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis (circuit breaker state) ────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Anthropic (summary generation) ───────────────────────────────────────────
# CLAUDE_API_KEY is the name the dashboard deployment used before the rename
ANTHROPIC_API_KEY = os.getenv('ANTHROPIC_API_KEY') or os.getenv('CLAUDE_API_KEY')
SUMMARY_MODEL = os.getenv('SUMMARY_MODEL', 'claude-sonnet-4-20250514')
SUMMARY_MAX_TOKENS = int(os.getenv('SUMMARY_MAX_TOKENS', '400'))
SUMMARY_TIMEOUT_SECONDS = float(os.getenv('SUMMARY_TIMEOUT_SECONDS', '20'))

# ── Ollama (local LLM, dev only; unset means no local provider) ─────────────
OLLAMA_URL = os.getenv('OLLAMA_URL')
OLLAMA_MODEL = os.getenv('OLLAMA_MODEL', 'gemma3:1b')

# ── Dashboard thresholds ─────────────────────────────────────────────────────
HOT_LEAD_THRESHOLD = int(os.getenv('HOT_LEAD_THRESHOLD', '70'))
WARM_LEAD_FLOOR = int(os.getenv('WARM_LEAD_FLOOR', '40'))

# ── Channels, in reconciliation priority order ───────────────────────────────
CHANNELS = ('web', 'whatsapp', 'voice', 'social')

# ── Actors ────────────────────────────────────────────────────────────────────
AI_ACTOR_NAME = 'PROXe AI'
AGENT_DISPLAY_NAME = 'PROXe'
SYSTEM_ACTORS = {'system', AI_ACTOR_NAME}
