"""
Structured logging configuration.

Called once from create_app(). Text (human-readable) or single-line JSON,
chosen by LOG_FORMAT. Engine modules pass the lead they are working on via
``extra={'lead_id': ...}`` and the JSON formatter carries it as a field.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """Single-line JSON log formatter for production log aggregators."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        lead_id = getattr(record, 'lead_id', None)
        if lead_id is not None:
            entry['lead_id'] = str(lead_id)
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry)


# Chatty at INFO: HTTP stacks under the generation client, SQL echo
_NOISY_LOGGERS = [
    'urllib3',
    'httpx',
    'httpcore',
    'anthropic',
    'sqlalchemy.engine',
]


def configure_logging(app=None):
    """
    Install a single stderr handler on the root logger.

    Environment variables:
        LOG_LEVEL  — Python log level name (default: INFO)
        LOG_FORMAT — "text" (default) or "json"
    """
    level = getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO)
    use_json = os.getenv('LOG_FORMAT', 'text').lower() == 'json'

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if use_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s %(name)s — %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if app is not None:
        app.logger.setLevel(level)
