"""
Logging setup for the web app and the RQ worker.

LOG_FORMAT=text (default) prints one readable line per record; LOG_FORMAT=json
prints one JSON object per record for the log aggregator. LOG_LEVEL defaults
to INFO. Batch code can pass extra={'project_id': ..., 'lead_id': ...}; those
keys are carried into JSON output as top-level fields.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone

# extra= keys promoted into JSON log entries
CONTEXT_FIELDS = ('project_id', 'lead_id', 'batch_kind', 'job_id')

TEXT_FORMAT = '[%(asctime)s] %(levelname)s %(name)s: %(message)s'


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


# Chatty at INFO: HTTP clients, the OpenAI SDK, RQ job chatter, SQL echo
_NOISY_LOGGERS = [
    'urllib3',
    'openai',
    'httpcore',
    'httpx',
    'rq.worker',
    'sqlalchemy.engine',
]


def configure_logging(app=None):
    """
    Install a single stderr handler on the root logger.

    Safe to call more than once; previous handlers are replaced. When a Flask
    app is passed its logger propagates to root instead of using its own handler.
    """
    level = getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if os.getenv('LOG_FORMAT', 'text').lower() == 'json':
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if app is not None:
        app.logger.handlers.clear()
        app.logger.propagate = True
