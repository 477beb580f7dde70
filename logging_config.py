import json
import logging
from datetime import datetime, timezone

from config import config

EXTRA_FIELDS = ("invoice_no", "row", "error_type", "details")


class StructuredFormatter(logging.Formatter):
    def format(self, record):
        log_obj = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Add extra fields if present
        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_obj[field] = getattr(record, field)

        if record.exc_info:
            log_obj['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_obj)


def setup_logging() -> None:
    """Configure structured file logging plus a plain console handler"""
    handlers = []

    if config.LOG_FILE:
        json_handler = logging.FileHandler(config.LOG_FILE.replace('.log', '_structured.json'))
        json_handler.setFormatter(StructuredFormatter())
        handlers.append(json_handler)

    standard_handler = logging.StreamHandler()
    standard_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    handlers.append(standard_handler)

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        handlers=handlers
    )
