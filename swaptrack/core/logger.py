import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# Fields callers may attach through `extra=` that end up as top-level JSON keys
STRUCTURED_FIELDS = ("event", "signature", "slot", "mint", "wallet", "platform")


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs JSON strings for structured logging.
    """
    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # logger.info("msg", extra={"mint": mint})
        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                log_record[field] = getattr(record, field)

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_record, default=str)


def get_logger(name: str, level=logging.INFO) -> logging.Logger:
    """
    Returns a logger configured with JSON formatting.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Check if handler already exists to avoid duplicates
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)

    return logger


def log_event(logger: logging.Logger, event: str, data: Dict[str, Any], level=logging.INFO):
    """
    Log a structured event. data is merged into the JSON payload.
    """
    payload = {
        "event": event,
        **data
    }
    logger.log(level, json.dumps(payload, default=str))
