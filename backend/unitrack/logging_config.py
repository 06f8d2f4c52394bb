"""
Structured JSON logging.

Every log line is a single JSON object on stdout carrying the channel
(http, db, attendance, risk), the current request ID and any business
context (course_id, student_id, record_id) passed by the caller.
"""

import logging
import json
import os
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

# Set by the request middleware, read by every log entry of that request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CHANNELS = ("http", "db", "attendance", "risk")


class StructuredJsonFormatter(logging.Formatter):
    """
    Formats a record as:

        {"timestamp": ..., "level": ..., "message": ..., "channel": ...,
         "context": {"request_id": ..., ...}, "extra": {...}}
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, timezone.utc)
        log_entry = {
            "timestamp": timestamp.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", record.name.rsplit(".", 1)[-1]),
            "context": {
                "request_id": request_id_var.get(""),
                **(getattr(record, "context", None) or {})
            },
            "extra": getattr(record, "extra_data", None) or {}
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(level: str = None):
    """Install the JSON formatter on the root logger and set channel levels."""
    level_value = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level_value)
    root_logger.handlers = [handler]

    for channel in CHANNELS:
        logging.getLogger(f"unitrack.{channel}").setLevel(level_value)

    return root_logger


def get_logger(channel: str) -> logging.Logger:
    return logging.getLogger(f"unitrack.{channel}")


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None):
    """
    Emit a structured entry.

    Args:
        logger: Channel logger from get_logger()
        level: INFO, WARNING, ERROR or DEBUG
        message: Human-readable message
        context: Business identifiers (course_id, student_id, record_id)
        extra_data: Metrics and metadata (duration_ms, counts, ip)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.log(
        log_level,
        message,
        extra={
            "context": context or {},
            "extra_data": extra_data or {},
            "channel": logger.name.rsplit(".", 1)[-1]
        }
    )


def generate_request_id() -> str:
    return str(uuid.uuid4())
