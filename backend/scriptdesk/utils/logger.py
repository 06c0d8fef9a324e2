"""Structured logging configuration"""
import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

# extra={} fields copied into the JSON record when present
_EXTRA_FIELDS = ("subject_id", "request_id", "event", "path", "method", "client", "scope", "status", "headers")

# Never written to logs, even in header dumps
SENSITIVE_HEADERS = frozenset({
    "authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "x-auth-token",
    "x-forwarded-client-cert",
    "cf-access-jwt-assertion",
    "cf-authorization",
})


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """Setup structured JSON logging"""
    logger = logging.getLogger("scriptdesk")
    logger.setLevel(log_level)

    # Remove existing handlers
    logger.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)

    return logger


def mask_ip(ip: Optional[str]) -> Optional[str]:
    """Coarsen a client IP before it is logged (/24 for IPv4, 4 hextets for IPv6)."""
    if not ip:
        return None
    value = ip.strip()
    if not value:
        return None
    if "." in value:
        parts = value.split(".")
        if len(parts) != 4:
            return value
        return f"{parts[0]}.{parts[1]}.{parts[2]}.0"
    if ":" in value:
        return ":".join(value.split(":")[:4]) + "::"
    return value


def redact_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Copy of ``headers`` safe to log: credentials dropped, long values truncated."""
    out: Dict[str, str] = {}
    for key, value in headers.items():
        name = key.lower()
        if name in SENSITIVE_HEADERS:
            continue
        out[name] = value if len(value) <= 512 else value[:512] + "..."
    return out


# Global logger instance
logger = setup_logging()
