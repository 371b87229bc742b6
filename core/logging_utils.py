"""Logging utilities for the universal adapter.

Provides root JSON logging setup, header redaction and structured invocation
log entries shared by all provider adapters.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from pythonjsonlogger import json as jsonlogger

# Header names (or fragments) whose values never appear in logs
SENSITIVE_KEYS = [
    "api_key",
    "apikey",
    "api-key",
    "authorization",
    "token",
    "password",
    "secret",
    "credential",
    "session",
    "cookie",
]

SENSITIVE_HEADER_PREFIXES = [
    "x-api-key",
    "x-auth",
    "x-token",
    "x-secret",
    "x-amz-security-token",
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
]

_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}


def configure_json_logging(level: str = "INFO", pretty: bool = False) -> None:
    """Route all loggers through a single JSON handler on the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        pretty: Indented output for local runs instead of one line per record
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    handler = logging.StreamHandler()
    handler.setLevel(log_level)
    if pretty:
        handler.setFormatter(PrettyJsonFormatter())
    else:
        handler.setFormatter(
            jsonlogger.JsonFormatter(
                "%(asctime)s %(name)s %(levelname)s %(message)s",
                timestamp=True,
            )
        )
    root_logger.addHandler(handler)


class PrettyJsonFormatter(logging.Formatter):
    """Indented JSON output that shortens long strings and lists."""

    def __init__(self, max_string_length: int = 500, max_list_items: int = 10):
        super().__init__()
        self.max_string_length = max_string_length
        self.max_list_items = max_list_items

    def _truncate(self, value: Any, depth: int = 0) -> Any:
        if depth > 3:
            return "..."
        if isinstance(value, str) and len(value) > self.max_string_length:
            return value[: self.max_string_length] + f"... ({len(value)} chars)"
        if isinstance(value, dict):
            return {k: self._truncate(v, depth + 1) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            items = [self._truncate(v, depth + 1) for v in value[: self.max_list_items]]
            if len(value) > self.max_list_items:
                items.append(f"... ({len(value)} items)")
            return items
        return value

    def format(self, record: logging.LogRecord) -> str:
        data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRIBUTES:
                data[key] = self._truncate(value)
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def _is_sensitive(name: str) -> bool:
    lowered = name.lower()
    if any(lowered.startswith(prefix) for prefix in SENSITIVE_HEADER_PREFIXES):
        return True
    return any(key in lowered for key in SENSITIVE_KEYS)


def sanitize_headers(
    headers: Union[Mapping[str, Any], Iterable[Tuple[str, Any]], None],
) -> Dict[str, Any]:
    """Copy headers with sensitive values replaced by ``[REDACTED]``.

    Accepts plain mappings, ``httpx.Headers`` and sequences of pairs. Repeated
    header names keep all their values as a list.
    """
    if headers is None:
        return {}
    if hasattr(headers, "multi_items"):
        pairs: Iterable[Tuple[str, Any]] = headers.multi_items()
    elif isinstance(headers, Mapping):
        pairs = headers.items()
    else:
        pairs = headers

    sanitized: Dict[str, Any] = {}
    for name, value in pairs:
        value = "[REDACTED]" if _is_sensitive(name) else value
        if name in sanitized:
            existing = sanitized[name]
            sanitized[name] = (existing if isinstance(existing, list) else [existing]) + [value]
        else:
            sanitized[name] = value
    return sanitized


def format_request_log(
    invocation_id: str,
    runtime: str,
    method: str,
    url: str,
    headers: Any,
    body_size: int = 0,
    function: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the structured ``extra`` for an invocation start entry."""
    return {
        "invocation_id": invocation_id,
        "runtime": runtime,
        "function": function,
        "http_method": method,
        "request_url": url,
        "request_headers": sanitize_headers(headers),
        "request_body_size": body_size,
    }


def format_response_log(
    invocation_id: str,
    status_code: int,
    headers: Any,
    duration_ms: float,
    cookies: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Build the structured ``extra`` for an invocation end entry."""
    return {
        "invocation_id": invocation_id,
        "response_status": status_code,
        "response_headers": sanitize_headers(headers),
        "response_cookies": len(cookies or []),
        "duration_ms": round(duration_ms, 2),
        "success": status_code < 500,
    }


class InvocationLogger(logging.LoggerAdapter):
    """Logger handed to main as ``context.log``; tags records with the invocation id."""

    def process(self, msg: Any, kwargs: Any) -> Tuple[Any, Any]:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs
