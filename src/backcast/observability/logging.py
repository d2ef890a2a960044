"""structlog pipeline for the poller, the scheduler and the CLI.

Events carry the poll-cycle context bound with ``bind_poll_context`` and,
for ``logger.exception`` calls, a structured traceback. Values are
sanitized after rendering the traceback, so secrets in URLs or exception
messages are masked too.
"""

from __future__ import annotations

import json
import os
import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, cast

import structlog
from structlog.tracebacks import ExceptionDictTransformer

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from contextlib import AbstractContextManager

_SECRET_KEY_PATTERN = re.compile(r"(api_key|apikey|authorization|cookie|secret|password)", re.IGNORECASE)
_URL_QUERY_SECRET_PATTERN = re.compile(r"(token|api_key|apikey|access_token)=([^&\s]+)")
_URL_USERINFO_PATTERN = re.compile(r"(https?://)[^/@\s]+@")
_CONTROL_CHARS_PATTERN = re.compile(r"[\x00-\x1f\x7f]")
_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}
_MAX_VALUE_LENGTH = 4000
_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
_MASK = "***"


def _escape(match: re.Match[str]) -> str:
    char = match.group(0)
    return _ESCAPES.get(char, f"\\x{ord(char):02x}")


def _mask_text(value: str) -> str:
    masked = _CONTROL_CHARS_PATTERN.sub(_escape, value)
    masked = _URL_QUERY_SECRET_PATTERN.sub(rf"\1={_MASK}", masked)
    masked = _URL_USERINFO_PATTERN.sub(rf"\1{_MASK}@", masked)
    if len(masked) > _MAX_VALUE_LENGTH:
        return masked[:_MAX_VALUE_LENGTH] + "..."
    return masked


def sanitize_value(value: object) -> object:
    if isinstance(value, str):
        return _mask_text(value)
    if isinstance(value, (int, float, bool)) or value is None:
        return value
    if isinstance(value, dict):
        return {
            key: _MASK if isinstance(key, str) and _SECRET_KEY_PATTERN.search(key) else sanitize_value(val)
            for key, val in value.items()
        }
    if isinstance(value, (list, tuple, set)):
        return [sanitize_value(val) for val in value]
    return _mask_text(str(value))


def sanitize_event(_: object, __: object, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    return cast("MutableMapping[str, Any]", sanitize_value(dict(event_dict)))


def _add_timestamp(_: object, __: object, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def _render_json(_: object, __: object, event_dict: MutableMapping[str, Any]) -> str:
    return json.dumps(event_dict, ensure_ascii=False)


def parse_level() -> str:
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    return level if level in _LEVELS else "INFO"


def build_processors(format_hint: str) -> list[structlog.types.Processor]:
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _add_timestamp,
    ]
    if format_hint == "console":
        # ConsoleRenderer formats exc_info itself
        processors += [sanitize_event, structlog.dev.ConsoleRenderer()]
    else:
        processors += [
            structlog.processors.ExceptionRenderer(ExceptionDictTransformer(show_locals=False)),
            sanitize_event,
            _render_json,
        ]
    return processors


def configure_logging() -> structlog.BoundLogger:
    structlog.configure(
        processors=build_processors(os.environ.get("LOG_FORMAT", "json").lower()),
        wrapper_class=structlog.make_filtering_bound_logger(parse_level()),
        cache_logger_on_first_use=True,
    )
    return cast("structlog.BoundLogger", structlog.get_logger())


def bind_poll_context(resource_id: int, **extra: object) -> AbstractContextManager[None]:
    """Attach ``resource_id`` (and ``extra``) to every event logged inside the block."""
    return structlog.contextvars.bound_contextvars(resource_id=resource_id, **extra)


def get_logger(name: str) -> structlog.BoundLogger:
    return cast("structlog.BoundLogger", structlog.get_logger(name))
