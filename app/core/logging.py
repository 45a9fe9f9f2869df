"""Structured logging for the chat admission API.

Every log line is a JSON object carrying:
- the request_id of the HTTP request being served (via contextvars)
- the ``extra`` fields passed by the caller, after scrubbing

Scrubbing has two strengths. Conversation text and credentials are replaced
by ``[REDACTED]``. Client addresses and session ids are replaced by a short
stable hash, so admission decisions for one caller can still be correlated
across lines without storing the address itself.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from app.core.config import LogSettings, settings

REDACTED = "[REDACTED]"

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Replaced outright
REDACTED_KEYS: frozenset[str] = frozenset(
    {
        "api_key",
        "x-api-key",
        "llm_api_key",
        "authorization",
        "cookie",
        "set-cookie",
        "secret",
        "password",
        "token",
        "base_url",
        "content",
        "messages",
        "reply",
        "prompt",
        "completion",
        "system_prompt",
    }
)

# Replaced by hash_value(); correlatable but not reversible
HASHED_KEYS: frozenset[str] = frozenset(
    {
        "client_key",
        "session_id",
        "x-forwarded-for",
        "x-real-ip",
        "cf-connecting-ip",
        "x-session-id",
    }
)

# Standard LogRecord attributes; everything else on a record came from ``extra``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


def set_request_id(request_id: str | None) -> None:
    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


def hash_value(value: Any) -> str:
    """Short, stable, non-reversible fingerprint of a value."""
    return hashlib.sha256(str(value).encode()).hexdigest()[:16]


class Scrubber:
    """Applies redaction and hashing rules to structured log fields.

    Keys are matched case-insensitively at any nesting depth inside
    mappings, lists and tuples.
    """

    def __init__(
        self,
        redacted_keys: Iterable[str] | None = None,
        hashed_keys: Iterable[str] | None = None,
    ) -> None:
        self.redacted_keys = {k.lower() for k in (redacted_keys or REDACTED_KEYS)}
        self.hashed_keys = {k.lower() for k in (hashed_keys if hashed_keys is not None else HASHED_KEYS)}

    def field(self, key: str, value: Any) -> Any:
        lowered = key.lower()
        if lowered in self.redacted_keys:
            return REDACTED
        if lowered in self.hashed_keys:
            return None if value is None else hash_value(value)
        return self.value(value)

    def value(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {k: self.field(str(k), v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(self.value(v) for v in value)
        return value

    def extras(self, record: LogRecord) -> dict[str, Any]:
        """Scrubbed ``extra`` fields of a record."""
        return {
            key: self.field(key, value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }


class RequestIdFilter(logging.Filter):
    """Attach the current request_id to records that lack one."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            request_id = get_request_id()
            if request_id:
                record.request_id = request_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Scrub extras in place, so any formatter downstream sees safe values.

    Passing ``sensitive_keys`` redacts exactly those keys and hashes nothing.
    """

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        if sensitive_keys is None:
            self.scrubber = Scrubber()
        else:
            self.scrubber = Scrubber(redacted_keys=sensitive_keys, hashed_keys=())

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        # A record reaching several handlers must not be hashed twice
        if getattr(record, "_scrubbed", False):
            return True
        for key, value in self.scrubber.extras(record).items():
            setattr(record, key, value)
        record._scrubbed = True
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, extras."""

    def __init__(self, *, scrubber: Scrubber | None = None, ensure_ascii: bool = True) -> None:
        super().__init__()
        self.scrubber = scrubber or Scrubber()
        self.ensure_ascii = ensure_ascii

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            payload["request_id"] = request_id

        # Records already scrubbed by SensitiveDataFilter are emitted as-is
        if getattr(record, "_scrubbed", False):
            payload.update(
                (k, v)
                for k, v in record.__dict__.items()
                if k not in _RECORD_ATTRS and not k.startswith("_")
            )
        else:
            payload.update(self.scrubber.extras(record))

        if record.exc_info:
            payload["exc_type"] = record.exc_info[0].__name__ if record.exc_info[0] else None

        return json.dumps(payload, default=str, ensure_ascii=self.ensure_ascii)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    if log_settings.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    path = Path(log_settings.file_path or "logs/app.log")
    path.parent.mkdir(parents=True, exist_ok=True)
    if not log_settings.max_bytes:
        return logging.FileHandler(path, encoding="utf-8")
    return RotatingFileHandler(
        path,
        maxBytes=log_settings.max_bytes,
        backupCount=log_settings.backup_count,
        encoding="utf-8",
    )


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install the JSON (or plain) handler on the root logger.

    Safe to call more than once; existing root handlers are replaced.

    Args:
        log_settings: Logging settings; defaults to the global settings.
    """

    cfg = log_settings or settings.log
    level = getattr(logging, cfg.level.upper(), logging.INFO)

    handler = _build_handler(cfg)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    if cfg.format.lower() == "plain":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.access").propagate = False

    # The OpenAI SDK logs every HTTP call through httpx at INFO
    for noisy in ("httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))

