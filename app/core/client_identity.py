"""Client identity resolution for admission control.

Resolves the ClientKey (the caller's network address, honouring proxy
headers) and the logical session id from an incoming request.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from fastapi import Request

from app.core.logging import hash_value

LOOPBACK_PLACEHOLDER = "127.0.0.1"

# Checked in order; the first non-empty value wins
CLIENT_IP_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip")
SESSION_ID_HEADERS = ("x-session-id", "session-id")


@dataclass(frozen=True)
class ClientIdentity:
    """Who is asking: the limiter key and the conversation it belongs to."""

    client_key: str
    session_id: str


def parse_key_list(keys_string: str | None) -> frozenset[str]:
    """Parse a comma-separated list of client keys.

    Examples:
        >>> sorted(parse_key_list("127.0.0.1, 10.0.0.2 ,"))
        ['10.0.0.2', '127.0.0.1']
        >>> parse_key_list(None)
        frozenset()
    """
    if not keys_string:
        return frozenset()
    return frozenset(key.strip() for key in keys_string.split(",") if key.strip())


def resolve_client_key(request: Request) -> str:
    """Return the caller's address from proxy headers, or a loopback placeholder.

    X-Forwarded-For may carry a chain of addresses; only the first (the
    original client) is used.
    """
    for header in CLIENT_IP_HEADERS:
        value = request.headers.get(header)
        if not value:
            continue
        candidate = value.split(",")[0].strip()
        if candidate:
            return candidate
    return LOOPBACK_PLACEHOLDER


def resolve_session_id(request: Request, body_session_id: str | None = None) -> str:
    """Return the caller-supplied session id, or a freshly generated one."""
    for header in SESSION_ID_HEADERS:
        value = request.headers.get(header)
        if value and value.strip():
            return value.strip()
    if body_session_id and body_session_id.strip():
        return body_session_id.strip()
    return str(uuid.uuid4())


def resolve_identity(request: Request, body_session_id: str | None = None) -> ClientIdentity:
    return ClientIdentity(
        client_key=resolve_client_key(request),
        session_id=resolve_session_id(request, body_session_id),
    )


def hash_client_key(key: str) -> str:
    """Hash a client key for logging without exposing addresses."""
    return hash_value(key)
