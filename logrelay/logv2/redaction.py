"""
Payload helpers: error stringification (always on) and opt-in credential
redaction.

Redaction matches whole key names, not substrings. A key is normalised to
snake_case (`botToken` -> `bot_token`, `X-Api-Key` -> `x_api_key`) and is
redacted when it equals a credential name or ends with `_<credential name>`:

    token, bot_token, access_token   -> redacted
    max_tokens, token_count, keyboard -> kept
"""

from __future__ import annotations

import re
from typing import Any, Mapping


CREDENTIAL_KEYS = frozenset(
    {
        "token",
        "secret",
        "password",
        "passwd",
        "authorization",
        "cookie",
        "api_key",
        "apikey",
        "bearer",
        "credentials",
        "private_key",
    }
)

REDACTED = "[REDACTED]"

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_SEPARATORS = re.compile(r"[^a-z0-9]+")


def normalize_key(k: Any) -> str:
    s = _CAMEL_BOUNDARY.sub("_", str(k).strip())
    return _SEPARATORS.sub("_", s.lower()).strip("_")


def is_credential_key(k: Any) -> bool:
    name = normalize_key(k)
    if not name:
        return False
    if name in CREDENTIAL_KEYS:
        return True
    return any(name.endswith("_" + cred) for cred in CREDENTIAL_KEYS)


def stringify_errors(obj: Any) -> Any:
    """
    Replace exception values (at any depth) with their string form so payloads
    stay JSON-encodable.
    """
    if isinstance(obj, BaseException):
        return str(obj)
    if isinstance(obj, Mapping):
        return {str(k): stringify_errors(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [stringify_errors(x) for x in obj]
    return obj


def redact_credentials(obj: Any) -> Any:
    """
    Replace values under credential keys with REDACTED, at any depth.
    None stays None so "not set" remains visible.
    """
    if isinstance(obj, Mapping):
        return {
            str(k): (None if v is None else REDACTED) if is_credential_key(k) else redact_credentials(v)
            for k, v in obj.items()
        }
    if isinstance(obj, list):
        return [redact_credentials(x) for x in obj]
    return obj
