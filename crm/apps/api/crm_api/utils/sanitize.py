"""Redaction of credentials and contact PII before anything reaches a log line.

Strings are handled by size:
 1. > MAX_STR_LOG        → replaced by length + sha256 prefix
 2. > MAX_STR_FOR_REGEX  → only an Authorization-style prefix is checked
 3. otherwise            → credential and email patterns are redacted

Mapping keys are matched case-insensitively: exact PII names (email, phone,
full_name) and anything containing a credential word (token, password, ...).
"""

import hashlib
import re
import traceback
from typing import Any

MAX_STR_LOG: int = 2048
MAX_STR_FOR_REGEX: int = 512
MAX_DEPTH: int = 6

REDACTED = "[REDACTED]"

_PII_KEYS = frozenset({"email", "phone", "full_name", "first_name", "last_name"})
_CREDENTIAL_WORDS = ("token", "password", "secret", "cookie", "authorization", "api_key", "apikey")

# Auth scheme values ("Bearer eyJ...") and credential query/cookie params keep
# their label, only the value is replaced.
_AUTH_SCHEME_RE = re.compile(r"\b(Bearer|Basic) \S+")
_CREDENTIAL_PARAM_RE = re.compile(
    r"\b(access_token|refresh_token|token_hash|sb-access-token|sb-refresh-token|password)=[^\s&;]+",
    re.IGNORECASE,
)
_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")

_AUTH_PREFIXES = ("Bearer ", "Basic ")


def is_sensitive_key(key: Any) -> bool:
    """Return True if a mapping key names a credential or PII field."""
    if not isinstance(key, str):
        return False
    lowered = key.lower()
    return lowered in _PII_KEYS or any(word in lowered for word in _CREDENTIAL_WORDS)


def _redact(s: str) -> str:
    s = _AUTH_SCHEME_RE.sub(lambda m: f"{m.group(1)} {REDACTED}", s)
    s = _CREDENTIAL_PARAM_RE.sub(lambda m: f"{m.group(1)}={REDACTED}", s)
    return _EMAIL_RE.sub(REDACTED, s)


def sanitize_str(s: str) -> str:
    if not isinstance(s, str):
        return s  # type: ignore[return-value]

    n = len(s)
    if n > MAX_STR_LOG:
        digest = hashlib.sha256(s.encode("utf-8", errors="replace")).hexdigest()[:16]
        return f"[TRUNCATED len={n} sha256={digest}]"

    if n > MAX_STR_FOR_REGEX:
        # No regex on long input; a whole header value is all we can catch here
        return REDACTED if s.startswith(_AUTH_PREFIXES) else s

    return _redact(s)


def sanitize_obj(obj: Any, depth: int = 0) -> Any:
    """Recursively sanitize a log ``extra`` value.

    Dict values under sensitive keys are replaced outright; tuples come back
    as lists, which is what the JSON formatter emits anyway.
    """
    if depth >= MAX_DEPTH:
        return "[DEPTH_LIMIT]"

    if isinstance(obj, dict):
        return {
            key: REDACTED if is_sensitive_key(key) else sanitize_obj(value, depth + 1)
            for key, value in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return [sanitize_obj(item, depth + 1) for item in obj]
    if isinstance(obj, str):
        return sanitize_str(obj)
    return obj


def sanitize_exc(exc_info: tuple) -> str:
    """Format exc_info as a traceback with each frame sanitized separately.

    Locals are never captured. Redacting per frame keeps every chunk under
    the regex size gate, so a long traceback is still scrubbed.
    """
    _type, value, _tb = exc_info
    if value is None:
        return ""
    try:
        te = traceback.TracebackException.from_exception(value, capture_locals=False)
        return "".join(sanitize_str(chunk) for chunk in te.format())
    except Exception:
        # Formatting runs inside the log formatter and must not raise
        return "[TRACEBACK_FORMAT_ERROR]"
