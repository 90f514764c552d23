"""Slug helpers for organization URLs."""

import re
import uuid

_WHITESPACE_RE = re.compile(r"\s+")
_INVALID_RE = re.compile(r"[^a-z0-9-]")
_DASHES_RE = re.compile(r"-{2,}")

SUFFIX_LENGTH = 12


def slugify(value: str, fallback: str = "user") -> str:
    """Lower-case, collapse whitespace runs to "-", drop anything else.

    >>> slugify("Ada  Lovelace")
    'ada-lovelace'
    >>> slugify("  ")
    'user'
    """
    slug = _WHITESPACE_RE.sub("-", value.strip().lower())
    slug = _INVALID_RE.sub("", slug)
    slug = _DASHES_RE.sub("-", slug).strip("-")
    return slug or fallback


def unique_slug(value: str) -> str:
    """Slug plus a random suffix, unique across organizations."""
    return f"{slugify(value)}-{uuid.uuid4().hex[:SUFFIX_LENGTH]}"
