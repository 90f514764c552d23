"""Database URL policy helpers: host detection and SSL mode lookup.

Shared by crm_api.db.engine (API runtime) and alembic/env.py (migrations).
"""

from typing import Optional
from urllib.parse import parse_qs, urlparse


def is_supabase_host(url: str) -> bool:
    """Return True if the URL points to a Supabase-managed host.

    Matches:
      - *.supabase.co             (direct / session pooler)
      - *.pooler.supabase.com     (transaction pooler / PgBouncer, port 6543)
    """
    return ".supabase.co" in url or ".pooler.supabase.com" in url


def is_sqlite_url(url: str) -> bool:
    """Return True for SQLite URLs (local development and tests)."""
    return url.startswith("sqlite")


def get_sslmode_from_url(url: str) -> Optional[str]:
    """Extract sslmode value from URL query string.

    Returns None if sslmode is not present in the URL.

    Examples:
        >>> get_sslmode_from_url("postgresql://host/db?sslmode=require")
        'require'
        >>> get_sslmode_from_url("postgresql://host/db")
    """
    modes = parse_qs(urlparse(url).query).get("sslmode", [])
    return modes[0] if modes else None
