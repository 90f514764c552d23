"""Environment variable resolution utilities.

Canonical env names + fail-fast validation.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


def get_crm_env() -> str:
    """Get CRM environment name.

    Priority:
    1. CRM_ENV (canonical)
    2. APP_ENV (hosting platform compat)
    3. Default: "local"

    Returns:
        Environment name (lowercase)
    """
    return (
        os.getenv("CRM_ENV")
        or os.getenv("APP_ENV")
        or "local"
    ).lower()


def is_production_env() -> bool:
    """Determine if running in production.

    Returns:
        True if CRM_ENV (or APP_ENV) is "prod" or "production"
    """
    return get_crm_env() in {"prod", "production"}


def get_database_url() -> Optional[str]:
    """Get runtime (tenant-scoped) database URL.

    Production fail-fast: DATABASE_URL is mandatory in prod/production.

    Returns:
        DATABASE_URL, or None outside production when unset

    Raises:
        RuntimeError: If DATABASE_URL is missing in production
    """
    url = os.getenv("DATABASE_URL")
    if not url and is_production_env():
        raise RuntimeError(
            "DATABASE_URL environment variable is required in production (CRM_ENV=prod/production). "
            "Check deployment configuration and secrets injection."
        )
    return url


def get_database_service_url() -> Optional[str]:
    """Get privileged (service role) database URL.

    The service role bypasses row-level security and is only used for
    organization provisioning and membership lookup.

    Priority:
    1. DATABASE_SERVICE_URL (canonical)
    2. DATABASE_URL (single-role deployments)

    Returns:
        Database URL, or None when neither is set outside production
    """
    return os.getenv("DATABASE_SERVICE_URL") or get_database_url()


def get_app_base_url() -> str:
    """Get the public base URL of the web app.

    Used to build the email confirmation redirect target for signups.

    Returns:
        Base URL without trailing slash (default: http://localhost:3000)
    """
    url = os.getenv("APP_BASE_URL") or "http://localhost:3000"
    return url.rstrip("/")


def get_cors_allowed_origins() -> list[str]:
    """Get CORS allowlist.

    CORS_ALLOWED_ORIGINS is a comma-separated list. When unset, localhost
    variants are allowed (credentials mode cannot use wildcard origins).

    Returns:
        List of allowed origins
    """
    cors_origins_env = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if cors_origins_env:
        return [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]

    return [
        "http://localhost:3000",
        "http://localhost:8000",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:8000",
    ]


def use_secure_cookies() -> bool:
    """Whether session cookies carry the Secure flag.

    SESSION_COOKIE_SECURE overrides; otherwise Secure in production only.

    Returns:
        True if cookies must be Secure
    """
    override = os.getenv("SESSION_COOKIE_SECURE")
    if override is not None:
        return override.lower() in {"1", "true", "yes"}
    return is_production_env()


@dataclass(frozen=True)
class SupabaseAuthSettings:
    """Where auth calls go and which key they present.

    Only the publishable key is ever read here. Privileged data access goes
    through DATABASE_SERVICE_URL, never a Supabase secret key.
    """

    url: str
    publishable_key: str
    legacy_key: bool = False


def get_supabase_auth_settings() -> SupabaseAuthSettings:
    """Resolve Supabase Auth settings.

    Key priority:
    1. SB_PUBLISHABLE_KEY (canonical)
    2. SUPABASE_ANON_KEY (legacy projects)

    Raises:
        RuntimeError: SUPABASE_URL or both keys missing, or a non-https
            SUPABASE_URL in production
    """
    url = (os.getenv("SUPABASE_URL") or "").rstrip("/")
    if not url:
        raise RuntimeError("SUPABASE_URL environment variable not set. Required for authentication.")
    if is_production_env() and urlparse(url).scheme != "https":
        raise RuntimeError("SUPABASE_URL must use https in production.")

    key = os.getenv("SB_PUBLISHABLE_KEY")
    if key:
        return SupabaseAuthSettings(url=url, publishable_key=key)

    key = os.getenv("SUPABASE_ANON_KEY")
    if key:
        logger.info("Using legacy SUPABASE_ANON_KEY (consider migrating to SB_PUBLISHABLE_KEY)")
        return SupabaseAuthSettings(url=url, publishable_key=key, legacy_key=True)

    raise RuntimeError(
        "Neither SB_PUBLISHABLE_KEY nor SUPABASE_ANON_KEY environment variable is set. "
        "Set SB_PUBLISHABLE_KEY (recommended) or SUPABASE_ANON_KEY (legacy)."
    )
