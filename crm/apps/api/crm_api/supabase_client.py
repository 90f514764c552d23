"""Supabase Auth client.

One process-wide client, used only for auth calls (sign_up,
sign_in_with_password, verify_otp, get_user, sign_out). The server holds no
session of its own: every call carries the caller's credential, so the
client never persists or refreshes tokens.
"""

import logging
from functools import lru_cache

from supabase import Client, ClientOptions, create_client

from crm_api.config.env import SupabaseAuthSettings, get_supabase_auth_settings

logger = logging.getLogger(__name__)


def build_auth_client(settings: SupabaseAuthSettings) -> Client:
    logger.info(
        "supabase.auth_client.init",
        extra={"supabase_url": settings.url, "legacy_key": settings.legacy_key},
    )
    return create_client(
        settings.url,
        settings.publishable_key,
        options=ClientOptions(auto_refresh_token=False, persist_session=False),
    )


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    """Process-wide auth client; RuntimeError if Supabase is not configured."""
    return build_auth_client(get_supabase_auth_settings())
