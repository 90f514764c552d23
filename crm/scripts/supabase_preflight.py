#!/usr/bin/env python3
"""
Supabase Preflight Validator.

Checks the Supabase-related environment of the CRM API before deploy.

Usage:
    python scripts/supabase_preflight.py
    python scripts/supabase_preflight.py --strict

Exit Codes:
    0: PASS (no errors; warnings are printed but do not fail unless --strict)
    1: FAIL

Environment Variables:
    SUPABASE_URL: Supabase project URL (required, https in production)
    SB_PUBLISHABLE_KEY: Publishable key (legacy SUPABASE_ANON_KEY accepted with a warning)
    DATABASE_URL: Runtime connection string (required)
    DATABASE_SERVICE_URL: Privileged provisioning connection (optional)
    CRM_ENV: Environment name ("prod"/"production" enables production checks)
"""

import argparse
import os
import sys
from urllib.parse import parse_qs, urlparse

PRODUCTION_ENVS = {"prod", "production"}


def _is_supabase_host(url: str) -> bool:
    """Check if URL points to Supabase host."""
    hostname = (urlparse(url).hostname or "").lower()
    return hostname.endswith(".supabase.co") or hostname.endswith(".pooler.supabase.com")


def validate_supabase_api(production: bool) -> tuple[list[str], list[str]]:
    """
    Validate SUPABASE_URL and the publishable key.

    Returns:
        (errors, warnings)
    """
    errors: list[str] = []
    warnings: list[str] = []

    url = os.getenv("SUPABASE_URL", "")
    if not url:
        errors.append("ERROR: SUPABASE_URL not set. Fix: Copy the project URL from the Supabase Dashboard.")
    elif production and urlparse(url).scheme != "https":
        errors.append(f"ERROR: SUPABASE_URL must use https in production, got {url}.")

    if not os.getenv("SB_PUBLISHABLE_KEY"):
        if os.getenv("SUPABASE_ANON_KEY"):
            warnings.append("WARNING: Using legacy SUPABASE_ANON_KEY. Fix: Migrate to SB_PUBLISHABLE_KEY.")
        else:
            errors.append("ERROR: SB_PUBLISHABLE_KEY not set.")

    if os.getenv("SB_SECRET_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY"):
        warnings.append(
            "WARNING: Supabase secret key detected in environment. "
            "The API provisions through DATABASE_SERVICE_URL and never reads it. "
            "Fix: Remove from deployment config."
        )

    return errors, warnings


def validate_database_url(name: str, url: str) -> list[str]:
    """
    Validate a Postgres connection string pointing at Supabase.

    Non-Supabase URLs are accepted as-is.
    """
    if not _is_supabase_host(url):
        return []

    errors = []
    parsed = urlparse(url)
    sslmode = parse_qs(parsed.query).get("sslmode", [None])[0]
    if sslmode in {"disable", "allow", "prefer"}:
        errors.append(f"ERROR: {name} has sslmode={sslmode}. Fix: Use sslmode=require or stricter.")

    if parsed.port is None:
        errors.append(f"ERROR: {name} missing explicit port. Fix: Use 5432 (session) or 6543 (transaction pooler).")
    return errors


def run_checks() -> tuple[list[str], list[str]]:
    production = os.getenv("CRM_ENV", os.getenv("APP_ENV", "")).lower() in PRODUCTION_ENVS

    errors, warnings = validate_supabase_api(production)

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        errors.append("ERROR: DATABASE_URL not set in environment.")
    else:
        errors.extend(validate_database_url("DATABASE_URL", database_url))

    service_url = os.getenv("DATABASE_SERVICE_URL")
    if service_url:
        errors.extend(validate_database_url("DATABASE_SERVICE_URL", service_url))
    elif production:
        warnings.append(
            "WARNING: DATABASE_SERVICE_URL not set; provisioning will use DATABASE_URL."
        )

    return errors, warnings


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Supabase Preflight Validator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/supabase_preflight.py
  python scripts/supabase_preflight.py --strict
        """,
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat warnings as failures",
    )
    args = parser.parse_args(argv)

    errors, warnings = run_checks()
    for warning in warnings:
        print(warning)

    if errors or (args.strict and warnings):
        print("FAIL: Supabase preflight validation failed")
        print()
        for error in errors:
            print(error)
        return 1

    mode = "strict" if args.strict else "default"
    print(f"PASS: Supabase preflight validation successful ({mode} mode)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
