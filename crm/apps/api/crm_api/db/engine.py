"""Database engine builder.

- Default: NullPool (client-side pooling disabled, Supabase pooler does it)
- Supabase host: sslmode=require unless the URL or CRM_DB_SSLMODE says otherwise
- SQLite (local/tests): check_same_thread disabled
- ENV: CRM_DB_POOL=nullpool|queuepool (default: nullpool)
"""

import logging
import os
import re
from typing import Any

from sqlalchemy import Engine, NullPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from crm_api.db.url_policy import get_sslmode_from_url, is_sqlite_url, is_supabase_host

logger = logging.getLogger(__name__)


def _mask_password(url: str) -> str:
    """Mask password in database URL for safe logging."""
    return re.sub(r"://([^:]+):([^@]+)@", r"://\1:***@", url)


def _build_connect_args(url: str, application_name: str) -> dict[str, Any]:
    if is_sqlite_url(url):
        return {"check_same_thread": False}

    connect_args: dict[str, Any] = {}
    if is_supabase_host(url) and not get_sslmode_from_url(url):
        connect_args["sslmode"] = os.getenv("CRM_DB_SSLMODE", "require")

    # Connection tagging for observability
    if application_name:
        connect_args["application_name"] = application_name
    return connect_args


def build_engine(database_url: str | None = None, application_name: str = "relay-crm-api") -> Engine:
    """
    Build SQLAlchemy engine.

    Args:
        database_url: Database URL. If None, reads from env DATABASE_URL.
        application_name: Postgres application_name tag for the connection.

    Returns:
        SQLAlchemy Engine instance.

    Raises:
        ValueError: If DATABASE_URL not provided and not in environment,
            or CRM_DB_POOL is not a known pool mode.

    Environment Variables:
        DATABASE_URL: Runtime connection string (used if not passed as arg)
        CRM_DB_POOL: Pool mode - "nullpool" (default) | "queuepool"
        CRM_DB_POOL_SIZE: QueuePool size (default: 5, only for queuepool)
        CRM_DB_MAX_OVERFLOW: QueuePool overflow (default: 10, only for queuepool)
    """
    url = database_url or os.getenv("DATABASE_URL")
    if not url:
        raise ValueError(
            "DATABASE_URL is required. "
            "Pass as argument or set DATABASE_URL environment variable."
        )

    connect_args = _build_connect_args(url, application_name)
    pool_mode = os.getenv("CRM_DB_POOL", "nullpool").lower()

    if pool_mode == "nullpool":
        engine = create_engine(
            url,
            poolclass=NullPool,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
    elif pool_mode == "queuepool":
        engine = create_engine(
            url,
            pool_pre_ping=True,
            pool_size=int(os.getenv("CRM_DB_POOL_SIZE", "5")),
            max_overflow=int(os.getenv("CRM_DB_MAX_OVERFLOW", "10")),
            connect_args=connect_args,
        )
    else:
        raise ValueError(
            f"Invalid CRM_DB_POOL value: {pool_mode}. "
            "Must be 'nullpool' or 'queuepool'."
        )

    logger.debug(
        "Database engine created: pool=%s, url=%s",
        engine.pool.__class__.__name__,
        _mask_password(url),
    )
    return engine


def build_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    """
    Build SQLAlchemy sessionmaker.

    Args:
        engine: SQLAlchemy Engine instance.

    Returns:
        sessionmaker instance configured with autocommit=False, autoflush=False.

    Examples:
        >>> engine = build_engine()
        >>> SessionLocal = build_sessionmaker(engine)
        >>> with SessionLocal() as session:
        ...     # use session
    """
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
