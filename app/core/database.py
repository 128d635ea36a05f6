from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import URL, make_url

from app.config import settings

logger = logging.getLogger(__name__)


def create_store_engine(
    database_url: str,
    *,
    pool_min_size: int | None = None,
    pool_max_size: int | None = None,
) -> Engine:
    """Build a synchronous engine for either the lead store or the customer store."""
    if not database_url:
        raise ValueError("A database URL is required to build a store engine.")

    parsed_url = make_url(database_url)
    sync_url, connect_args, drivername = _coerce_sync_database_url(parsed_url)
    pool_min = max(pool_min_size or settings.db_pool_min_size, 1)
    pool_max = max(pool_max_size or settings.db_pool_max_size, pool_min)
    is_sqlite = drivername.startswith("sqlite")
    engine_kwargs: dict[str, Any] = {
        "echo": settings.debug and not is_sqlite,
        "connect_args": connect_args,
        "pool_pre_ping": not is_sqlite,
    }
    if not is_sqlite:
        engine_kwargs["pool_size"] = pool_min
        engine_kwargs["max_overflow"] = max(pool_max - pool_min, 0)
        engine_kwargs["pool_recycle"] = 300

    engine = create_engine(sync_url, **engine_kwargs)
    logger.info(
        "database.engine.initialized",
        extra={"backend": _resolve_backend_tag(parsed_url, drivername)},
    )
    return engine


def check_engine_health(engine: Engine | None) -> bool:
    """Run ``SELECT 1`` against an engine; unconfigured stores count as healthy."""
    if engine is None:
        return True

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


def _coerce_sync_database_url(url: URL) -> tuple[str, dict[str, Any], str]:
    """Convert async connection strings into sync SQLAlchemy URLs."""
    drivername = url.drivername
    connect_args: dict[str, Any] = {}
    if drivername.endswith("+asyncpg"):
        drivername = drivername.replace("+asyncpg", "+psycopg2")
    elif drivername.endswith("+psycopg"):
        drivername = drivername.replace("+psycopg", "+psycopg2")
    elif drivername in {"mysql", "mysql+aiomysql", "mysql+asyncmy"}:
        drivername = "mysql+pymysql"
    elif drivername == "sqlite+aiosqlite":
        drivername = "sqlite"
    sync_url = url.set(drivername=drivername)
    query = dict(sync_url.query) if sync_url.query else {}
    removed_ssl = False
    if "ssl" in query:
        query.pop("ssl", None)
        removed_ssl = True
    sync_url = sync_url.set(query=query)

    host = (url.host or "").lower()
    if drivername.startswith("postgresql"):
        query = dict(sync_url.query) if sync_url.query else {}
        if "sslmode" not in query and (removed_ssl or "supabase.co" in host):
            connect_args["sslmode"] = "require"
    if drivername.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
    return sync_url.render_as_string(hide_password=False), connect_args, drivername


def _resolve_backend_tag(url: URL, drivername: str) -> str:
    if drivername.startswith("sqlite"):
        return "sqlite"
    if drivername.startswith("mysql"):
        return "mysql"
    host = (url.host or "").lower()
    if "supabase.co" in host:
        return "supabase"
    return "postgres"
