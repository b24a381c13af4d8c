"""
Engine and session factory for the roof lead tables.

SQLite is the local default; any other URL (Postgres in production) gets a
pooled engine with pre-ping and a statement timeout.
"""
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
import logging

from roof_finder.core.config import settings
from roof_finder.db.base import Base

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL

if not DATABASE_URL:
    raise ValueError("[ERROR] DATABASE_URL not found!")


def make_engine(url: str, **kwargs) -> Engine:
    """Build an engine with per-dialect connection arguments."""
    if make_url(url).get_backend_name() == "sqlite":
        # Sessions are handed across FastAPI's threadpool
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        return create_engine(url, **kwargs)

    kwargs.setdefault("connect_args", {
        "connect_timeout": 10,
        "options": "-c statement_timeout=30000",
    })
    kwargs.setdefault("pool_pre_ping", True)
    if "poolclass" not in kwargs:
        kwargs.update(pool_size=5, max_overflow=10, pool_recycle=3600)
    return create_engine(url, **kwargs)


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """FastAPI dependency yielding a session closed after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def test_connection(bind: Engine = None) -> bool:
    """Ping the database; failures are reported, not raised."""
    bind = bind or engine
    try:
        with bind.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(f"[WARN] Database ping failed: {e}")
        return False
    logger.info(f"[OK] Database reachable: {bind.url.render_as_string(hide_password=True)}")
    return True


def init_db(bind: Engine = None) -> bool:
    """Create any missing roof lead tables (alembic is the real source of schema)."""
    import roof_finder.models  # noqa: F401  registers every table on Base.metadata

    try:
        Base.metadata.create_all(bind=bind or engine)
    except SQLAlchemyError as e:
        logger.warning(f"[WARN] create_all failed: {e}")
        return False
    return True


def close_db_connection():
    engine.dispose()
    logger.info("[OK] Database connections closed")
