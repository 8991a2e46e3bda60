"""
Database engine for WorkflowGuard billing state (``users``, ``overages``).

``settings.database_url`` picks the backend:
  - SQLite (default, ``sqlite:///data/workflowguard.db``): WAL journal and a
    5s busy timeout so the sweep and admin requests can share the file.
  - PostgreSQL (``postgresql://...``): small pre-pinged pool.

Schema is owned by Alembic (``alembic/versions``). Without an alembic.ini
next to the project (tests, ad-hoc scripts) tables come from SQLModel
metadata instead.
"""

import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine, make_url
from sqlmodel import SQLModel, create_engine

from app.config import settings

logger = logging.getLogger(__name__)

DATABASE_URL: str = settings.database_url
ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"

_engine: Optional[Engine] = None


def _sqlite_engine(url) -> Engine:
    if url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(
        url,
        echo=settings.database_echo,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        try:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()

    return engine


def _server_engine(url) -> Engine:
    return create_engine(
        url,
        echo=settings.database_echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


def get_engine() -> Engine:
    """Lazily create the process-wide engine."""
    global _engine
    if _engine is None:
        url = make_url(DATABASE_URL)
        _engine = _sqlite_engine(url) if url.get_backend_name() == "sqlite" else _server_engine(url)
        logger.info("Database engine created: %s", url.render_as_string(hide_password=True))
    return _engine


def init_db() -> None:
    """Bring the schema up to date at startup."""
    engine = get_engine()
    if ALEMBIC_INI.exists():
        _upgrade_head()
        return

    from app.models.billing import Overage, User  # noqa: F401  register tables
    SQLModel.metadata.create_all(engine)
    logger.info("No alembic.ini at %s; tables created from metadata", ALEMBIC_INI)


def _upgrade_head() -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ALEMBIC_INI))
    cfg.set_main_option("script_location", str(ALEMBIC_INI.parent / "alembic"))
    cfg.set_main_option("sqlalchemy.url", DATABASE_URL)
    # structlog is already configured; keep alembic.ini's logging sections out of it
    cfg.attributes["configure_logger"] = False
    try:
        command.upgrade(cfg, "head")
    except Exception:
        logger.exception("Alembic upgrade failed")
        raise
    logger.info("Alembic migrations applied (upgrade head)")


def close_db() -> None:
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
        logger.info("Database engine disposed")
