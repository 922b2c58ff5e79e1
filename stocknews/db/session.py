"""Engine and transaction helpers for the article database."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from stocknews.settings import Settings, get_settings

from .models import Base

_ENGINE: Engine | None = None
_CURRENT_URL: str | None = None

MIGRATIONS_DIR = Path(__file__).with_name("migrations")


def _ensure_sqlite_dir(database_url: str) -> None:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)


def get_engine(settings: Settings | None = None) -> Engine:
    """Return the engine for the configured URL, rebuilt when the URL changes."""
    global _ENGINE, _CURRENT_URL

    config = settings or get_settings()
    database_url = config.resolved_database_url
    if _ENGINE is None or _CURRENT_URL != database_url:
        _ensure_sqlite_dir(database_url)
        _ENGINE = create_engine(database_url, future=True)
        _CURRENT_URL = database_url
    return _ENGINE


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Provide a transactional scope for DB operations."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def alembic_config(database_url: str) -> Config:
    """Alembic configuration pointing at the bundled migration scripts."""
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    # ConfigParser interpolation treats % specially
    cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    return cfg


def upgrade_database(database_url: str, revision: str = "head") -> None:
    _ensure_sqlite_dir(database_url)
    command.upgrade(alembic_config(database_url), revision)
