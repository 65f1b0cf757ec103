from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from vetting.models import Base

_lock = threading.Lock()
_engine = None
_SessionLocal = None

DATA_DIR = Path(__file__).parent / "data"

# Seconds a writer waits on a locked SQLite database before failing.
_LOCK_TIMEOUT = 15


def init_db(db_path: str | Path | None = None) -> None:
    global _engine, _SessionLocal
    with _lock:
        if _engine is not None:
            _engine.dispose()
        if db_path is None:
            db_path = os.environ.get("VETTING_DB_PATH") or DATA_DIR / "vetting.db"
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        _engine = create_engine(
            f"sqlite:///{db_path}",
            connect_args={"check_same_thread": False, "timeout": _LOCK_TIMEOUT},
        )
        Base.metadata.create_all(_engine)
        _SessionLocal = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)


def get_session() -> Session:
    with _lock:
        if _SessionLocal is None:
            raise RuntimeError("init_db() has not been called")
        factory = _SessionLocal
    return factory()  # type: ignore[misc]


@contextmanager
def session_scope(factory: Callable[[], Session] = get_session) -> Generator[Session, None, None]:
    """Context manager providing a transactional session scope.

    Usage (background audits, MCP server, scripts)::

        with session_scope() as session:
            ...
    """
    session = factory()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def session_generator() -> Generator[Session, None, None]:
    """Generator-based session suitable for FastAPI ``Depends()``."""
    with session_scope() as session:
        yield session
