"""SQLAlchemy engine, session factory and transaction helpers."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ..core.config import settings
from ..core.errors import ValidationFailure

# SQLite connections are shared across FastAPI's worker threads.
CONNECT_ARGS = {"check_same_thread": False} if settings.is_sqlite else {}

engine = create_engine(settings.DB_URL, connect_args=CONNECT_ARGS, echo=settings.DB_ECHO)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
# Parent class for every model in ``diy_projects.models``.
Base = declarative_base()


def enable_sqlite_foreign_keys(target_engine) -> None:
    """SQLite ignores ``ON DELETE CASCADE`` unless the pragma is set per connection."""

    if target_engine.dialect.name != "sqlite":
        return

    @event.listens_for(target_engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):  # pragma: no cover - driver hook
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


enable_sqlite_foreign_keys(engine)


def get_db():
    """FastAPI dependency that yields a session and guarantees cleanup."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session, *, commit: bool = True) -> Iterator[Session]:
    """Run a block as one unit of work.

    Any exception rolls the whole session back. With ``commit=False`` the caller
    owns the commit, which lets several catalog/ledger steps share one
    transaction.
    """

    try:
        yield db
        if commit:
            db.commit()
        else:
            db.flush()
    except IntegrityError as exc:
        # CHECK and NOT NULL constraints are the last line of validation.
        db.rollback()
        raise ValidationFailure("Constraint violation", details={"error": str(exc.orig)}) from exc
    except Exception:
        db.rollback()
        raise


def init_db(target_engine=None) -> None:
    """Create any missing tables. Model modules are imported to register them on ``Base``."""

    from ..models import material as _material  # noqa: F401
    from ..models import project as _project  # noqa: F401

    Base.metadata.create_all(bind=target_engine or engine)
