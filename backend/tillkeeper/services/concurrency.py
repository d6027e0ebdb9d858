# Overview: Row locking and commit handling shared by the till services.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..validation import ConflictError, PersistenceError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def commit_or_raise(*, conflict_message: str | None = None) -> None:
    """
    Commit the current unit of work or roll all of it back.

    Nothing here retries: the caller gets the failure synchronously and the
    operator decides whether to try again. When conflict_message is given,
    an IntegrityError (unique index hit) is reported as a ConflictError
    instead of a storage failure.
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        if conflict_message:
            raise ConflictError(conflict_message) from exc
        raise PersistenceError("Could not save changes", details={"reason": "integrity"}) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError("Could not save changes") from exc


def flush_or_raise(*, conflict_message: str | None = None) -> None:
    """Same contract as commit_or_raise, for checks that must happen mid-transaction."""
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        if conflict_message:
            raise ConflictError(conflict_message) from exc
        raise PersistenceError("Could not save changes", details={"reason": "integrity"}) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError("Could not save changes") from exc
