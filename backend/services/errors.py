"""Error kinds raised by the services, each mapped to an HTTP status"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from fastapi import status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

logger = logging.getLogger("questlog.errors")


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: str = "An unexpected error occurred"

    def __init__(self, detail: str | None = None):
        if detail:
            self.detail = detail
        super().__init__(self.detail)


@dataclass(frozen=True)
class FieldError:
    path: str
    message: str

    def to_dict(self) -> dict:
        return {"path": self.path, "message": self.message}


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid request data"

    def __init__(self, detail: str | None = None, errors: list[FieldError] | None = None):
        self.errors = list(errors or [])
        super().__init__(detail)


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Not found"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "Not allowed"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    detail = "Conflicting state"


class PersistenceError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Storage failure"


@contextmanager
def committing(session: Session, *, conflict: AppError | None = None) -> Iterator[None]:
    """Run the block and commit, translating store failures.

    A unique/constraint violation becomes `conflict` when given, any other
    store failure a PersistenceError. AppErrors raised in the block roll back
    and propagate unchanged.
    """
    try:
        yield
        session.commit()
    except AppError:
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        if conflict is not None:
            raise conflict from e
        logger.error(f"Integrity error: {e.orig}")
        raise PersistenceError() from e
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Store failure: {e}")
        raise PersistenceError() from e
