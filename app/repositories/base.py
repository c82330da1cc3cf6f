"""Base repository with generic CRUD operations.

Concrete repositories inherit from this and can add domain-specific queries.
The session is injected so callers can scope work to their own transaction;
it defaults to the Flask-SQLAlchemy scoped session.
"""

from contextlib import contextmanager
from typing import Generic, Iterator, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.exceptions import RepositoryError
from app.extensions import db

T = TypeVar("T", bound=db.Model)


class BaseRepository(Generic[T]):
    """Generic repository providing common database operations.

    Args:
        model_class: The SQLAlchemy model class to operate on.
        session: Session to run statements on; defaults to ``db.session``.
    """

    def __init__(self, model_class: Type[T], session: Session | None = None):
        self._model = model_class
        self._explicit_session = session

    @property
    def session(self) -> Session:
        if self._explicit_session is not None:
            return self._explicit_session
        return db.session

    def create(self, **kwargs) -> T:
        """Insert a new record and flush to obtain its id."""
        instance = self._model(**kwargs)
        with self.wrap_errors(f"Create {self._model.__name__} failed"):
            self.session.add(instance)
            self.session.flush()
        return instance

    def commit(self) -> None:
        """Commit the current transaction."""
        with self.wrap_errors("Commit failed"):
            self.session.commit()

    @contextmanager
    def wrap_errors(self, message: str) -> Iterator[None]:
        """Roll back and re-raise driver errors as ``RepositoryError``."""
        try:
            yield
        except SQLAlchemyError as err:
            self.session.rollback()
            raise RepositoryError(message) from err
