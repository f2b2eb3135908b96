# backend/tutordesk/repositories/base_repository.py
"""
Base repository for the tutordesk stores.

Subclasses add the domain queries; this class holds the write helpers
every store shares. Repositories flush so generated ids are available,
but never commit. Services own the transaction boundary.
"""

import logging
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..database.session_utils import constraint_name_from_error

T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """
    Shared data access for one mapped model.

    Attributes:
        db: SQLAlchemy session, owned by the calling service
        model: Mapped class this repository stores
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    def _integrity_failure(self, action: str, exc: IntegrityError) -> RepositoryException:
        self.logger.error("Integrity error %s %s: %s", action, self.model.__name__, exc)
        return RepositoryException(
            f"Integrity constraint violated: {exc}",
            constraint=constraint_name_from_error(exc),
        )

    def get_by_id(self, id: str) -> Optional[T]:
        try:
            return self.db.query(self.model).filter(self.model.id == id).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting {self.model.__name__} {id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve {self.model.__name__}: {str(e)}")

    def create(self, **kwargs) -> T:
        """Add one row and flush so its id is populated."""
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()
            return entity
        except IntegrityError as exc:
            raise self._integrity_failure("creating", exc) from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Failed to create {self.model.__name__}: {str(e)}")

    def bulk_create(self, rows: List[Dict[str, Any]]) -> List[T]:
        """
        Add many rows in a single flush.

        Either every row is flushed or a RepositoryException is raised and
        the caller's transaction rolls back. Entities come back in input order.
        """
        try:
            entities = [self.model(**data) for data in rows]
            self.db.add_all(entities)
            self.db.flush()
            return entities
        except IntegrityError as exc:
            raise self._integrity_failure("bulk creating", exc) from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error bulk creating {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Failed to bulk create {self.model.__name__}: {str(e)}")

    def delete(self, id: str) -> bool:
        """Delete by primary key. False when the row does not exist."""
        entity = self.get_by_id(id)
        if entity is None:
            return False
        try:
            self.db.delete(entity)
            self.db.flush()
            return True
        except IntegrityError as exc:
            raise self._integrity_failure("deleting", exc) from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting {self.model.__name__} {id}: {str(e)}")
            raise RepositoryException(f"Failed to delete {self.model.__name__}: {str(e)}")
