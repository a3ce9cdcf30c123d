# rbibli/sa/repositories/base.py
from contextlib import contextmanager
from typing import TypeVar, Generic, Optional, List, Type, Dict, Any, Iterable, Iterator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rbibli.errors import ConflictError, NotFoundError, ValidationError
from rbibli.sa.models import Base

T = TypeVar('T', bound=Base)


def require_text(value: Optional[str], field: str = 'name') -> str:
    """Return the stripped value, rejecting None and blank strings.

    Raises:
        ValidationError: If the value is missing or blank
    """
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} must not be empty")
    return str(value).strip()


class BaseRepository(Generic[T]):
    """Common lookups and commit handling shared by all repositories."""

    model: Type[T]
    entity_name: str = 'Entity'

    def __init__(self, session: Session):
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session

    def get_by_id(self, id_value: str) -> Optional[T]:
        return self.session.query(self.model).filter(self.model.id == id_value).one_or_none()

    def require(self, id_value: str) -> T:
        """Get a row by id or raise NotFoundError"""
        instance = self.get_by_id(id_value)
        if instance is None:
            raise NotFoundError(self.entity_name, id_value)
        return instance

    def get_all(self, limit: Optional[int] = None, offset: Optional[int] = None) -> List[T]:
        query = self.session.query(self.model)
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        return query.all()

    def count(self) -> int:
        return self.session.query(self.model).count()

    def _apply_updates(self, instance: T, fields: Dict[str, Any], allowed: Iterable[str]) -> None:
        """Copy the given fields onto the instance, rejecting unknown names"""
        allowed = set(allowed)
        unknown = set(fields) - allowed
        if unknown:
            raise ValidationError(f"Unknown {self.entity_name.lower()} field(s): {', '.join(sorted(unknown))}")
        for field, value in fields.items():
            setattr(instance, field, value)

    def _commit(self, conflict_message: str) -> None:
        """Commit the unit of work, turning constraint violations into ConflictError"""
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError(conflict_message) from None

    @contextmanager
    def _rollback_on_error(self) -> Iterator[Session]:
        """Roll the session back if the body raises, so no partial write survives"""
        try:
            yield self.session
        except Exception:
            self.session.rollback()
            raise
