"""Base repository with shared get-by-ID and pagination patterns.

Subclasses specify model_class and not_found_error; the base provides
get_by_id / get_by_id_optional and the page-slicing helper every listing
query uses.
"""

from typing import TypeVar, Generic, List, Optional, Tuple, Type
from sqlalchemy.orm import Session, Query

from ..database import Base
from ..exceptions import MindmapProException
from ..schemas.common import PageParams

ModelT = TypeVar("ModelT", bound=Base)


def like_pattern(term: str) -> str:
    """Case-insensitive substring pattern with LIKE wildcards escaped.

    Use with ``column.ilike(like_pattern(term), escape="\\\\")``.
    """
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def paginate(query: Query, params: PageParams) -> Tuple[list, int]:
    """Return ``(rows, total)`` for one page of *query*.

    The count runs on the unordered, unsliced query so it reflects every
    matching row.
    """
    total = query.order_by(None).count()
    rows = query.offset(params.offset).limit(params.limit).all()
    return rows, total


class BaseRepository(Generic[ModelT]):
    """Shared repository logic for SQLAlchemy models.

    Class variables to set in subclasses:
        model_class:     The SQLAlchemy model (e.g., Mindmap)
        id_column:       Name of the primary-key column (default "id")
        not_found_error: Exception class to raise from get_by_id
    """

    model_class: Type[ModelT]
    id_column: str = "id"
    not_found_error: Type[MindmapProException]

    def __init__(self, db: Session):
        self.db = db

    def _base_query(self) -> Query:
        return self.db.query(self.model_class)

    def get_by_id(self, entity_id: str) -> ModelT:
        """Get entity by primary key. Raises not_found_error if missing."""
        entity = self.get_by_id_optional(entity_id)
        if entity is None:
            raise self.not_found_error(entity_id)
        return entity

    def get_by_id_optional(self, entity_id: str) -> Optional[ModelT]:
        """Get entity by primary key, or None if not found."""
        col = getattr(self.model_class, self.id_column)
        return self._base_query().filter(col == entity_id).first()

    def get_many(self, entity_ids: List[str]) -> List[ModelT]:
        if not entity_ids:
            return []
        col = getattr(self.model_class, self.id_column)
        return self._base_query().filter(col.in_(entity_ids)).all()
