"""Mindmap repository for database operations.

Listing queries push every filter into SQL so pagination totals are exact.
"""

import uuid
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import joinedload, selectinload

from ..models import Mindmap, MindmapShare, Visibility
from ..exceptions import MindmapNotFoundError
from ..schemas.mindmap import AdminMindmapQuery, MindmapQuery, PublicQuery
from .base import BaseRepository, like_pattern, paginate

_SORT_COLUMNS = {
    "created_at": Mindmap.created_at,
    "updated_at": Mindmap.updated_at,
    "title": Mindmap.title,
}


def _search_filter(term: str, include_description: bool = True):
    pattern = like_pattern(term)
    clauses = [Mindmap.title.ilike(pattern, escape="\\")]
    if include_description:
        clauses.append(Mindmap.description.ilike(pattern, escape="\\"))
    return or_(*clauses)


class MindmapRepository(BaseRepository[Mindmap]):
    """Repository for mindmap CRUD and listing."""

    model_class = Mindmap
    not_found_error = MindmapNotFoundError

    def create(
        self,
        owner_id: str,
        title: str,
        description: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        visibility: Visibility = Visibility.PRIVATE,
        thumbnail: Optional[str] = None,
    ) -> Mindmap:
        mindmap = Mindmap(
            id=str(uuid.uuid4()),
            user_id=owner_id,
            title=title,
            description=description,
            data=data if data is not None else {},
            thumbnail=thumbnail,
            visibility=visibility.value,
            is_favorite=False,
            is_archived=False,
        )
        self.db.add(mindmap)
        self.db.flush()
        return mindmap

    def get_with_access_data(self, mindmap_id: str) -> Optional[Mindmap]:
        """Load a mindmap together with its owner and share grants (and grantees)."""
        return (
            self.db.query(Mindmap)
            .options(
                joinedload(Mindmap.owner),
                selectinload(Mindmap.shares).joinedload(MindmapShare.user),
            )
            .filter(Mindmap.id == mindmap_id)
            .first()
        )

    def get_owned(self, mindmap_id: str, owner_id: str) -> Optional[Mindmap]:
        """Fetch by id and owner in a single query."""
        return (
            self.db.query(Mindmap)
            .filter(Mindmap.id == mindmap_id, Mindmap.user_id == owner_id)
            .first()
        )

    def get_by_share_token(self, token: str) -> Optional[Mindmap]:
        return (
            self.db.query(Mindmap)
            .options(joinedload(Mindmap.owner))
            .filter(Mindmap.share_token == token)
            .first()
        )

    def set_share_token_if_absent(self, mindmap_id: str, token: str) -> int:
        """Store *token* only if the mindmap has none yet. Returns rows changed.

        A single conditional UPDATE, so concurrent first-time callers cannot
        both persist a token.
        """
        return (
            self.db.query(Mindmap)
            .filter(Mindmap.id == mindmap_id, Mindmap.share_token.is_(None))
            .update({Mindmap.share_token: token}, synchronize_session=False)
        )

    def count_by_owner(self, owner_id: str) -> int:
        return self.db.query(Mindmap).filter(Mindmap.user_id == owner_id).count()

    def count_all(self, visibility: Optional[Visibility] = None) -> int:
        query = self.db.query(Mindmap)
        if visibility is not None:
            query = query.filter(Mindmap.visibility == visibility.value)
        return query.count()

    def ids_by_owner(self, owner_id: str) -> List[str]:
        rows = self.db.query(Mindmap.id).filter(Mindmap.user_id == owner_id).all()
        return [row[0] for row in rows]

    def list_owned(self, owner_id: str, params: MindmapQuery) -> Tuple[List[Mindmap], int]:
        query = self.db.query(Mindmap).filter(
            Mindmap.user_id == owner_id,
            Mindmap.is_archived.is_(params.is_archived),
        )
        if params.search:
            query = query.filter(_search_filter(params.search))
        if params.visibility is not None:
            query = query.filter(Mindmap.visibility == params.visibility.value)
        if params.is_favorite is not None:
            query = query.filter(Mindmap.is_favorite.is_(params.is_favorite))

        column = _SORT_COLUMNS[params.sort]
        order = column.asc() if params.order == "asc" else column.desc()
        return paginate(query.order_by(order, Mindmap.id), params)

    def list_public(self, params: PublicQuery) -> Tuple[List[Mindmap], int]:
        query = (
            self.db.query(Mindmap)
            .options(joinedload(Mindmap.owner))
            .filter(
                Mindmap.visibility == Visibility.PUBLIC.value,
                Mindmap.is_archived.is_(False),
            )
        )
        if params.search:
            query = query.filter(_search_filter(params.search))
        return paginate(query.order_by(Mindmap.updated_at.desc(), Mindmap.id), params)

    def list_all(self, params: AdminMindmapQuery) -> Tuple[List[Mindmap], int]:
        """Admin listing across every owner. Search covers the title only."""
        query = self.db.query(Mindmap).options(joinedload(Mindmap.owner))
        if params.search:
            query = query.filter(_search_filter(params.search, include_description=False))
        if params.visibility is not None:
            query = query.filter(Mindmap.visibility == params.visibility.value)
        if params.user_id:
            query = query.filter(Mindmap.user_id == params.user_id)
        return paginate(query.order_by(Mindmap.created_at.desc(), Mindmap.id), params)
