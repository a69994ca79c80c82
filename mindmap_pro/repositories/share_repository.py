"""Share-grant repository."""

from typing import List, Optional, Tuple

from sqlalchemy.orm import Session, contains_eager, joinedload

from ..models import Mindmap, MindmapShare
from ..schemas.mindmap import SharedWithMeQuery
from .base import paginate


class ShareRepository:
    """Grants are keyed by (mindmap_id, user_id); there is no surrogate id."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, mindmap_id: str, user_id: str) -> Optional[MindmapShare]:
        return self.db.get(MindmapShare, (mindmap_id, user_id))

    def upsert(self, mindmap_id: str, user_id: str, can_edit: bool) -> MindmapShare:
        """Create the grant, or update its edit flag if it already exists."""
        share = self.get(mindmap_id, user_id)
        if share is None:
            share = MindmapShare(mindmap_id=mindmap_id, user_id=user_id, can_edit=can_edit)
            self.db.add(share)
        else:
            share.can_edit = can_edit
        self.db.flush()
        return share

    def delete(self, share: MindmapShare) -> None:
        self.db.delete(share)
        self.db.flush()

    def count_for_mindmap(self, mindmap_id: str) -> int:
        """Fresh COUNT(*) of grants; never served from the session's identity map."""
        return (
            self.db.query(MindmapShare)
            .filter(MindmapShare.mindmap_id == mindmap_id)
            .count()
        )

    def mindmap_ids_for_user(self, user_id: str) -> List[str]:
        rows = (
            self.db.query(MindmapShare.mindmap_id)
            .filter(MindmapShare.user_id == user_id)
            .all()
        )
        return [row[0] for row in rows]

    def list_for_user(
        self, user_id: str, params: SharedWithMeQuery
    ) -> Tuple[List[MindmapShare], int]:
        """Grants held by *user_id*, newest first, with mindmap and owner loaded."""
        query = (
            self.db.query(MindmapShare)
            .join(MindmapShare.mindmap)
            .options(
                contains_eager(MindmapShare.mindmap).joinedload(Mindmap.owner),
            )
            .filter(
                MindmapShare.user_id == user_id,
                Mindmap.is_archived.is_(params.is_archived),
            )
            .order_by(MindmapShare.created_at.desc(), MindmapShare.mindmap_id)
        )
        return paginate(query, params)
