"""Mindmap snapshot cache (cache-aside).

Snapshots are full ``MindmapDetailResponse`` documents serialised as JSON
under ``mindmap:{id}``. They carry ``user_id`` and ``visibility`` so the read
fast path can be decided from the snapshot alone. Writers only ever delete
keys; a snapshot is stored only by a read that has passed authorization.
"""

import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from ..schemas.mindmap import MindmapDetailResponse

logger = logging.getLogger(__name__)

KEY_PREFIX = "mindmap:"


def cache_key(mindmap_id: str) -> str:
    return f"{KEY_PREFIX}{mindmap_id}"


class MindmapCache:
    def __init__(self, cache):
        self.cache = cache

    def get(self, mindmap_id: str) -> Optional[MindmapDetailResponse]:
        """Return the cached snapshot, or None on miss.

        An unreadable entry is deleted and reported as a miss.
        """
        raw = self.cache.get(cache_key(mindmap_id))
        if raw is None:
            return None
        try:
            return MindmapDetailResponse.model_validate_json(raw)
        except PydanticValidationError:
            logger.warning("[Cache] Discarding unreadable snapshot for mindmap %s", mindmap_id)
            self.cache.delete(cache_key(mindmap_id))
            return None

    def put(self, detail: MindmapDetailResponse, ttl_seconds: int) -> None:
        self.cache.set(cache_key(detail.id), detail.model_dump_json(), ttl_seconds)

    def invalidate(self, *mindmap_ids: str) -> None:
        if mindmap_ids:
            self.cache.delete(*(cache_key(mid) for mid in mindmap_ids))
