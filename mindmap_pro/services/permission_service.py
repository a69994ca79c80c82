"""Access control for mindmaps. Pure functions, no I/O.

This is the ONE place where mindmap access rules are defined. Everything
else in the system calls into it.

Rules, in priority order:
    1. requester is the owner           -> OWNER
    2. requester holds a share grant    -> EDITOR_SHARE / VIEWER_SHARE
    3. visibility is PUBLIC             -> PUBLIC_VIEW
    4. otherwise                        -> DENIED

Only OWNER may write. Anonymous share-token reads do not come through here.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional

from ..models.mindmap import Visibility

if TYPE_CHECKING:
    from ..models.mindmap import MindmapShare


class AccessLevel(str, Enum):
    OWNER = "OWNER"
    EDITOR_SHARE = "EDITOR_SHARE"
    VIEWER_SHARE = "VIEWER_SHARE"
    PUBLIC_VIEW = "PUBLIC_VIEW"
    DENIED = "DENIED"


_READ_LEVELS = frozenset({
    AccessLevel.OWNER,
    AccessLevel.EDITOR_SHARE,
    AccessLevel.VIEWER_SHARE,
    AccessLevel.PUBLIC_VIEW,
})


def evaluate_access(
    owner_id: str,
    visibility: Visibility | str,
    shares: Iterable[MindmapShare],
    requester_id: Optional[str],
) -> AccessLevel:
    """Compute *requester_id*'s access level to one mindmap.

    Args:
        owner_id: The mindmap's ``user_id``.
        visibility: Stored visibility (enum or its string value).
        shares: The mindmap's share grants; only ``user_id`` and
            ``can_edit`` are read.
        requester_id: Authenticated user id, or None for anonymous.
    """
    if requester_id is not None and requester_id == owner_id:
        return AccessLevel.OWNER

    if requester_id is not None:
        for share in shares:
            if share.user_id == requester_id:
                return AccessLevel.EDITOR_SHARE if share.can_edit else AccessLevel.VIEWER_SHARE

    if Visibility(visibility) == Visibility.PUBLIC:
        return AccessLevel.PUBLIC_VIEW

    return AccessLevel.DENIED


def can_read(level: AccessLevel) -> bool:
    return level in _READ_LEVELS


def can_write(level: AccessLevel) -> bool:
    return level == AccessLevel.OWNER


def can_use_cached_snapshot(
    owner_id: str,
    visibility: Visibility | str,
    requester_id: Optional[str],
) -> bool:
    """Whether a cached snapshot alone proves read access.

    Snapshots do not track grant membership, so only the owner and PUBLIC
    reads qualify. Everyone else must be re-evaluated against the store.
    """
    if requester_id is not None and requester_id == owner_id:
        return True
    return Visibility(visibility) == Visibility.PUBLIC


def derive_visibility(current: Visibility | str, grant_count: int) -> Visibility:
    """Visibility implied by the current number of share grants.

    Any grant means SHARED. With no grants a SHARED mindmap falls back to
    PRIVATE, while PRIVATE and PUBLIC are left as the owner set them.
    """
    current = Visibility(current)
    if grant_count > 0:
        return Visibility.SHARED
    if current == Visibility.SHARED:
        return Visibility.PRIVATE
    return current
