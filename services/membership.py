from __future__ import annotations

from typing import Iterable, Optional, Set

from shared.db import WorkspaceMember


def is_workspace_member(db, workspace_id: Optional[str], user_id: Optional[str]) -> bool:
    if not workspace_id or not user_id:
        return False
    return (
        db.query(WorkspaceMember.id)
        .filter(
            WorkspaceMember.workspace_id == str(workspace_id),
            WorkspaceMember.user_id == str(user_id),
        )
        .first()
        is not None
    )


def filter_workspace_members(db, workspace_id: str, user_ids: Iterable[str]) -> Set[str]:
    """Subset of `user_ids` that currently belong to the workspace."""
    candidates = {str(user_id) for user_id in user_ids if user_id}
    if not candidates or not workspace_id:
        return set()
    rows = (
        db.query(WorkspaceMember.user_id)
        .filter(
            WorkspaceMember.workspace_id == str(workspace_id),
            WorkspaceMember.user_id.in_(candidates),
        )
        .all()
    )
    return {row[0] for row in rows}
