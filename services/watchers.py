from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Set

from sqlalchemy.dialects import postgresql, sqlite

from shared.db import CommentMention, TaskMention, TaskWatcher, utc_now

logger = logging.getLogger(__name__)


def insert_if_absent(db, model, values: dict) -> bool:
    """
    INSERT ... ON CONFLICT DO NOTHING against the edge's composite key.
    Returns True when a new row was written.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model.__table__).values(**values).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite.insert(model.__table__).values(**values).on_conflict_do_nothing()
    else:
        key = {name: values[name] for name in model.__table__.primary_key.columns.keys()}
        if db.query(model).filter_by(**key).first() is not None:
            return False
        db.add(model(**values))
        db.flush()
        return True
    result = db.execute(stmt)
    return bool(result.rowcount)


def ensure_watching(db, task_id: str, user_id: str) -> bool:
    if not task_id or not user_id:
        return False
    created = insert_if_absent(
        db,
        TaskWatcher,
        {"task_id": str(task_id), "user_id": str(user_id), "created_at": utc_now()},
    )
    if created:
        logger.debug("Watcher added task=%s user=%s", task_id, user_id)
    return created


def register_mentions(
    db,
    task_id: str,
    comment_id: Optional[str],
    mentioned_user_ids: Iterable[str],
) -> Set[str]:
    """
    Record a mention edge for each user (task-level when `comment_id` is None,
    comment-level otherwise) and make sure every mentioned user watches the task.

    Returns the ids whose mention edge did not exist before.
    """
    newly_mentioned: Set[str] = set()
    for user_id in sorted({str(uid) for uid in mentioned_user_ids if uid}):
        now = utc_now()
        if comment_id is None:
            created = insert_if_absent(
                db,
                TaskMention,
                {"task_id": str(task_id), "user_id": user_id, "created_at": now},
            )
        else:
            created = insert_if_absent(
                db,
                CommentMention,
                {"comment_id": str(comment_id), "user_id": user_id, "created_at": now},
            )
        if created:
            newly_mentioned.add(user_id)
        ensure_watching(db, task_id, user_id)
    return newly_mentioned


def list_watchers(db, task_id: str) -> List[str]:
    rows = (
        db.query(TaskWatcher.user_id)
        .filter(TaskWatcher.task_id == str(task_id))
        .order_by(TaskWatcher.created_at.asc(), TaskWatcher.user_id.asc())
        .all()
    )
    return [row[0] for row in rows]


def is_watching(db, task_id: str, user_id: str) -> bool:
    return (
        db.query(TaskWatcher.task_id)
        .filter(TaskWatcher.task_id == str(task_id), TaskWatcher.user_id == str(user_id))
        .first()
        is not None
    )
