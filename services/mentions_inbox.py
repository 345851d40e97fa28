from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from services.notification_service import MentionContextType
from shared.config import get_mentions_max_page_size
from shared.db import ChatMention, ChatMessage, CommentMention, Task, TaskComment, TaskMention
from shared.errors import ValidationFailure

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 140


def _preview(text: Optional[str]) -> str:
    if not text:
        return ""
    collapsed = " ".join(str(text).split())
    if len(collapsed) <= PREVIEW_LENGTH:
        return collapsed
    return collapsed[: PREVIEW_LENGTH - 3].rstrip() + "..."


def _page_params(page: Any, page_size: Any) -> tuple:
    try:
        page = int(page if page is not None else 1)
        page_size = int(page_size if page_size is not None else 20)
    except (TypeError, ValueError) as exc:
        raise ValidationFailure("page and pageSize must be integers") from exc
    page = max(1, page)
    page_size = max(1, min(get_mentions_max_page_size(), page_size))
    return page, page_size


def _task_mentions(db, user_id: str, workspace_id: Optional[str]):
    query = (
        db.query(TaskMention, Task)
        .join(Task, Task.id == TaskMention.task_id)
        .filter(TaskMention.user_id == user_id)
    )
    if workspace_id:
        query = query.filter(Task.workspace_id == workspace_id)
    return query


def _comment_mentions(db, user_id: str, workspace_id: Optional[str]):
    query = (
        db.query(CommentMention, TaskComment, Task)
        .join(TaskComment, TaskComment.id == CommentMention.comment_id)
        .join(Task, Task.id == TaskComment.task_id)
        .filter(CommentMention.user_id == user_id)
    )
    if workspace_id:
        query = query.filter(Task.workspace_id == workspace_id)
    return query


def _chat_mentions(db, user_id: str, workspace_id: Optional[str]):
    query = (
        db.query(ChatMention, ChatMessage)
        .join(ChatMessage, ChatMessage.id == ChatMention.message_id)
        .filter(ChatMention.user_id == user_id)
    )
    if workspace_id:
        query = query.filter(ChatMessage.workspace_id == workspace_id)
    return query


def list_user_mentions(
    db,
    user_id: str,
    page: int = 1,
    page_size: int = 20,
    workspace_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Every place the user was mentioned (task bodies, comments, chat),
    newest first. Each source is fetched up to the end of the requested
    page, then merged.
    """
    user_id = str(user_id)
    workspace_id = str(workspace_id) if workspace_id else None
    page, page_size = _page_params(page, page_size)
    window = page * page_size

    task_query = _task_mentions(db, user_id, workspace_id)
    comment_query = _comment_mentions(db, user_id, workspace_id)
    chat_query = _chat_mentions(db, user_id, workspace_id)
    total = task_query.count() + comment_query.count() + chat_query.count()

    items: List[Dict[str, Any]] = []
    for mention, task in task_query.order_by(TaskMention.created_at.desc()).limit(window).all():
        items.append(
            {
                "type": MentionContextType.TASK.value,
                "workspaceId": task.workspace_id,
                "taskId": task.id,
                "taskTitle": task.title,
                "preview": _preview(task.description or task.sub_description or task.title),
                "createdAt": mention.created_at,
            }
        )
    for mention, comment, task in comment_query.order_by(CommentMention.created_at.desc()).limit(window).all():
        items.append(
            {
                "type": MentionContextType.COMMENT.value,
                "workspaceId": task.workspace_id,
                "taskId": task.id,
                "taskTitle": task.title,
                "commentId": comment.id,
                "authorId": comment.user_id,
                "preview": _preview(comment.content),
                "createdAt": mention.created_at,
            }
        )
    for mention, message in chat_query.order_by(ChatMention.created_at.desc()).limit(window).all():
        items.append(
            {
                "type": MentionContextType.CHAT.value,
                "workspaceId": message.workspace_id,
                "channelId": message.channel_id,
                "messageId": message.id,
                "authorId": message.sender_id,
                "preview": _preview(message.content),
                "createdAt": mention.created_at,
            }
        )

    items.sort(key=lambda item: item["createdAt"], reverse=True)
    start = (page - 1) * page_size
    page_items = items[start : start + page_size]
    for item in page_items:
        item["createdAt"] = item["createdAt"].isoformat() if item["createdAt"] else None

    logger.debug("Mentions inbox user=%s page=%s total=%s", user_id, page, total)
    return {
        "items": page_items,
        "page": page,
        "pageSize": page_size,
        "total": total,
        "hasMore": start + len(page_items) < total,
    }
