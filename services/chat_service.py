from __future__ import annotations

import logging
from typing import List, Optional

from services.membership import is_workspace_member
from services.notification_service import (
    DbNotificationSink,
    MentionContext,
    NotificationSink,
    PendingNotification,
    dispatch_notifications,
    fan_out_mentions,
)
from shared.db import ChatMessage, utc_now
from shared.errors import PermissionDenied, ValidationFailure

logger = logging.getLogger(__name__)


def chat_message_to_dict(message: ChatMessage) -> dict:
    return {
        "id": message.id,
        "workspaceId": message.workspace_id,
        "channelId": message.channel_id,
        "senderId": message.sender_id,
        "content": message.content,
        "createdAt": message.created_at.isoformat() if message.created_at else None,
    }


def post_chat_message(
    db,
    workspace_id: str,
    sender_id: str,
    channel_id: Optional[str],
    content: str,
    sink: Optional[NotificationSink] = None,
) -> ChatMessage:
    """Store a chat message and notify the workspace members it mentions."""
    workspace_id, sender_id = str(workspace_id), str(sender_id)
    text = str(content or "").strip()
    if not text:
        raise ValidationFailure("content is required")
    if not is_workspace_member(db, workspace_id, sender_id):
        raise PermissionDenied("You are not a member of this workspace.", entity="workspace", entity_id=workspace_id)

    pending: List[PendingNotification] = []
    try:
        message = ChatMessage(
            workspace_id=workspace_id,
            channel_id=str(channel_id) if channel_id else None,
            sender_id=sender_id,
            content=text,
            created_at=utc_now(),
        )
        db.add(message)
        db.flush()
        pending = fan_out_mentions(
            db,
            workspace_id,
            sender_id,
            text,
            MentionContext.for_chat(message.id, message.channel_id),
            "mentioned you in a message",
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    if pending:
        dispatch_notifications(pending, sink if sink is not None else DbNotificationSink(db))
    logger.info(
        "Chat message posted id=%s workspace=%s sender=%s mentions=%s",
        message.id,
        workspace_id,
        sender_id,
        len(pending),
    )
    return message
