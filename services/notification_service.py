from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Protocol

from services.membership import filter_workspace_members
from services.mention_parser import extract_mentions
from services.watchers import insert_if_absent, register_mentions
from shared.config import notifications_enabled
from shared.db import ChatMention, Notification, User, utc_now

logger = logging.getLogger(__name__)

MENTION_NOTIFICATION_TYPE = 2
MENTION_NOTIFICATION_TITLE = "New Mention"


class MentionContextType(str, Enum):
    TASK = "TASK"
    COMMENT = "COMMENT"
    CHAT = "CHAT"


@dataclass(frozen=True)
class MentionContext:
    """Where a mention happened; only the ids relevant to `type` are set."""

    type: MentionContextType
    task_id: Optional[str] = None
    comment_id: Optional[str] = None
    channel_id: Optional[str] = None
    message_id: Optional[str] = None

    @classmethod
    def for_task(cls, task_id: str) -> "MentionContext":
        return cls(MentionContextType.TASK, task_id=task_id)

    @classmethod
    def for_comment(cls, task_id: str, comment_id: str) -> "MentionContext":
        return cls(MentionContextType.COMMENT, task_id=task_id, comment_id=comment_id)

    @classmethod
    def for_chat(cls, message_id: str, channel_id: Optional[str] = None) -> "MentionContext":
        return cls(MentionContextType.CHAT, channel_id=channel_id, message_id=message_id)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type.value}
        if self.task_id:
            payload["taskId"] = self.task_id
        if self.comment_id:
            payload["commentId"] = self.comment_id
        if self.channel_id:
            payload["channelId"] = self.channel_id
        if self.message_id:
            payload["messageId"] = self.message_id
        return payload


class NotificationSink(Protocol):
    def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        type_code: int,
        payload: Dict[str, Any],
    ) -> None:
        ...


class DbNotificationSink:
    """Persists notifications in the `notifications` table in its own commit."""

    def __init__(self, db) -> None:
        self.db = db

    def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        type_code: int,
        payload: Dict[str, Any],
    ) -> None:
        notification = Notification(
            user_id=str(user_id),
            type=int(type_code),
            title=title,
            message=message,
            data=json.dumps(payload, ensure_ascii=True) if payload else None,
            is_read=False,
            created_at=utc_now(),
        )
        try:
            self.db.add(notification)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise


@dataclass(frozen=True)
class PendingNotification:
    user_id: str
    title: str
    message: str
    type_code: int
    payload: Dict[str, Any]


def _display_name(db, user_id: str) -> str:
    user = db.query(User).filter(User.id == str(user_id)).one_or_none()
    if not user:
        return "Someone"
    return user.full_name or user.email or "Someone"


def resolve_mention_targets(
    db,
    workspace_id: str,
    content: Optional[str],
    author_id: str,
    exclude: Iterable[str] = (),
) -> set:
    mentioned = extract_mentions(content, author_id) - {str(uid) for uid in exclude}
    if not mentioned:
        return set()
    members = filter_workspace_members(db, workspace_id, mentioned)
    dropped = mentioned - members
    if dropped:
        logger.debug("Dropping mentions of non-members workspace=%s users=%s", workspace_id, sorted(dropped))
    return members


def fan_out_mentions(
    db,
    workspace_id: str,
    author_id: str,
    content: Optional[str],
    context: MentionContext,
    base_message: str,
    exclude: Iterable[str] = (),
) -> List[PendingNotification]:
    """
    Persist mention edges for every member mentioned in `content` and build
    the notifications to send once the surrounding transaction commits.

    `exclude` holds ids that were already mentioned before this change.
    """
    targets = resolve_mention_targets(db, workspace_id, content, author_id, exclude=exclude)
    if not targets:
        return []

    if context.type is MentionContextType.CHAT:
        for user_id in sorted(targets):
            insert_if_absent(
                db,
                ChatMention,
                {"message_id": context.message_id, "user_id": user_id, "created_at": utc_now()},
            )
    else:
        comment_id = context.comment_id if context.type is MentionContextType.COMMENT else None
        register_mentions(db, context.task_id, comment_id, targets)

    message = f"{_display_name(db, author_id)} {base_message}"
    payload = context.to_payload()
    return [
        PendingNotification(
            user_id=user_id,
            title=MENTION_NOTIFICATION_TITLE,
            message=message,
            type_code=MENTION_NOTIFICATION_TYPE,
            payload=payload,
        )
        for user_id in sorted(targets)
    ]


def dispatch_notifications(
    pending: Iterable[PendingNotification],
    sink: Optional[NotificationSink],
) -> int:
    """
    Best-effort delivery after commit; a failing sink is logged and skipped.
    Returns the number of notifications handed to the sink.
    """
    if sink is None or not notifications_enabled():
        return 0
    delivered = 0
    for item in pending:
        try:
            sink.notify(item.user_id, item.title, item.message, item.type_code, dict(item.payload))
            delivered += 1
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Failed to notify user=%s of mention: %s", item.user_id, exc)
    return delivered


def notification_to_dict(notification: Notification) -> dict:
    data = None
    if notification.data:
        try:
            data = json.loads(notification.data)
        except json.JSONDecodeError:
            data = None
    return {
        "id": notification.id,
        "userId": notification.user_id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "data": data,
        "isRead": bool(notification.is_read),
        "createdAt": notification.created_at.isoformat() if notification.created_at else None,
    }


def list_notifications(db, user_id: str, limit: int = 50) -> List[dict]:
    rows = (
        db.query(Notification)
        .filter(Notification.user_id == str(user_id))
        .order_by(Notification.created_at.desc())
        .limit(max(1, min(200, int(limit or 50))))
        .all()
    )
    return [notification_to_dict(row) for row in rows]


def mark_notification_read(db, notification_id: str, user_id: str) -> bool:
    notification = (
        db.query(Notification)
        .filter(Notification.id == str(notification_id), Notification.user_id == str(user_id))
        .one_or_none()
    )
    if not notification:
        return False
    notification.is_read = True
    db.commit()
    return True
