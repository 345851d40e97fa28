from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from repository.tasks_repo import (
    activity_to_dict,
    add_activity,
    comment_to_dict,
    delete_task as delete_task_rows,
    first_list_status,
    get_list,
    get_subtask,
    get_task,
    list_activities,
    list_comments,
    list_subtasks,
    list_tasks_in_list as query_tasks_in_list,
    match_workspace_tags,
    next_order_index,
    next_subtask_order_index,
    subtask_to_dict,
    task_to_dict,
)
from schemas.tasks_schema import validate_subtask_create, validate_task_create, validate_task_update
from services.membership import is_workspace_member
from services.mention_parser import extract_mentions
from services.notification_service import (
    DbNotificationSink,
    MentionContext,
    NotificationSink,
    PendingNotification,
    dispatch_notifications,
    fan_out_mentions,
)
from services.task_permissions import can_mutate_task, can_toggle_subtask
from services.watchers import ensure_watching, list_watchers
from shared.db import ActivityType, Subtask, Task, TaskComment, utc_now
from shared.errors import InvalidReference, NotFound, PermissionDenied, ValidationFailure

logger = logging.getLogger(__name__)

# (update key, Task attribute, activity kind) for every logged scalar field.
_TRACKED_FIELDS = (
    ("status", "status", ActivityType.STATUS_CHANGED),
    ("customStatus", "custom_status", ActivityType.CUSTOM_STATUS_CHANGED),
    ("priority", "priority", ActivityType.PRIORITY_CHANGED),
    ("assigneeId", "assignee_id", ActivityType.ASSIGNEE_CHANGED),
    ("dueDate", "due_date", ActivityType.DUE_DATE_CHANGED),
    ("title", "title", ActivityType.TITLE_CHANGED),
    ("description", "description", ActivityType.DESCRIPTION_CHANGED),
    ("subDescription", "sub_description", ActivityType.SUB_DESCRIPTION_CHANGED),
)


def _activity_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _mentionable_text(*parts: Optional[str]) -> str:
    return "\n".join(part for part in parts if part)


def _require_member(db, workspace_id: str, actor_id: str) -> None:
    if not is_workspace_member(db, workspace_id, actor_id):
        raise PermissionDenied("You are not a member of this workspace.", entity="workspace", entity_id=workspace_id)


def _require_assignee(db, workspace_id: str, assignee_id: Optional[str]) -> None:
    if assignee_id and not is_workspace_member(db, workspace_id, assignee_id):
        raise InvalidReference(
            "Assignee is not a member of this workspace.",
            entity="user",
            entity_id=assignee_id,
        )


def _load_task(db, workspace_id: str, task_id: str) -> Task:
    task = get_task(db, workspace_id, task_id)
    if not task:
        raise NotFound("Task not found.", entity="task", entity_id=str(task_id))
    return task


def _load_owned_task(db, workspace_id: str, actor_id: str, task_id: str) -> Task:
    task = _load_task(db, workspace_id, task_id)
    allowed, reason = can_mutate_task(task, actor_id)
    if not allowed:
        raise PermissionDenied(reason or "forbidden", entity="task", entity_id=task.id)
    return task


def _dispatch(db, pending: List[PendingNotification], sink: Optional[NotificationSink]) -> None:
    """Runs after commit; the sink never takes part in the mutation's transaction."""
    if pending:
        dispatch_notifications(pending, sink if sink is not None else DbNotificationSink(db))


def create_task(
    db,
    workspace_id: str,
    actor_id: str,
    fields: Dict[str, Any],
    sink: Optional[NotificationSink] = None,
) -> Task:
    try:
        task, pending = _create_task(db, str(workspace_id), str(actor_id), fields)
        db.commit()
    except Exception:
        db.rollback()
        raise
    _dispatch(db, pending, sink)
    logger.info("Task created id=%s workspace=%s actor=%s", task.id, workspace_id, actor_id)
    return task


def _create_task(db, workspace_id: str, actor_id: str, fields: Dict[str, Any]) -> Tuple[Task, List[PendingNotification]]:
    normalized = validate_task_create(fields)
    _require_member(db, workspace_id, actor_id)

    task_list = get_list(db, workspace_id, normalized["listId"])
    if not task_list:
        raise NotFound("List not found.", entity="list", entity_id=normalized["listId"])

    assignee_id = normalized["assigneeId"]
    _require_assignee(db, workspace_id, assignee_id)

    custom_status = normalized["customStatus"] or first_list_status(db, task_list.id)
    now = utc_now()
    task = Task(
        workspace_id=workspace_id,
        list_id=task_list.id,
        title=normalized["title"],
        description=normalized["description"],
        sub_description=normalized["subDescription"],
        status=normalized["status"],
        custom_status=custom_status,
        priority=normalized["priority"],
        assignee_id=assignee_id,
        created_by_id=actor_id,
        due_date=normalized["dueDate"],
        order_index=next_order_index(db, task_list.id),
        created_at=now,
        updated_at=now,
    )
    task.tags = match_workspace_tags(db, workspace_id, normalized["tagIds"])
    db.add(task)
    db.flush()

    add_activity(db, task.id, ActivityType.CREATED.value, actor_id, new_value=task.title, timestamp=now)

    ensure_watching(db, task.id, actor_id)
    if assignee_id and assignee_id != actor_id:
        ensure_watching(db, task.id, assignee_id)

    pending = fan_out_mentions(
        db,
        workspace_id,
        actor_id,
        _mentionable_text(task.description, task.sub_description),
        MentionContext.for_task(task.id),
        f"mentioned you in task '{task.title}'",
    )
    db.flush()
    return task, pending


def update_task(
    db,
    workspace_id: str,
    actor_id: str,
    task_id: str,
    partial_fields: Dict[str, Any],
    sink: Optional[NotificationSink] = None,
) -> Task:
    try:
        task, pending = _update_task(db, str(workspace_id), str(actor_id), str(task_id), partial_fields)
        db.commit()
    except Exception:
        db.rollback()
        raise
    _dispatch(db, pending, sink)
    logger.info("Task updated id=%s workspace=%s actor=%s", task.id, workspace_id, actor_id)
    return task


def _update_task(
    db,
    workspace_id: str,
    actor_id: str,
    task_id: str,
    partial_fields: Dict[str, Any],
) -> Tuple[Task, List[PendingNotification]]:
    task = _load_owned_task(db, workspace_id, actor_id, task_id)
    updates = validate_task_update(partial_fields)

    if "assigneeId" in updates and updates["assigneeId"] != task.assignee_id:
        _require_assignee(db, workspace_id, updates["assigneeId"])

    previous_mentions = extract_mentions(_mentionable_text(task.description, task.sub_description), actor_id)
    now = utc_now()

    for key, attribute, activity_type in _TRACKED_FIELDS:
        if key not in updates:
            continue
        old_value = getattr(task, attribute)
        new_value = updates[key]
        if old_value == new_value:
            continue
        add_activity(
            db,
            task.id,
            activity_type.value,
            actor_id,
            old_value=_activity_value(old_value),
            new_value=_activity_value(new_value),
            timestamp=now,
        )
        setattr(task, attribute, new_value)
        if key == "assigneeId" and new_value:
            ensure_watching(db, task.id, new_value)

    if "orderIndex" in updates:
        task.order_index = updates["orderIndex"]

    if "tagIds" in updates:
        task.tags = []
        task.tags = match_workspace_tags(db, workspace_id, updates["tagIds"])

    pending: List[PendingNotification] = []
    if "description" in updates or "subDescription" in updates:
        pending = fan_out_mentions(
            db,
            workspace_id,
            actor_id,
            _mentionable_text(task.description, task.sub_description),
            MentionContext.for_task(task.id),
            f"mentioned you in task '{task.title}'",
            exclude=previous_mentions,
        )

    task.updated_at = now
    db.flush()
    return task, pending


def delete_task(db, workspace_id: str, actor_id: str, task_id: str) -> None:
    try:
        task = _load_owned_task(db, str(workspace_id), str(actor_id), str(task_id))
        delete_task_rows(db, task)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Task deleted id=%s workspace=%s actor=%s", task_id, workspace_id, actor_id)


def add_comment(
    db,
    workspace_id: str,
    actor_id: str,
    task_id: str,
    content: str,
    sink: Optional[NotificationSink] = None,
) -> TaskComment:
    workspace_id, actor_id = str(workspace_id), str(actor_id)
    try:
        if not content or not str(content).strip():
            raise ValidationFailure("content is required")
        task = _load_task(db, workspace_id, task_id)
        _require_member(db, workspace_id, actor_id)

        comment = TaskComment(task_id=task.id, user_id=actor_id, content=str(content), created_at=utc_now())
        db.add(comment)
        db.flush()
        add_activity(db, task.id, ActivityType.COMMENT_ADDED.value, actor_id, new_value="Comment added")

        pending = fan_out_mentions(
            db,
            workspace_id,
            actor_id,
            comment.content,
            MentionContext.for_comment(task.id, comment.id),
            f"mentioned you in a comment on task '{task.title}'",
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    _dispatch(db, pending, sink)
    logger.info("Comment added id=%s task=%s actor=%s", comment.id, task_id, actor_id)
    return comment


def add_subtask(
    db,
    workspace_id: str,
    actor_id: str,
    task_id: str,
    fields: Dict[str, Any],
) -> Subtask:
    workspace_id, actor_id = str(workspace_id), str(actor_id)
    try:
        task = _load_owned_task(db, workspace_id, actor_id, task_id)
        normalized = validate_subtask_create(fields)
        _require_assignee(db, workspace_id, normalized["assigneeId"])

        subtask = Subtask(
            task_id=task.id,
            title=normalized["title"],
            is_completed=False,
            assignee_id=normalized["assigneeId"],
            order_index=next_subtask_order_index(db, task.id),
            created_at=utc_now(),
        )
        db.add(subtask)
        add_activity(db, task.id, ActivityType.SUBTASK_ADDED.value, actor_id, new_value=subtask.title)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Subtask added id=%s task=%s actor=%s", subtask.id, task_id, actor_id)
    return subtask


def toggle_subtask(db, workspace_id: str, actor_id: str, subtask_id: str) -> Subtask:
    workspace_id, actor_id = str(workspace_id), str(actor_id)
    try:
        subtask = get_subtask(db, workspace_id, subtask_id)
        if not subtask:
            raise NotFound("Subtask not found.", entity="subtask", entity_id=str(subtask_id))
        task = _load_task(db, workspace_id, subtask.task_id)
        allowed, reason = can_toggle_subtask(subtask, task, actor_id)
        if not allowed:
            raise PermissionDenied(reason or "forbidden", entity="subtask", entity_id=subtask.id)

        previous = bool(subtask.is_completed)
        subtask.is_completed = not previous
        add_activity(
            db,
            task.id,
            ActivityType.SUBTASK_COMPLETED.value,
            actor_id,
            old_value=str(previous).lower(),
            new_value=str(not previous).lower(),
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return subtask


def list_task_activities(db, workspace_id: str, viewer_id: str, task_id: str) -> List[dict]:
    _require_member(db, str(workspace_id), str(viewer_id))
    task = _load_task(db, str(workspace_id), task_id)
    return [activity_to_dict(activity) for activity in list_activities(db, task.id)]


def get_task_details(db, workspace_id: str, viewer_id: str, task_id: str) -> dict:
    """Full task bundle; only members of the workspace may read it."""
    _require_member(db, str(workspace_id), str(viewer_id))
    task = _load_task(db, str(workspace_id), task_id)
    return {
        "task": task_to_dict(task),
        "subtasks": [subtask_to_dict(subtask) for subtask in list_subtasks(db, task.id)],
        "comments": [comment_to_dict(comment) for comment in list_comments(db, task.id)],
        "activities": [activity_to_dict(activity) for activity in list_activities(db, task.id)],
        "watchers": list_watchers(db, task.id),
        "tags": [{"id": tag.id, "name": tag.name, "color": tag.color} for tag in task.tags],
    }


def list_tasks_in_list(db, workspace_id: str, viewer_id: str, list_id: str) -> List[dict]:
    _require_member(db, str(workspace_id), str(viewer_id))
    if not get_list(db, str(workspace_id), list_id):
        raise NotFound("List not found.", entity="list", entity_id=str(list_id))
    return [task_to_dict(task) for task in query_tasks_in_list(db, str(workspace_id), list_id)]
