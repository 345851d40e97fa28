from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func as sa_func

from shared.db import (
    CommentMention,
    ListStatus,
    Subtask,
    Tag,
    Task,
    TaskActivity,
    TaskComment,
    TaskList,
    TaskMention,
    TaskWatcher,
    utc_now,
)


def _format_dt(value: Optional[datetime]) -> Optional[str]:
    if not value:
        return None
    try:
        return value.isoformat()
    except Exception:
        return str(value)


def _user_name(user) -> str:
    if user is None:
        return ""
    return user.full_name or user.email or ""


def display_status(task: Task) -> str:
    return task.custom_status or task.status


def task_to_dict(task: Task) -> dict:
    return {
        "id": task.id,
        "workspaceId": task.workspace_id,
        "listId": task.list_id,
        "title": task.title,
        "description": task.description,
        "subDescription": task.sub_description,
        "status": task.status,
        "customStatus": task.custom_status,
        "displayStatus": display_status(task),
        "priority": task.priority,
        "assigneeId": task.assignee_id,
        "assigneeName": _user_name(task.assignee),
        "createdById": task.created_by_id,
        "createdByName": _user_name(task.created_by),
        "dueDate": _format_dt(task.due_date),
        "orderIndex": task.order_index,
        "tagIds": [tag.id for tag in task.tags],
        "createdAt": _format_dt(task.created_at),
        "updatedAt": _format_dt(task.updated_at),
    }


def activity_to_dict(activity: TaskActivity) -> dict:
    return {
        "id": activity.id,
        "taskId": activity.task_id,
        "activityType": activity.activity_type,
        "oldValue": activity.old_value,
        "newValue": activity.new_value,
        "changedById": activity.changed_by_id,
        "changedByName": _user_name(activity.changed_by),
        "timestamp": _format_dt(activity.timestamp),
    }


def comment_to_dict(comment: TaskComment) -> dict:
    return {
        "id": comment.id,
        "taskId": comment.task_id,
        "userId": comment.user_id,
        "userName": _user_name(comment.user),
        "content": comment.content,
        "createdAt": _format_dt(comment.created_at),
    }


def subtask_to_dict(subtask: Subtask) -> dict:
    return {
        "id": subtask.id,
        "taskId": subtask.task_id,
        "title": subtask.title,
        "isCompleted": bool(subtask.is_completed),
        "assigneeId": subtask.assignee_id,
        "assigneeName": _user_name(subtask.assignee) or "Unassigned",
        "orderIndex": subtask.order_index,
    }


def get_task(db, workspace_id: str, task_id: str) -> Optional[Task]:
    if not workspace_id or not task_id:
        return None
    return (
        db.query(Task)
        .filter(Task.id == str(task_id), Task.workspace_id == str(workspace_id))
        .one_or_none()
    )


def get_list(db, workspace_id: str, list_id: str) -> Optional[TaskList]:
    return (
        db.query(TaskList)
        .filter(TaskList.id == str(list_id), TaskList.workspace_id == str(workspace_id))
        .one_or_none()
    )


def get_subtask(db, workspace_id: str, subtask_id: str) -> Optional[Subtask]:
    return (
        db.query(Subtask)
        .join(Task, Task.id == Subtask.task_id)
        .filter(Subtask.id == str(subtask_id), Task.workspace_id == str(workspace_id))
        .one_or_none()
    )


def first_list_status(db, list_id: str) -> Optional[str]:
    status = (
        db.query(ListStatus)
        .filter(ListStatus.list_id == str(list_id))
        .order_by(ListStatus.order.asc(), ListStatus.created_at.asc())
        .first()
    )
    return status.name if status else None


def next_order_index(db, list_id: str) -> int:
    current = db.query(sa_func.max(Task.order_index)).filter(Task.list_id == str(list_id)).scalar()
    return int(current or 0) + 1


def next_subtask_order_index(db, task_id: str) -> int:
    current = db.query(sa_func.max(Subtask.order_index)).filter(Subtask.task_id == str(task_id)).scalar()
    return int(current or 0) + 1


def match_workspace_tags(db, workspace_id: str, tag_ids: Iterable[str]) -> List[Tag]:
    wanted = [str(tag_id) for tag_id in tag_ids if tag_id]
    if not wanted:
        return []
    return (
        db.query(Tag)
        .filter(Tag.workspace_id == str(workspace_id), Tag.id.in_(wanted))
        .order_by(Tag.name.asc())
        .all()
    )


def add_activity(
    db,
    task_id: str,
    activity_type: str,
    changed_by_id: str,
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> TaskActivity:
    activity = TaskActivity(
        task_id=str(task_id),
        activity_type=str(activity_type),
        old_value=old_value,
        new_value=new_value,
        changed_by_id=str(changed_by_id),
        timestamp=timestamp or utc_now(),
    )
    db.add(activity)
    return activity


def list_activities(db, task_id: str, newest_first: bool = True) -> List[TaskActivity]:
    query = db.query(TaskActivity).filter(TaskActivity.task_id == str(task_id))
    if newest_first:
        query = query.order_by(TaskActivity.timestamp.desc(), TaskActivity.id.desc())
    else:
        query = query.order_by(TaskActivity.timestamp.asc(), TaskActivity.id.asc())
    return query.all()


def list_tasks_in_list(db, workspace_id: str, list_id: str) -> List[Task]:
    return (
        db.query(Task)
        .filter(Task.workspace_id == str(workspace_id), Task.list_id == str(list_id))
        .order_by(Task.order_index.asc(), Task.created_at.asc())
        .all()
    )


def list_subtasks(db, task_id: str) -> List[Subtask]:
    return (
        db.query(Subtask)
        .filter(Subtask.task_id == str(task_id))
        .order_by(Subtask.order_index.asc())
        .all()
    )


def list_comments(db, task_id: str) -> List[TaskComment]:
    return (
        db.query(TaskComment)
        .filter(TaskComment.task_id == str(task_id))
        .order_by(TaskComment.created_at.desc())
        .all()
    )


def delete_task(db, task: Task) -> None:
    """Remove a task together with everything hanging off it."""
    task_id = str(task.id)
    comment_ids = [row[0] for row in db.query(TaskComment.id).filter(TaskComment.task_id == task_id).all()]
    if comment_ids:
        db.query(CommentMention).filter(CommentMention.comment_id.in_(comment_ids)).delete(
            synchronize_session=False
        )
    db.query(TaskComment).filter(TaskComment.task_id == task_id).delete(synchronize_session=False)
    db.query(Subtask).filter(Subtask.task_id == task_id).delete(synchronize_session=False)
    db.query(TaskActivity).filter(TaskActivity.task_id == task_id).delete(synchronize_session=False)
    db.query(TaskMention).filter(TaskMention.task_id == task_id).delete(synchronize_session=False)
    db.query(TaskWatcher).filter(TaskWatcher.task_id == task_id).delete(synchronize_session=False)
    task.tags = []
    db.delete(task)
    db.flush()
