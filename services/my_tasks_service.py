from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import func as sa_func, or_, select

from repository.tasks_repo import display_status
from services.membership import is_workspace_member
from shared.config import get_recent_activity_hours
from shared.db import (
    CommentMention,
    Subtask,
    Task,
    TaskActivity,
    TaskComment,
    TaskMention,
    TaskPriority,
    TaskStatus,
    TaskWatcher,
    utc_now,
)

logger = logging.getLogger(__name__)

OVERDUE_POINTS = 100
DUE_TODAY_POINTS = 60
DUE_THIS_WEEK_POINTS = 30
HIGH_PRIORITY_POINTS = 20
MENTIONED_POINTS = 15
RECENT_ACTIVITY_POINTS = 10
BLOCKED_PENALTY = 50

_HIGH_PRIORITIES = {TaskPriority.HIGH.value, TaskPriority.URGENT.value}


@dataclass
class TaskRelevance:
    is_assigned: bool = False
    is_watching: bool = False
    is_mentioned: bool = False
    is_blocked: bool = False
    is_overdue: bool = False
    is_due_today: bool = False
    is_due_this_week: bool = False
    is_high_priority: bool = False
    last_activity_at: Optional[datetime] = None


def derive_due_flags(due_date: Optional[datetime], status: str, now: datetime) -> Dict[str, bool]:
    if due_date is None:
        return {"is_overdue": False, "is_due_today": False, "is_due_this_week": False}
    return {
        "is_overdue": due_date < now and status != TaskStatus.DONE.value,
        "is_due_today": due_date.date() == now.date(),
        "is_due_this_week": now <= due_date <= now + timedelta(days=7),
    }


def compute_urgency_score(relevance: TaskRelevance, now: datetime, recent_hours: Optional[int] = None) -> int:
    """
    Additive ranking heuristic. The due-date bands do not stack: only the
    most urgent of overdue / due today / due this week contributes.
    """
    if recent_hours is None:
        recent_hours = get_recent_activity_hours()
    score = 0
    if relevance.is_overdue:
        score += OVERDUE_POINTS
    elif relevance.is_due_today:
        score += DUE_TODAY_POINTS
    elif relevance.is_due_this_week:
        score += DUE_THIS_WEEK_POINTS
    if relevance.is_high_priority:
        score += HIGH_PRIORITY_POINTS
    if relevance.is_mentioned:
        score += MENTIONED_POINTS
    if relevance.last_activity_at is not None and now - relevance.last_activity_at < timedelta(hours=recent_hours):
        score += RECENT_ACTIVITY_POINTS
    if relevance.is_blocked:
        score -= BLOCKED_PENALTY
    return score


def _task_ids(rows: Iterable) -> Set[str]:
    return {row[0] for row in rows}


def _counts_by_task(db, column, task_ids: List[str], *criteria) -> Dict[str, int]:
    rows = (
        db.query(column, sa_func.count())
        .filter(column.in_(task_ids), *criteria)
        .group_by(column)
        .all()
    )
    return {task_id: int(count) for task_id, count in rows}


def get_my_tasks(db, user_id: str, workspace_id: str, now: Optional[datetime] = None) -> List[dict]:
    """
    Tasks in the workspace the user is assigned to, watches, or is mentioned
    on (directly or in a comment), ranked by urgency score, highest first.
    """
    user_id, workspace_id = str(user_id), str(workspace_id)
    if not is_workspace_member(db, workspace_id, user_id):
        return []
    now = now or utc_now()

    watched = select(TaskWatcher.task_id).where(TaskWatcher.user_id == user_id)
    mentioned = select(TaskMention.task_id).where(TaskMention.user_id == user_id)
    comment_mentioned = (
        select(TaskComment.task_id)
        .join(CommentMention, CommentMention.comment_id == TaskComment.id)
        .where(CommentMention.user_id == user_id)
    )
    tasks = (
        db.query(Task)
        .filter(Task.workspace_id == workspace_id)
        .filter(
            or_(
                Task.assignee_id == user_id,
                Task.id.in_(watched),
                Task.id.in_(mentioned),
                Task.id.in_(comment_mentioned),
            )
        )
        .all()
    )
    if not tasks:
        return []

    task_ids = [task.id for task in tasks]
    watching_ids = _task_ids(db.execute(watched.where(TaskWatcher.task_id.in_(task_ids))).all())
    mentioned_ids = _task_ids(db.execute(mentioned.where(TaskMention.task_id.in_(task_ids))).all())
    mentioned_ids |= _task_ids(db.execute(comment_mentioned.where(TaskComment.task_id.in_(task_ids))).all())
    last_activity = dict(
        db.query(TaskActivity.task_id, sa_func.max(TaskActivity.timestamp))
        .filter(TaskActivity.task_id.in_(task_ids))
        .group_by(TaskActivity.task_id)
        .all()
    )
    subtask_counts = _counts_by_task(db, Subtask.task_id, task_ids)
    completed_counts = _counts_by_task(db, Subtask.task_id, task_ids, Subtask.is_completed.is_(True))
    comment_counts = _counts_by_task(db, TaskComment.task_id, task_ids)
    recent_hours = get_recent_activity_hours()

    items = []
    for task in tasks:
        relevance = TaskRelevance(
            is_assigned=task.assignee_id == user_id,
            is_watching=task.id in watching_ids,
            is_mentioned=task.id in mentioned_ids,
            is_blocked=task.status == TaskStatus.BLOCKED.value,
            is_high_priority=task.priority in _HIGH_PRIORITIES,
            last_activity_at=last_activity.get(task.id) or task.updated_at,
            **derive_due_flags(task.due_date, task.status, now),
        )
        items.append(
            {
                "taskId": task.id,
                "workspaceId": task.workspace_id,
                "listId": task.list_id,
                "listName": task.task_list.name if task.task_list else "",
                "title": task.title,
                "status": task.status,
                "displayStatus": display_status(task),
                "priority": task.priority,
                "dueDate": task.due_date.isoformat() if task.due_date else None,
                "assigneeId": task.assignee_id,
                "assigneeName": (task.assignee.full_name or task.assignee.email) if task.assignee else "",
                "subtaskCount": subtask_counts.get(task.id, 0),
                "completedSubtasks": completed_counts.get(task.id, 0),
                "commentCount": comment_counts.get(task.id, 0),
                "isAssigned": relevance.is_assigned,
                "isWatching": relevance.is_watching,
                "isMentioned": relevance.is_mentioned,
                "isBlocked": relevance.is_blocked,
                "isOverdue": relevance.is_overdue,
                "isDueToday": relevance.is_due_today,
                "isDueThisWeek": relevance.is_due_this_week,
                "lastActivityAt": relevance.last_activity_at.isoformat() if relevance.last_activity_at else None,
                "urgencyScore": compute_urgency_score(relevance, now, recent_hours),
                "_dueSort": task.due_date or datetime.max,
            }
        )

    items.sort(key=lambda item: (-item["urgencyScore"], item["_dueSort"], item["title"]))
    for item in items:
        item.pop("_dueSort", None)
    logger.debug("My tasks user=%s workspace=%s count=%s", user_id, workspace_id, len(items))
    return items
