from __future__ import annotations

from typing import Any, Optional, Tuple

from shared.db import Subtask, Task


def _same_user(left: Any, right: Any) -> bool:
    return bool(left) and bool(right) and str(left) == str(right)


def is_task_owner(task: Task, actor_id: Optional[str]) -> bool:
    """Assignee or creator; the only users allowed to change a task."""
    return _same_user(task.assignee_id, actor_id) or _same_user(task.created_by_id, actor_id)


def can_mutate_task(task: Task, actor_id: Optional[str]) -> Tuple[bool, Optional[str]]:
    if is_task_owner(task, actor_id):
        return True, None
    return False, "only the task assignee or creator can change this task"


def can_toggle_subtask(subtask: Subtask, task: Task, actor_id: Optional[str]) -> Tuple[bool, Optional[str]]:
    if _same_user(subtask.assignee_id, actor_id) or is_task_owner(task, actor_id):
        return True, None
    return False, "only the subtask or task assignee can complete this subtask"
