from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from services.mention_parser import normalize_user_id
from shared.db import TaskPriority, TaskStatus
from shared.errors import ValidationFailure

TASK_STATUSES = {status.value for status in TaskStatus}
TASK_PRIORITIES = [priority.value for priority in TaskPriority]

_NULLABLE_UPDATE_FIELDS = {"description", "subDescription", "customStatus", "assigneeId", "dueDate"}


def _normalize_enum(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = str(value).strip().upper()
    if not normalized:
        return None
    normalized = re.sub(r"[\s-]+", "_", normalized)
    return normalized


def _require_str(payload: Dict[str, Any], field: str) -> str:
    value = payload.get(field)
    if value is None:
        raise ValidationFailure(f"{field} is required")
    text = str(value).strip()
    if not text:
        raise ValidationFailure(f"{field} is required")
    return text


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def _optional_label(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _require_id(value: Any, field: str) -> str:
    normalized = normalize_user_id(value)
    if not normalized:
        raise ValidationFailure(f"{field} must be a valid id")
    return normalized


def _optional_id(value: Any, field: str) -> Optional[str]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return _require_id(value, field)


def normalize_status(value: Any) -> str:
    normalized = _normalize_enum(value)
    if normalized not in TASK_STATUSES:
        raise ValidationFailure("Invalid task status")
    return normalized


def normalize_priority(value: Any) -> str:
    # Clients send either the name or its index in NONE..URGENT.
    if isinstance(value, bool):
        raise ValidationFailure("Invalid task priority")
    if isinstance(value, int):
        if 0 <= value < len(TASK_PRIORITIES):
            return TASK_PRIORITIES[value]
        raise ValidationFailure("Invalid task priority")
    normalized = _normalize_enum(value)
    if normalized and normalized.isdigit():
        return normalize_priority(int(normalized))
    if normalized not in TASK_PRIORITIES:
        raise ValidationFailure("Invalid task priority")
    return normalized


def parse_due_date(value: Any) -> Optional[datetime]:
    """Accept ISO-8601 strings, dates or datetimes; return naive UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        raw = str(value).strip()
        if not raw:
            return None
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationFailure("dueDate must be an ISO-8601 timestamp") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def normalize_tag_ids(value: Any) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple, set)):
        raise ValidationFailure("tagIds must be a list")
    # Malformed ids can never match a tag; they are dropped like unknown ones.
    tag_ids: List[str] = []
    for raw in value:
        normalized = normalize_user_id(raw)
        if normalized and normalized not in tag_ids:
            tag_ids.append(normalized)
    return tag_ids


def validate_task_create(payload: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValidationFailure("Invalid JSON payload")

    title = _require_str(payload, "title")
    list_id = _require_id(payload.get("listId"), "listId")

    status = payload.get("status")
    priority = payload.get("priority")
    custom_status = payload.get("customStatus")

    return {
        "listId": list_id,
        "title": title,
        "description": _optional_text(payload.get("description")),
        "subDescription": _optional_text(payload.get("subDescription")),
        "status": normalize_status(status) if status is not None else TaskStatus.TODO.value,
        "customStatus": _optional_label(custom_status),
        "priority": normalize_priority(priority) if priority is not None else TaskPriority.NONE.value,
        "assigneeId": _optional_id(payload.get("assigneeId"), "assigneeId"),
        "dueDate": parse_due_date(payload.get("dueDate")),
        "tagIds": normalize_tag_ids(payload.get("tagIds")),
    }


def validate_task_update(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize a partial update. Only keys present in `payload` are returned;
    an explicit null clears the nullable fields.
    """
    if not isinstance(payload, dict):
        raise ValidationFailure("Invalid JSON payload")

    updates: Dict[str, Any] = {}
    for field, value in payload.items():
        if value is None and field in _NULLABLE_UPDATE_FIELDS:
            updates[field] = None
            continue
        if field == "title":
            updates["title"] = _require_str(payload, "title")
        elif field in {"description", "subDescription"}:
            updates[field] = _optional_text(value)
        elif field == "customStatus":
            updates[field] = _optional_label(value)
        elif field == "status":
            updates["status"] = normalize_status(value)
        elif field == "priority":
            updates["priority"] = normalize_priority(value)
        elif field == "assigneeId":
            updates["assigneeId"] = _optional_id(value, "assigneeId")
        elif field == "dueDate":
            updates["dueDate"] = parse_due_date(value)
        elif field == "orderIndex":
            try:
                updates["orderIndex"] = int(value)
            except (TypeError, ValueError) as exc:
                raise ValidationFailure("orderIndex must be an integer") from exc
        elif field == "tagIds":
            updates["tagIds"] = normalize_tag_ids(value)
        else:
            raise ValidationFailure(f"Unknown field: {field}")
    return updates


def validate_comment_create(payload: Dict[str, Any]) -> str:
    if not isinstance(payload, dict):
        raise ValidationFailure("Invalid JSON payload")
    return _require_str(payload, "content")


def validate_subtask_create(payload: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValidationFailure("Invalid JSON payload")
    return {
        "title": _require_str(payload, "title"),
        "assigneeId": _optional_id(payload.get("assigneeId"), "assigneeId"),
    }
