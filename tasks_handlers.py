import logging
from typing import Any, Callable

import azure.functions as func

from repository.tasks_repo import comment_to_dict, task_to_dict
from services.chat_service import chat_message_to_dict, post_chat_message
from services.mentions_inbox import list_user_mentions
from services.my_tasks_service import get_my_tasks
from services.notification_service import list_notifications, mark_notification_read
from services.task_service import add_comment, create_task, delete_task, get_task_details, update_task
from schemas.tasks_schema import validate_comment_create
from shared.db import SessionLocal
from shared.errors import NotFound, TaskEngineError
from tasks_shared import (
    engine_error_response,
    error_response,
    get_actor_id,
    get_request_context,
    json_response,
    parse_json_body,
)

logger = logging.getLogger(__name__)


def _execute(cors: dict, action: str, work: Callable[[Any], Any], status_code: int = 200) -> func.HttpResponse:
    db = SessionLocal()
    try:
        payload = work(db)
    except TaskEngineError as exc:
        logger.info("Rejected %s: %s", action, exc)
        return engine_error_response(exc, cors)
    except Exception as exc:  # pylint: disable=broad-except
        db.rollback()
        logger.error("Failed to %s: %s", action, exc)
        return error_response(f"Failed to {action}", cors, 500)
    finally:
        db.close()
    return json_response(payload, cors, status_code=status_code)


def handle_task_create(req: func.HttpRequest, cors: dict) -> func.HttpResponse:
    try:
        actor_id, workspace_id = get_request_context(req)
    except TaskEngineError as exc:
        return engine_error_response(exc, cors)
    payload = parse_json_body(req)

    def work(db):
        task = create_task(db, workspace_id, actor_id, payload)
        return {"ok": True, "task": task_to_dict(task)}

    return _execute(cors, "create task", work, status_code=201)


def handle_task_detail(req: func.HttpRequest, cors: dict) -> func.HttpResponse:
    try:
        actor_id, workspace_id = get_request_context(req)
    except TaskEngineError as exc:
        return engine_error_response(exc, cors)
    task_id = req.route_params.get("id")
    return _execute(cors, "fetch task", lambda db: get_task_details(db, workspace_id, actor_id, task_id))


def handle_task_update(req: func.HttpRequest, cors: dict) -> func.HttpResponse:
    try:
        actor_id, workspace_id = get_request_context(req)
    except TaskEngineError as exc:
        return engine_error_response(exc, cors)
    task_id = req.route_params.get("id")
    payload = parse_json_body(req)

    def work(db):
        task = update_task(db, workspace_id, actor_id, task_id, payload)
        return {"ok": True, "task": task_to_dict(task)}

    return _execute(cors, "update task", work)


def handle_task_delete(req: func.HttpRequest, cors: dict) -> func.HttpResponse:
    try:
        actor_id, workspace_id = get_request_context(req)
    except TaskEngineError as exc:
        return engine_error_response(exc, cors)
    task_id = req.route_params.get("id")

    def work(db):
        delete_task(db, workspace_id, actor_id, task_id)
        return {"ok": True}

    return _execute(cors, "delete task", work)


def handle_comment_create(req: func.HttpRequest, cors: dict) -> func.HttpResponse:
    try:
        actor_id, workspace_id = get_request_context(req)
        content = validate_comment_create(parse_json_body(req))
    except TaskEngineError as exc:
        return engine_error_response(exc, cors)
    task_id = req.route_params.get("id")

    def work(db):
        comment = add_comment(db, workspace_id, actor_id, task_id, content)
        return {"ok": True, "comment": comment_to_dict(comment)}

    return _execute(cors, "add comment", work, status_code=201)


def handle_my_tasks(req: func.HttpRequest, cors: dict) -> func.HttpResponse:
    try:
        actor_id, workspace_id = get_request_context(req)
    except TaskEngineError as exc:
        return engine_error_response(exc, cors)
    return _execute(cors, "fetch my tasks", lambda db: {"tasks": get_my_tasks(db, actor_id, workspace_id)})


def handle_mentions(req: func.HttpRequest, cors: dict) -> func.HttpResponse:
    try:
        actor_id = get_actor_id(req)
    except TaskEngineError as exc:
        return engine_error_response(exc, cors)
    page = req.params.get("page")
    page_size = req.params.get("pageSize")
    workspace_id = req.params.get("workspaceId") or req.headers.get("x-workspace-id")
    return _execute(
        cors,
        "fetch mentions",
        lambda db: list_user_mentions(db, actor_id, page=page, page_size=page_size, workspace_id=workspace_id),
    )


def handle_chat_message_create(req: func.HttpRequest, cors: dict) -> func.HttpResponse:
    try:
        actor_id, workspace_id = get_request_context(req)
    except TaskEngineError as exc:
        return engine_error_response(exc, cors)
    body = parse_json_body(req)

    def work(db):
        message = post_chat_message(db, workspace_id, actor_id, body.get("channelId"), body.get("content"))
        return {"ok": True, "message": chat_message_to_dict(message)}

    return _execute(cors, "post chat message", work, status_code=201)


def handle_notifications_list(req: func.HttpRequest, cors: dict) -> func.HttpResponse:
    try:
        actor_id = get_actor_id(req)
    except TaskEngineError as exc:
        return engine_error_response(exc, cors)
    try:
        limit = int(req.params.get("limit") or 50)
    except ValueError:
        return error_response("limit must be an integer", cors, 400)
    return _execute(cors, "fetch notifications", lambda db: {"notifications": list_notifications(db, actor_id, limit)})


def handle_notification_read(req: func.HttpRequest, cors: dict) -> func.HttpResponse:
    try:
        actor_id = get_actor_id(req)
    except TaskEngineError as exc:
        return engine_error_response(exc, cors)
    notification_id = req.route_params.get("id")

    def work(db):
        if not mark_notification_read(db, notification_id, actor_id):
            raise NotFound("Notification not found.", entity="notification", entity_id=notification_id)
        return {"ok": True}

    return _execute(cors, "mark notification read", work)
