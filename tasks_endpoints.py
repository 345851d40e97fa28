import logging

import azure.functions as func

from function_app import app
from tasks_handlers import (
    handle_comment_create,
    handle_task_create,
    handle_task_delete,
    handle_task_detail,
    handle_task_update,
)
from utils.cors import build_cors_headers

logger = logging.getLogger(__name__)


@app.function_name(name="TasksCreate")
@app.route(
    route="workspaces/{workspaceId}/tasks",
    methods=["POST", "OPTIONS"],
    auth_level=func.AuthLevel.ANONYMOUS,
)
def tasks_create(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["POST", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    return handle_task_create(req, cors)


@app.function_name(name="TasksDetail")
@app.route(
    route="workspaces/{workspaceId}/tasks/{id}",
    methods=["GET", "PATCH", "DELETE", "OPTIONS"],
    auth_level=func.AuthLevel.ANONYMOUS,
)
def tasks_detail(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "PATCH", "DELETE", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    if req.method == "PATCH":
        return handle_task_update(req, cors)
    if req.method == "DELETE":
        return handle_task_delete(req, cors)
    return handle_task_detail(req, cors)


@app.function_name(name="TaskComments")
@app.route(
    route="workspaces/{workspaceId}/tasks/{id}/comments",
    methods=["POST", "OPTIONS"],
    auth_level=func.AuthLevel.ANONYMOUS,
)
def task_comments(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["POST", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    return handle_comment_create(req, cors)
