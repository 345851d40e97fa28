import azure.functions as func

from function_app import app
from tasks_handlers import (
    handle_chat_message_create,
    handle_mentions,
    handle_my_tasks,
    handle_notification_read,
    handle_notifications_list,
)
from utils.cors import build_cors_headers


@app.function_name(name="MyTasks")
@app.route(
    route="workspaces/{workspaceId}/my-tasks",
    methods=["GET", "OPTIONS"],
    auth_level=func.AuthLevel.ANONYMOUS,
)
def my_tasks(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    return handle_my_tasks(req, cors)


@app.function_name(name="Mentions")
@app.route(route="mentions", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def mentions(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    return handle_mentions(req, cors)


@app.function_name(name="ChatMessages")
@app.route(
    route="workspaces/{workspaceId}/chat/messages",
    methods=["POST", "OPTIONS"],
    auth_level=func.AuthLevel.ANONYMOUS,
)
def chat_messages(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["POST", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    return handle_chat_message_create(req, cors)


@app.function_name(name="Notifications")
@app.route(route="notifications", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def notifications(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    return handle_notifications_list(req, cors)


@app.function_name(name="NotificationRead")
@app.route(route="notifications/{id}/read", methods=["POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def notification_read(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["POST", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    return handle_notification_read(req, cors)
