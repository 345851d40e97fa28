from __future__ import annotations

import json
import logging
from typing import Any, Optional, Tuple

import azure.functions as func

from services.mention_parser import normalize_user_id
from shared.errors import TaskEngineError, ValidationFailure

logger = logging.getLogger(__name__)

USER_HEADER = "x-user-id"
WORKSPACE_HEADER = "x-workspace-id"


def json_response(payload: Any, cors: dict, status_code: int = 200) -> func.HttpResponse:
    return func.HttpResponse(
        json.dumps(payload),
        status_code=status_code,
        mimetype="application/json",
        headers=cors,
    )


def error_response(message: str, cors: dict, status_code: int, code: Optional[str] = None) -> func.HttpResponse:
    body = {"error": message}
    if code:
        body["code"] = code
    return json_response(body, cors, status_code=status_code)


def engine_error_response(exc: TaskEngineError, cors: dict) -> func.HttpResponse:
    return json_response(exc.to_dict(), cors, status_code=exc.status_code)


def parse_json_body(req: func.HttpRequest) -> dict:
    try:
        body = req.get_json()
    except ValueError:
        body = None
    return body or {}


def _header(req: func.HttpRequest, name: str) -> Optional[str]:
    return req.headers.get(name) or req.headers.get(name.upper())


def get_actor_id(req: func.HttpRequest) -> str:
    actor_id = normalize_user_id(_header(req, USER_HEADER))
    if not actor_id:
        raise ValidationFailure(f"{USER_HEADER} header is required")
    return actor_id


def get_workspace_id(req: func.HttpRequest) -> str:
    """Workspace from the route, falling back to the x-workspace-id header."""
    raw = req.route_params.get("workspaceId") or _header(req, WORKSPACE_HEADER)
    workspace_id = normalize_user_id(raw)
    if not workspace_id:
        raise ValidationFailure("workspaceId is required")
    return workspace_id


def get_request_context(req: func.HttpRequest) -> Tuple[str, str]:
    return get_actor_id(req), get_workspace_id(req)
