from __future__ import annotations


class TaskEngineError(Exception):
    """Base class for failures that abort a task mutation as a whole."""

    code = "error"
    status_code = 500

    def __init__(self, message: str, *, entity: str | None = None, entity_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.entity = entity
        self.entity_id = entity_id

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message}
        if self.entity:
            payload["entity"] = self.entity
        if self.entity_id:
            payload["entityId"] = self.entity_id
        return payload


class NotFound(TaskEngineError):
    code = "not_found"
    status_code = 404


class PermissionDenied(TaskEngineError):
    code = "forbidden"
    status_code = 403


class InvalidReference(TaskEngineError):
    code = "invalid_reference"
    status_code = 422


class ValidationFailure(TaskEngineError, ValueError):
    code = "validation_failed"
    status_code = 400
