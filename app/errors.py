from __future__ import annotations

from typing import Any


class ContentError(Exception):
    """Base for failures that cross the service boundary as data."""

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ContentError):
    code = "validation_error"
    status_code = 422


class NotFoundError(ContentError):
    code = "not_found"
    status_code = 404


class PolicyViolation(ContentError):
    code = "policy_violation"
    status_code = 403


class RenderFailure(ContentError):
    """Markdown pipeline failed; nothing from this render may be persisted."""

    code = "render_failure"
    status_code = 500


class NotificationDeliveryFailure(ContentError):
    """Best-effort notification write failed. Logged, never surfaced."""

    code = "notification_failure"


STATUS_BY_CODE = {
    cls.code: cls.status_code
    for cls in (ContentError, ValidationError, NotFoundError, PolicyViolation, RenderFailure)
}


def ok(data: Any = None) -> dict[str, Any]:
    return {"ok": True, "data": data}


def fail(error: str, code: str = ContentError.code) -> dict[str, Any]:
    return {"ok": False, "error": error, "code": code}


def fail_from(exc: ContentError) -> dict[str, Any]:
    return fail(exc.message, exc.code)
