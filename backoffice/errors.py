from __future__ import annotations

from typing import Any, Dict

from backoffice.ui_strings import error_message


class AppError(Exception):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True

    def __init__(
        self,
        code: str | None = None,
        message_key: str | None = None,
        http_status: int | None = None,
        critical: bool | None = None,
        details: str | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.code = (code or self.default_code).strip()
        self.message_key = (message_key or self.default_message_key).strip()
        self.http_status = int(http_status or self.default_http_status)
        self.critical = bool(self.default_critical if critical is None else critical)
        self.details = (details or "").strip() or None
        self.payload = dict(payload or {})
        super().__init__(self.details or self.code)

    def user_message(self) -> str:
        fallback = error_message("unexpected_error", "Nao foi possivel concluir a operacao.")
        return error_message(self.message_key, fallback)

    def to_response_payload(self, request_id: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.user_message(),
            "request_id": request_id,
        }
        if self.payload:
            payload.update(self.payload)
        return payload


class UserActionError(AppError):
    default_code = "action_invalid"
    default_message_key = "action_invalid"
    default_http_status = 400
    default_critical = False


class ValidationError(UserActionError):
    default_code = "validation_error"
    default_message_key = "status_invalid"
    default_http_status = 400
    default_critical = False


class AuthenticationError(UserActionError):
    default_code = "auth_required"
    default_message_key = "auth_required"
    default_http_status = 401
    default_critical = False


class PermissionError(UserActionError):
    default_code = "permission_denied"
    default_message_key = "permission_denied"
    default_http_status = 403
    default_critical = False


class NotFoundError(UserActionError):
    default_code = "not_found"
    default_message_key = "proposal_not_found"
    default_http_status = 404
    default_critical = False


class IntegrationError(AppError):
    default_code = "integration_error"
    default_message_key = "integration_unavailable"
    default_http_status = 502
    default_critical = False


class WebhookError(IntegrationError):
    """Local write committed, but the confirming webhook did not succeed."""

    default_code = "WEBHOOK_ERROR"
    default_message_key = "webhook_error"
    default_http_status = 500
    default_critical = False

    def __init__(self, webhook_message: str | None = None, **kwargs: Any) -> None:
        self.webhook_message = (webhook_message or "").strip() or error_message("webhook_error")
        payload = dict(kwargs.pop("payload", None) or {})
        payload.update({"webhookError": True, "webhookMessage": self.webhook_message})
        kwargs.setdefault("details", self.webhook_message)
        super().__init__(payload=payload, **kwargs)


class StorageError(AppError):
    default_code = "storage_error"
    default_message_key = "storage_error"
    default_http_status = 500
    default_critical = True

    @classmethod
    def from_driver_error(cls, exc: Exception) -> "StorageError":
        detail = storage_error_detail(exc)
        return cls(details=detail["message"], payload={"supabase": detail})


class SystemError(AppError):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True


def storage_error_detail(exc: Exception) -> Dict[str, Any]:
    """Flatten a sqlite3/psycopg2 error into message/details/hint/code."""
    diag = getattr(exc, "diag", None)
    message = getattr(diag, "message_primary", None) or str(exc).strip() or exc.__class__.__name__
    details = getattr(diag, "message_detail", None)
    hint = getattr(diag, "message_hint", None)
    code = getattr(exc, "pgcode", None) or getattr(exc, "sqlite_errorname", None)
    return {
        "message": message,
        "details": details,
        "hint": hint,
        "code": code,
    }
