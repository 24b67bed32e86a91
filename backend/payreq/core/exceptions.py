"""
Domain Errors

Every rejected operation surfaces as an AppError subclass carrying an HTTP
status code, a stable ``kind`` token and a human readable message. The API
layer renders them as ``{"detail": message, "error": kind, ...}``.
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for operational errors raised by services"""

    status_code: int = 400
    kind: str = "app_error"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.default_message()
        self.extra: Dict[str, Any] = extra
        super().__init__(self.message)

    def default_message(self) -> str:
        return "Request could not be processed"

    def to_dict(self) -> Dict[str, Any]:
        payload = {"detail": self.message, "error": self.kind}
        payload.update(self.extra)
        return payload


class Forbidden(AppError):
    status_code = 403
    kind = "forbidden"

    def default_message(self) -> str:
        return "Forbidden: Insufficient permissions"


class NotFound(AppError):
    status_code = 404
    kind = "not_found"

    def default_message(self) -> str:
        return "Resource not found"


class ValidationError(AppError):
    status_code = 422
    kind = "validation_error"

    def default_message(self) -> str:
        return "Invalid input"


class InvalidStatusTransition(AppError):
    kind = "invalid_status_transition"

    def __init__(self, from_status, to_status, message: Optional[str] = None):
        self.from_status = getattr(from_status, "value", from_status)
        self.to_status = getattr(to_status, "value", to_status)
        super().__init__(
            message or f"Invalid status transition from {self.from_status} to {self.to_status}",
            from_status=self.from_status,
            to_status=self.to_status,
        )


class ImmutableInCurrentStatus(AppError):
    kind = "immutable_in_current_status"

    def __init__(self, status, action: str = "update"):
        self.status = getattr(status, "value", status)
        super().__init__(f"Cannot {action} request with status: {self.status}", status=self.status)


class InvalidStateForPayment(AppError):
    kind = "invalid_state_for_payment"

    def __init__(self, status):
        self.status = getattr(status, "value", status)
        super().__init__(
            f"Cannot process payment for a payment request with status: {self.status}",
            status=self.status,
        )


class DuplicateRoleName(AppError):
    status_code = 409
    kind = "duplicate_role_name"

    def __init__(self, role_name: str):
        super().__init__(f"Role with name '{role_name}' already exists", role_name=role_name)


class RoleInUse(AppError):
    status_code = 409
    kind = "role_in_use"

    def __init__(self, user_count: int):
        super().__init__(
            f"Cannot delete role: {user_count} user(s) are assigned to this role",
            user_count=user_count,
        )


class SystemRoleImmutable(AppError):
    kind = "system_role_immutable"

    def default_message(self) -> str:
        return "Cannot delete a system role"


class SystemRoleRenameForbidden(AppError):
    kind = "system_role_rename_forbidden"

    def default_message(self) -> str:
        return "Cannot change the name of a system role"


class ConcurrentModification(AppError):
    status_code = 409
    kind = "concurrent_modification"

    def default_message(self) -> str:
        return "The record was modified by another request. Reload and try again."
