from __future__ import annotations

from enum import Enum


class FailureReason(str, Enum):
    STORE_UNAVAILABLE = "store_unavailable"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    ALREADY_RESOLVED = "already_resolved"
    NOTES_REQUIRED = "notes_required"
    BUSY = "busy"
    NOT_CONFIRMED = "not_confirmed"


class CashPayError(Exception):
    """Base class for errors raised by the payment review workflow."""


class NotAuthorized(CashPayError):
    """Caller is not an admin; handled by redirecting away."""


class DataIntegrityError(CashPayError):
    pass


class OrphanedPaymentError(DataIntegrityError):
    def __init__(self, payment_id: str) -> None:
        super().__init__(f"cash payment {payment_id} has no submitting user")
        self.payment_id = payment_id


class ResolutionError(CashPayError):
    reason: FailureReason = FailureReason.STORE_UNAVAILABLE

    def __init__(self, payment_id: str, message: str | None = None) -> None:
        super().__init__(message or f"{self.reason.value}: {payment_id}")
        self.payment_id = payment_id


class PaymentNotFound(ResolutionError):
    reason = FailureReason.NOT_FOUND


class AlreadyResolved(ResolutionError):
    reason = FailureReason.ALREADY_RESOLVED


class NotesRequired(ResolutionError):
    reason = FailureReason.NOTES_REQUIRED


class PermissionDenied(ResolutionError):
    reason = FailureReason.PERMISSION_DENIED
