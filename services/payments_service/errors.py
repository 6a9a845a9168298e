"""Typed errors raised by the payments engine.

Service functions raise these; the API layer turns them into HTTP
responses in one exception handler (see ``app/main.py``), and the worker
logs them. Each error carries a stable ``code`` that clients can branch on.
"""

from __future__ import annotations

from typing import Any, Optional


class PaymentEngineError(Exception):
    """Base class for every domain error the engine raises."""

    status_code: int = 400
    code: str = "payment_error"

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


# ---------------------------------------------------------------------------
# Validation (400)
# ---------------------------------------------------------------------------


class ValidationError(PaymentEngineError):
    code = "validation_error"


class InvalidAmountError(ValidationError):
    code = "invalid_amount"


class InvalidPaymentNumberError(ValidationError):
    code = "invalid_payment_number"


class MissingReasonError(ValidationError):
    code = "missing_reason"


class MissingAttributionError(ValidationError):
    code = "missing_attribution"


class InsufficientBulkAmountError(ValidationError):
    code = "insufficient_bulk_amount"


class UnallocatedBulkAmountError(ValidationError):
    code = "unallocated_bulk_amount"


class OverpaymentError(ValidationError):
    code = "overpayment"


class AlreadyPaidError(ValidationError):
    code = "already_paid"


class PlayerNotOnTeamError(ValidationError):
    code = "player_not_on_team"


class DuplicatePlayerSelectionError(ValidationError):
    code = "duplicate_player_selection"


class PricingUnavailableError(ValidationError):
    code = "pricing_unavailable"


class MissingContactError(ValidationError):
    code = "missing_contact"


# ---------------------------------------------------------------------------
# Not found (404)
# ---------------------------------------------------------------------------


class NotFoundError(PaymentEngineError):
    status_code = 404
    code = "not_found"


class RecordNotFoundError(NotFoundError):
    code = "record_not_found"


class PlayerNotFoundError(NotFoundError):
    code = "player_not_found"


class DivisionNotFoundError(NotFoundError):
    code = "division_not_found"


class TeamNotFoundError(NotFoundError):
    code = "team_not_found"


class CaptainNotFoundError(NotFoundError):
    code = "captain_not_found"


# ---------------------------------------------------------------------------
# Conflicts and policy (409)
# ---------------------------------------------------------------------------


class ConflictError(PaymentEngineError):
    status_code = 409
    code = "conflict"


class ConcurrentModificationError(ConflictError):
    code = "concurrent_modification"


class NonRevertibleChannelError(ConflictError):
    code = "non_revertible_channel"


class PaymentTypeMismatchError(ConflictError):
    code = "payment_type_mismatch"


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------


class ProcessorError(PaymentEngineError):
    status_code = 502
    code = "processor_error"


class PaymentDeclinedError(ProcessorError):
    status_code = 402
    code = "payment_declined"


class ProcessorTimeoutError(ProcessorError):
    status_code = 504
    code = "processor_timeout"


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationFailedError(PaymentEngineError):
    status_code = 502
    code = "notification_failed"
