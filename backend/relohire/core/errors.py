from __future__ import annotations

from typing import Any


class AppError(Exception):
    """
    Base for business-rule failures raised by services.
    Routes let these propagate; main.py renders them into the error envelope.
    """

    status_code: int = 400
    code: str = "BAD_REQUEST"

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code


class ValidationFailedError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class PaymentRequiredError(AppError):
    status_code = 402
    code = "PAYMENT_REQUIRED"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class ConfigurationMissingError(AppError):
    status_code = 404
    code = "CONFIGURATION_MISSING"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class InvalidTransitionError(AppError):
    status_code = 409
    code = "INVALID_TRANSITION"


class DuplicatePaymentError(AppError):
    status_code = 409
    code = "DUPLICATE_PAYMENT"


class ExamSessionError(AppError):
    status_code = 403
    code = "EXAM_SESSION_INVALID"


class ExchangeRateUnavailableError(AppError):
    status_code = 502
    code = "EXCHANGE_RATE_UNAVAILABLE"
