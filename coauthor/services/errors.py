from typing import Any, Dict, Optional


class StoreError(Exception):
    """Base for every error surfaced to API callers."""

    status_code = 400
    code = "store_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.message, "error": self.code}
        if self.context:
            body["context"] = self.context
        return body


class ValidationError(StoreError):
    status_code = 422
    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None, **context: Any):
        if field:
            context["field"] = field
        super().__init__(message, **context)
        self.field = field


class NotFound(StoreError):
    status_code = 404
    code = "not_found"


class CouponExhausted(NotFound):
    status_code = 409
    code = "coupon_exhausted"


class SoldOut(StoreError):
    status_code = 409
    code = "sold_out"


class InvalidPosition(StoreError):
    status_code = 422
    code = "invalid_position"


class GatewayRejected(StoreError):
    status_code = 502
    code = "gateway_rejected"

    def __init__(self, message: str, raw_response: Optional[Any] = None, **context: Any):
        super().__init__(message, **context)
        self.raw_response = raw_response


class GatewayTimeout(StoreError):
    status_code = 504
    code = "gateway_timeout"


class BankVerificationFailed(StoreError):
    status_code = 402
    code = "bank_verification_failed"

    def __init__(self, message: str, reason_code: Optional[str] = None,
                 raw_response: Optional[Any] = None, **context: Any):
        if reason_code:
            context["reason_code"] = reason_code
        super().__init__(message, **context)
        self.reason_code = reason_code
        self.raw_response = raw_response


class InvalidSignature(StoreError):
    status_code = 400
    code = "invalid_signature"


class AlreadyCompleted(StoreError):
    status_code = 409
    code = "already_completed"


class NotEligible(StoreError):
    status_code = 409
    code = "not_eligible"


class AmountExceedsOriginal(StoreError):
    status_code = 422
    code = "amount_exceeds_original"


class InvalidTransition(StoreError):
    status_code = 409
    code = "invalid_transition"
