# common/exceptions.py
"""
Domain error taxonomy.

Services raise these; the API layer (common.api.domain_exception_handler)
maps each one to a transport status and a stable error code.
"""


class DomainError(Exception):
    """Base exception for all domain operations"""
    code = "domain_error"
    status_code = 400

    def __init__(self, message=None, **context):
        self.message = message or self.default_message()
        self.context = context
        super().__init__(self.message)

    def default_message(self):
        return self.code.replace("_", " ").capitalize()

    def as_dict(self):
        data = {"code": self.code, "detail": self.message}
        if self.context:
            data["context"] = self.context
        return data


class ValidationError(DomainError):
    """Malformed input, missing field, non-positive quantity, inactive product"""
    code = "validation_error"


class InsufficientStock(DomainError):
    """Raised when trying to reserve or sell more stock than available"""
    code = "insufficient_stock"
    status_code = 409


class InsufficientPoints(DomainError):
    code = "insufficient_points"
    status_code = 409


class InvalidTransition(DomainError):
    """Order status change not permitted from the current state"""
    code = "invalid_transition"
    status_code = 409


class InvalidCoupon(DomainError):
    """Coupon missing, expired, cancelled or already used"""
    code = "invalid_coupon"


class OutOfStock(DomainError):
    """Reward redemption with no remaining reward stock"""
    code = "out_of_stock"
    status_code = 409


class NotFound(DomainError):
    code = "not_found"
    status_code = 404


class PaymentDeclined(DomainError):
    code = "payment_declined"
    status_code = 402


class CompensationFailed(DomainError):
    """
    A compensating action (e.g. releasing stock reserved earlier in a failed
    checkout) failed itself. Carries the original error so it is not masked.
    """
    code = "compensation_failed"
    status_code = 500

    def __init__(self, message=None, original=None, failures=None, **context):
        self.original = original
        self.failures = failures or []
        super().__init__(message, **context)
