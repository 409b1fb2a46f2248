"""
Operational errors raised by the commerce core.

Every class here is an expected failure that the caller can render as a
user-facing message. Anything else escaping a service is an infrastructure
failure and is reported as a generic 500 by the HTTP layer.
"""


class CommerceError(Exception):
    status_code = 400
    code = "COMMERCE_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "error": self.code, "message": self.message}


class NotFound(CommerceError):
    """Entity is missing or not owned by the caller."""
    status_code = 404
    code = "NOT_FOUND"


class InvalidState(CommerceError):
    code = "INVALID_STATE"


class InvalidTransition(InvalidState):
    code = "INVALID_TRANSITION"


class EmptyCart(CommerceError):
    code = "EMPTY_CART"


class MixedRestaurant(CommerceError):
    code = "MIXED_RESTAURANT"


class ItemUnavailable(CommerceError):
    code = "ITEM_UNAVAILABLE"


class DuplicateReview(CommerceError):
    status_code = 409
    code = "DUPLICATE_REVIEW"


class ConflictWrite(CommerceError):
    """Transaction rolled back because of a concurrent modification. Safe to retry once."""
    status_code = 409
    code = "CONFLICT_WRITE"


class ValidationFailed(CommerceError):
    code = "VALIDATION_FAILED"
