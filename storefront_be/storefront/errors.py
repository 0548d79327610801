"""Business errors raised by the order lifecycle and notification services.

Every error carries a stable machine-readable ``kind`` and the HTTP status the
API layer maps it to. Routers never catch these; the exception handler
registered in ``storefront.main`` renders them.
"""


class StorefrontError(Exception):
    """Base exception for all storefront business-rule failures."""

    kind = "storefront_error"
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(StorefrontError):
    """Raised when an order, a line item or a notification does not exist.

    Orders owned by another user are reported the same way.
    """

    kind = "not_found"
    status_code = 404


class InvalidStateError(StorefrontError):
    """Raised when an operation is illegal in the order's current status."""

    kind = "invalid_state"
    status_code = 400


class InvalidTransitionError(InvalidStateError):
    """Raised when a status change is not in the legal transition table."""

    kind = "invalid_transition"

    def __init__(self, current: str, target: str, what: str = "order"):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {what} from '{current}' to '{target}'")


class ConflictError(StorefrontError):
    """Raised when a line item already has an active return request."""

    kind = "conflict"
    status_code = 409


class ExpiredError(StorefrontError):
    """Raised when the return window has elapsed."""

    kind = "expired"
    status_code = 400


class EmptyCartError(StorefrontError):
    kind = "empty_cart"
    status_code = 400

    def __init__(self, message: str = "Your cart is empty"):
        super().__init__(message)


class ValidationError(StorefrontError):
    """Raised for missing shipping fields or unconfirmed payment data."""

    kind = "validation_error"
    status_code = 400


class DependencyError(StorefrontError):
    """Raised by best-effort side channels (notification store, broadcaster).

    Callers log it and carry on; it is never returned to API clients.
    """

    kind = "dependency_error"
    status_code = 500
