"""Exceptions raised by checkout and session operations."""


class StorefrontError(Exception):
    """Base class for storefront errors."""


class InvariantError(StorefrontError):
    """A precondition was violated that normal UI flow should never allow.

    Always fatal to the current operation and never retried.
    """


class InvalidStateError(StorefrontError):
    """The order is not in the state the requested transition needs."""

    def __init__(self, message: str, order_id: int | None = None, status: str | None = None):
        super().__init__(message)
        self.order_id = order_id
        self.status = status


class OrderNotFoundError(StorefrontError):
    def __init__(self, order_number: str | None):
        super().__init__(f"Order `{order_number}` not found")
        self.order_number = order_number


class SessionDecodeError(ValueError):
    """Stored session payload is corrupt or in a foreign format."""
