"""Error kinds raised by the dispatch core.

Each class also derives from the built-in exception the HTTP layer catches,
so `except LookupError` around a service call keeps working.
"""


class DispatchError(Exception):
    kind = "dispatch_error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidInput(DispatchError, ValueError):
    """Malformed coordinates, resolution, cell id or request field."""
    kind = "invalid_input"


class DuplicateOrder(InvalidInput):
    kind = "duplicate_order"


class OrderNotFound(DispatchError, LookupError):
    kind = "order_not_found"


class AlreadyAccepted(DispatchError, RuntimeError):
    """A competing accept lost the race; the order is no longer pending."""
    kind = "already_accepted"


class InvalidTransition(DispatchError, RuntimeError):
    kind = "invalid_transition"


class DriverUnavailable(DispatchError, RuntimeError):
    """The driver already holds an order."""
    kind = "driver_unavailable"
