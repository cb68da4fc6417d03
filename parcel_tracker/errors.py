class OrderError(Exception):
    """Base class for order lifecycle failures reported to the caller."""


class ValidationError(OrderError):
    """A required field group is missing or has empty fields."""

    def __init__(self, group: str, message: str = ""):
        self.group = group
        self.message = message or f"{group.capitalize()} information is required"
        super().__init__(self.message)


class OrderNotFound(OrderError):
    def __init__(self, ref):
        self.ref = ref
        super().__init__(f"Order not found: {ref}")


class DuplicateTrackingId(OrderError):
    def __init__(self, tracking_id: str):
        self.tracking_id = tracking_id
        super().__init__(f"Order with tracking ID {tracking_id} already exists")


class NotificationDispatchFailure(Exception):
    """Mail delivery failed. Only ever logged; never raised out of the dispatcher."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)
