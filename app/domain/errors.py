from __future__ import annotations


class OrderValidationError(ValueError):
    """Input rejected by an order operation; ``errors`` maps field path to message."""

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{field}: {message}" for field, message in self.errors.items()))


class OrderNotFoundError(LookupError):
    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"order not found: {order_id}")


class InvalidFilterError(ValueError):
    pass


class InvalidPayloadError(ValueError):
    pass


class OrderConflictError(RuntimeError):
    """The order row changed between load and write."""

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"order modified concurrently: {order_id}")
