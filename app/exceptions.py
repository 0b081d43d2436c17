# app/exceptions.py
"""Domain errors raised by the order services. Routes map them to HTTP responses."""


class OrderError(Exception):
    """Base class for order domain errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(OrderError):
    pass


class InvalidQuantity(ValidationError):
    def __init__(self, product_id, qty):
        super().__init__(f"Quantity for product {product_id} must be a positive integer, got {qty!r}")
        self.product_id = product_id
        self.qty = qty


class NotFoundError(OrderError):
    pass


class AddressNotFound(NotFoundError):
    def __init__(self, address_id):
        super().__init__(f"Address not found: {address_id}")
        self.address_id = address_id


class AddressNotOwned(NotFoundError):
    def __init__(self, address_id):
        super().__init__(f"Address {address_id} does not belong to the current user")
        self.address_id = address_id


class ProductNotFound(NotFoundError):
    def __init__(self, product_id):
        super().__init__(f"Product not found: {product_id}. It may have been removed.")
        self.product_id = product_id


class OrderNotFound(NotFoundError):
    def __init__(self, order_id):
        super().__init__("Order not found")
        self.order_id = order_id


class InvalidTransitionError(OrderError):
    def __init__(self, rejection):
        super().__init__(rejection.message)
        self.rejection = rejection


class ConflictError(OrderError):
    pass
