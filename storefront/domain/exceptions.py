class DomainException(Exception):
    pass


class NotAuthenticatedError(DomainException):
    def __init__(self):
        super().__init__("Sign in to manage your cart")


class ProductNotFoundError(DomainException):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class CartNotFoundError(DomainException):
    def __init__(self, user_id: str = None):
        self.user_id = user_id
        super().__init__("No cart found")


class ItemNotFoundError(DomainException):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Item {product_id} not found in cart")


class EmptyCartError(DomainException):
    def __init__(self):
        super().__init__("No items in cart")


class InvalidQuantityError(DomainException):
    def __init__(self, quantity: int):
        self.quantity = quantity
        super().__init__(f"Quantity must be at least 1, got {quantity}")


class InvalidPaymentSignatureError(DomainException):
    def __init__(self):
        super().__init__("Invalid payment signature")


class PaymentAlreadyUsedError(DomainException):
    def __init__(self, payment_ref: str):
        self.payment_ref = payment_ref
        super().__init__(f"Payment {payment_ref} has already been used")


class OrderNotFoundError(DomainException):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class InvalidStatusTransitionError(DomainException):
    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(f"Order cannot move from {current.value} to {requested.value}")


class ConflictError(DomainException):
    """Concurrent write lost a race; the whole unit of work may be retried."""


class OrderIdConflictError(ConflictError):
    def __init__(self, order_number: str):
        self.order_number = order_number
        super().__init__(f"Order number {order_number} is already taken")


class CartConflictError(ConflictError):
    pass


class PersistenceError(DomainException):
    pass


class PaymentServiceError(DomainException):
    pass


class CartSyncError(DomainException):
    """The cart backend rejected or failed a client request."""
