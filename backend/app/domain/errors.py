"""
Error taxonomy for storage and checkout

PaymentError subclasses are what the checkout flow raises and reports to
the customer; StorageError wraps failures of the persistence backend.
"""


class PaymentError(Exception):
    """Base class for checkout and gateway errors"""


class EmptyBasket(PaymentError):
    """Checkout was attempted with nothing in the basket"""

    def __init__(self, message: str = "Basket is empty"):
        super().__init__(message)


class InvalidAmount(PaymentError):
    """The gateway was asked for a non-positive amount"""

    def __init__(self, amount: int):
        self.amount = amount
        super().__init__(f"Invoice amount must be positive, got {amount}")


class GatewayUnavailable(PaymentError):
    """The payment backend is unconfigured or could not be reached"""


class CheckoutError(PaymentError):
    """A checkout session was used out of order"""


class StorageError(Exception):
    """The key-value store could not be read or written"""
