"""
Exception hierarchy for the storefront.

Validation problems in filter input never raise; they are clamped or
defaulted where they are parsed. Everything below is raised at a
collaborator boundary and translated into a UI state or HTTP status by the
caller.
"""


class StorefrontError(RuntimeError):
    """Base class for all storefront errors."""


class ProductStoreError(StorefrontError):
    """Raised when the product backing store cannot be queried."""


class AuthorizationError(StorefrontError):
    """Raised when an operation needs a signed-in user and none is present."""

    def __init__(self, message: str = "Sign in to continue"):
        super().__init__(message)


class WishlistError(StorefrontError):
    """Raised when a wishlist request fails for a reason other than auth."""


class AccountError(StorefrontError):
    """Raised when a profile or order-history request fails for a reason other than auth."""


class CheckoutError(StorefrontError):
    """Raised when an order cannot be placed."""


class OrderNotFoundError(StorefrontError):
    """Raised when tracking is requested for an unknown order."""

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id
