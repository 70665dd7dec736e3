"""
API module for the storefront.

Provides REST API endpoints for the storefront UI.
"""
from storefront.api.models import (
    ProductListResponse,
    ProductResponse,
    CategoriesResponse,
    WishlistResponse,
    WishlistStatusResponse,
    HealthResponse,
)

__all__ = [
    "ProductListResponse",
    "ProductResponse",
    "CategoriesResponse",
    "WishlistResponse",
    "WishlistStatusResponse",
    "HealthResponse",
]
