"""
Pydantic models for the storefront API responses.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from storefront.schemas import OrderSummary, Product, ResultStatus, WishlistEntry


class ProductListResponse(BaseModel):
    """Response model for the product listing."""
    status: ResultStatus = Field(description="OK or ERROR")
    products: List[Product] = Field(default_factory=list, description="Matching products, in display order")
    count: int = Field(default=0, description="Number of products returned")
    filters: Dict[str, str] = Field(default_factory=dict, description="Canonical shareable form of the applied filters")
    error: Optional[str] = Field(default=None, description="Human-readable message when status is ERROR")


class ProductResponse(BaseModel):
    """Response model for a single product."""
    status: ResultStatus
    product: Optional[Product] = None
    error: Optional[str] = None


class CategoriesResponse(BaseModel):
    """Category -> subcategories."""
    categories: Dict[str, List[str]]


class WishlistResponse(BaseModel):
    items: List[WishlistEntry]


class WishlistStatusResponse(BaseModel):
    product_id: int
    in_wishlist: bool
    message: Optional[str] = None


class OrderHistoryResponse(BaseModel):
    orders: List[OrderSummary]


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str
    service: str
    version: str
    store: Optional[str] = None
