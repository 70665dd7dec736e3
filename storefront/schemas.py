"""
Pydantic v2 models shared by the data layer, the core and the HTTP API.

Product rows are validated here after normalize_product_row() has filled the
display defaults, so every Product the rest of the code sees is complete.
"""

import re
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DeliveryTime(str, Enum):
    """Delivery-time buckets stored on the products table."""
    UNDER_24H = "under-24h"
    ONE_TO_TWO_DAYS = "1-2-days"
    THREE_TO_FIVE_DAYS = "3-5-days"

    @property
    def label(self) -> str:
        return {
            DeliveryTime.UNDER_24H: "Under 24 Hours",
            DeliveryTime.ONE_TO_TWO_DAYS: "1-2 Days",
            DeliveryTime.THREE_TO_FIVE_DAYS: "3-5 Days",
        }[self]


class SortKey(str, Enum):
    """Sort orders offered on the product listing. NONE means name ascending."""
    NONE = "none"
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"
    NAME_ASC = "name-asc"
    NAME_DESC = "name-desc"
    RATING_DESC = "rating-desc"


class ResultStatus(str, Enum):
    """Outcome of a product fetch as seen by the caller."""
    OK = "OK"
    NOT_FOUND = "NOT_FOUND"
    ERROR = "ERROR"


class Product(BaseModel):
    """A catalog entry. Created and updated only by the backing store."""
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., gt=0)
    name: str
    description: str = ""
    price: float = Field(..., ge=0)
    image: str = ""
    category: str = ""
    subcategory: Optional[str] = None
    delivery_time: DeliveryTime = DeliveryTime.THREE_TO_FIVE_DAYS
    rating: float = 0.0
    reviews_count: int = 0
    is_featured: bool = False


class CartItem(BaseModel):
    """One cart line. The display snapshot is taken when the product is added."""
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., ge=1)
    name: str = ""
    price: float = Field(0.0, ge=0)
    image: str = ""

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


class AuthSession(BaseModel):
    """A signed-in user as reported by the hosted auth provider."""
    user_id: str
    access_token: str
    email: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id and self.access_token)


class WishlistEntry(BaseModel):
    """A (user, product) pair in the wishlists table."""
    id: str
    user_id: str
    product_id: int
    created_at: Optional[datetime] = None
    product: Optional[Product] = None


class Profile(BaseModel):
    """Contact details kept in the profiles table, one row per user."""
    id: str
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    address: str = ""

    @field_validator("first_name", "last_name", "phone", "address", mode="before")
    @classmethod
    def _null_to_blank(cls, v):
        return "" if v is None else v


class ProfileUpdate(BaseModel):
    """Editable profile fields. Omitted fields are left unchanged."""
    model_config = ConfigDict(extra="forbid")

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class OrderLine(BaseModel):
    """One order_items row, with the product embedded when it is still readable."""
    id: str
    product_id: Optional[int] = None
    quantity: int = Field(1, ge=0)
    price: float = Field(0.0, ge=0)
    product: Optional[Product] = None


class OrderSummary(BaseModel):
    """A stored order as listed in the user's order history."""
    id: str
    user_id: str
    total: float = 0.0
    status: str = ""
    created_at: Optional[datetime] = None
    items: List[OrderLine] = Field(default_factory=list)


_EXPIRY_RE = re.compile(r"^(0[1-9]|1[0-2])/\d{2}$")
_CVV_RE = re.compile(r"^\d{3,4}$")


class PaymentDetails(BaseModel):
    """Card details collected at checkout. Payment itself is simulated."""
    model_config = ConfigDict(extra="forbid")

    card_name: str = Field(..., min_length=1)
    card_number: str
    expiry: str
    cvv: str

    @field_validator("card_name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("card_name must not be blank")
        return v

    @field_validator("card_number")
    @classmethod
    def _check_card_number(cls, v: str) -> str:
        digits = v.replace(" ", "").replace("-", "")
        if not digits.isdigit() or not 13 <= len(digits) <= 19:
            raise ValueError("card_number must be 13-19 digits")
        return digits

    @field_validator("expiry")
    @classmethod
    def _check_expiry(cls, v: str) -> str:
        if not _EXPIRY_RE.match(v.strip()):
            raise ValueError("expiry must be MM/YY")
        return v.strip()

    @field_validator("cvv")
    @classmethod
    def _check_cvv(cls, v: str) -> str:
        if not _CVV_RE.match(v.strip()):
            raise ValueError("cvv must be 3 or 4 digits")
        return v.strip()

    @property
    def masked_number(self) -> str:
        return f"**** {self.card_number[-4:]}"


class Order(BaseModel):
    """A placed order."""
    order_id: str
    user_id: str
    items: List[CartItem]
    total: float
    created_at: datetime
    status: str = "confirmed"


class TrackingStep(BaseModel):
    """One milestone shown on the order tracking page."""
    title: str
    description: str
    timestamp: datetime
