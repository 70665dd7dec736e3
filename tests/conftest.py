"""Pytest configuration for storefront tests."""

import os
import sys
from typing import Dict, List, Optional

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from storefront.core.config import StorefrontConfig, set_config  # noqa: E402
from storefront.data.product_store import normalize_product_row  # noqa: E402
from storefront.data.query_builder import ProductQuery, matches  # noqa: E402
from storefront.errors import ProductStoreError  # noqa: E402


# ---------------------------------------------------------------------------
# Catalog fixture data. Prices are unique so price sorts have no ties
# ---------------------------------------------------------------------------

CATALOG_ROWS: List[Dict] = [
    {"id": 1, "name": "Dairy Milk Silk", "description": "Smooth milk chocolate", "price": 180,
     "image": "https://img.example/dms.jpg", "category": "Chocolates", "subcategory": "Milk Chocolates",
     "delivery_time": "under-24h", "rating": 4.5, "reviews_count": 120, "is_featured": True},
    {"id": 2, "name": "Polo Mints", "description": "The mint with the hole", "price": 20,
     "image": "https://img.example/polo.jpg", "category": "Mint Candies", "subcategory": "Breath Fresheners",
     "delivery_time": "1-2-days", "rating": 4.0, "reviews_count": 45, "is_featured": False},
    {"id": 3, "name": "Lindt Excellence 70% Dark", "description": None, "price": 350,
     "image": None, "category": "Chocolates", "subcategory": "Dark Chocolates",
     "delivery_time": "3-5-days", "rating": 4.8, "reviews_count": 80, "is_featured": False},
    {"id": 4, "name": "Mentos Mint", "description": "Chewy mint", "price": 30,
     "image": "https://img.example/mentos.jpg", "category": "Mint Candies", "subcategory": "Breath Fresheners",
     "delivery_time": None, "rating": None, "reviews_count": None, "is_featured": None},
    {"id": 5, "name": "Ferrero Rocher 24pc", "description": "Hazelnut pralines", "price": 1200,
     "image": "https://img.example/ferrero.jpg", "category": "Gift Boxes", "subcategory": "Assorted Chocolates",
     "delivery_time": "under-24h", "rating": 4.9, "reviews_count": 300, "is_featured": True},
    {"id": 6, "name": "Ice Breakers Sugar-Free Mints", "description": "", "price": 150,
     "image": "https://img.example/ice.jpg", "category": "Mint Candies", "subcategory": "Sugar-Free Mints",
     "delivery_time": "1-2-days", "rating": 4.0, "reviews_count": 12, "is_featured": False},
    {"id": 7, "name": "Godiva Gift Box", "description": "Premium assortment", "price": 2500,
     "image": "https://img.example/godiva.jpg", "category": "Gift Boxes", "subcategory": "Premium Sweets & Treats",
     "delivery_time": "3-5-days", "rating": 4.7, "reviews_count": 64, "is_featured": True},
    {"id": 8, "name": "Snickers", "description": "Peanut bar", "price": 40,
     "image": "https://img.example/snickers.jpg", "category": "Chocolates", "subcategory": "Nutty Chocolates",
     "delivery_time": "under-24h", "rating": 4.2, "reviews_count": 500, "is_featured": False},
]


class FakeProductStore:
    """
    In-memory product store with the same interface as the real stores.
    Evaluates native predicates with the client-side matcher; can be told to
    fail or to skip predicates it "cannot express".
    """

    def __init__(self, rows: Optional[List[Dict]] = None, unsupported_predicates=(), fail: bool = False):
        self.rows = list(CATALOG_ROWS if rows is None else rows)
        self.unsupported_predicates = frozenset(unsupported_predicates)
        self.fail = fail
        self.queries: List[ProductQuery] = []

    async def fetch_products(self, query: ProductQuery):
        self.queries.append(query)
        if self.fail:
            raise ProductStoreError("connection refused")
        native = query.without(self.unsupported_predicates)
        products = [normalize_product_row(r) for r in self.rows]
        return [p for p in products if matches(p, native)]

    async def get_product(self, product_id: int):
        if self.fail:
            raise ProductStoreError("connection refused")
        for row in self.rows:
            if row["id"] == product_id:
                return normalize_product_row(row)
        return None

    async def list_categories(self):
        if self.fail:
            raise ProductStoreError("connection refused")
        grouped: Dict[str, set] = {}
        for row in self.rows:
            grouped.setdefault(row["category"], set()).add(row["subcategory"])
        return {c: sorted(s) for c, s in grouped.items()}

    async def aclose(self):
        pass


@pytest.fixture
def catalog_rows():
    return [dict(r) for r in CATALOG_ROWS]


@pytest.fixture
def product_store():
    return FakeProductStore()


@pytest.fixture(autouse=True)
def test_config():
    """Fast, deterministic config for every test."""
    config = StorefrontConfig(
        supabase_url="https://test.supabase.co",
        supabase_key="anon-key",
        fetch_timeout_s=1.0,
        payment_delay_s=0.0,
        cart_db_path=":memory:",
    )
    set_config(config)
    yield config
    set_config(None)
