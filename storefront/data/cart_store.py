"""
Client-local cart.

The cart is a JSON list of CartItem stored under the fixed key "cart" in a
durable key/value store, so it survives restarts. Every mutation is a
read-modify-write followed by exactly one "cart_updated" publish on the
event bus, after the write has completed.

Invariants: at most one item per product id; quantity >= 1 (setting a
quantity of 0 or less removes the item).
"""
from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from pydantic import ValidationError

from storefront.core.config import StorefrontConfig, get_config
from storefront.schemas import CartItem, Product
from storefront.utils.event_bus import EventBus
from storefront.utils.logger import get_logger

logger = get_logger("data.cart_store")

CART_KEY = "cart"
CART_UPDATED = "cart_updated"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryKeyValueStore:
    """Non-durable key/value store, for tests and throwaway sessions."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class SqliteKeyValueStore:
    """Durable key/value store backed by a single-table SQLite file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        if str(path) != ":memory:":
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(path))
        self._conn.execute("CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
        self._conn.commit()

    def get(self, key: str) -> Optional[str]:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        self._conn.execute(
            "INSERT INTO kv (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()


class CartStore:
    """Read/modify/write access to the persisted cart, with change notification."""

    def __init__(self, kv: KeyValueStore, bus: Optional[EventBus] = None) -> None:
        self._kv = kv
        self.bus = bus or EventBus()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def items(self) -> List[CartItem]:
        """Current cart lines. Unreadable stored data reads as an empty cart."""
        raw = self._kv.get(CART_KEY)
        if not raw:
            return []
        try:
            return [CartItem.model_validate(entry) for entry in json.loads(raw)]
        except (ValueError, TypeError, ValidationError) as e:
            logger.warning(f"Discarding unreadable cart data: {e}")
            return []

    def get(self, product_id: int) -> Optional[CartItem]:
        return next((item for item in self.items() if item.product_id == product_id), None)

    def count(self) -> int:
        """Total quantity across all lines (the cart badge number)."""
        return sum(item.quantity for item in self.items())

    def subtotal(self) -> float:
        return round(sum(item.line_total for item in self.items()), 2)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, product: Product, quantity: int = 1) -> CartItem:
        """Add ``quantity`` of ``product``, merging with an existing line."""
        if quantity < 1:
            raise ValueError("quantity must be at least 1")
        items = self.items()
        for index, item in enumerate(items):
            if item.product_id == product.id:
                updated = item.model_copy(update={"quantity": item.quantity + quantity})
                items[index] = updated
                break
        else:
            updated = CartItem(
                product_id=product.id,
                quantity=quantity,
                name=product.name,
                price=product.price,
                image=product.image,
            )
            items.append(updated)
        self._write(items)
        logger.info(f"Added product {product.id} x{quantity} to cart")
        return updated

    def set_quantity(self, product_id: int, quantity: int) -> Optional[CartItem]:
        """Set a line's quantity; 0 or less removes it. Returns the line, or None if removed."""
        if quantity <= 0:
            self.remove(product_id)
            return None
        items = self.items()
        for index, item in enumerate(items):
            if item.product_id == product_id:
                items[index] = item.model_copy(update={"quantity": quantity})
                self._write(items)
                return items[index]
        raise KeyError(f"Product {product_id} is not in the cart")

    def remove(self, product_id: int) -> bool:
        """Remove a line. Returns False (and publishes nothing) if it was absent."""
        items = self.items()
        remaining = [item for item in items if item.product_id != product_id]
        if len(remaining) == len(items):
            return False
        self._write(remaining)
        return True

    def remove_ordered(self, ordered: List[CartItem]) -> None:
        """
        Subtract ordered quantities from the current cart in one write.
        Lines added (or topped up) since ``ordered`` was read are kept.
        """
        taken: Dict[int, int] = {}
        for item in ordered:
            taken[item.product_id] = taken.get(item.product_id, 0) + item.quantity
        remaining = []
        for item in self.items():
            quantity = item.quantity - taken.get(item.product_id, 0)
            if quantity > 0:
                remaining.append(item.model_copy(update={"quantity": quantity}))
        self._write(remaining)

    def clear(self) -> None:
        """Empty the cart (after checkout)."""
        self._write([])

    def _write(self, items: List[CartItem]) -> None:
        self._kv.set(CART_KEY, json.dumps([item.model_dump() for item in items]))
        self.bus.publish(CART_UPDATED, {"count": sum(item.quantity for item in items)})


def open_cart_store(config: Optional[StorefrontConfig] = None, bus: Optional[EventBus] = None) -> CartStore:
    """Cart persisted at the configured SQLite path."""
    config = config or get_config()
    return CartStore(SqliteKeyValueStore(config.cart_db_path), bus)
