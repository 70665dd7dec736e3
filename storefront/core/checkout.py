"""
Checkout and order tracking.

Payment is simulated: after a short delay every valid card is accepted.
A placed order takes its lines out of the cart (one cart_updated broadcast)
and is kept in memory so it can be tracked for the rest of the session.
"""
from __future__ import annotations

import asyncio
import random
import string
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from storefront.core.config import get_config
from storefront.data.cart_store import CartStore
from storefront.errors import AuthorizationError, CheckoutError, OrderNotFoundError
from storefront.schemas import AuthSession, Order, PaymentDetails, TrackingStep
from storefront.utils.logger import get_logger

logger = get_logger("core.checkout")

_BASE36 = string.digits + string.ascii_uppercase


def generate_order_id(now_ms: Optional[int] = None, rng: Optional[random.Random] = None) -> str:
    """'ORD' + last 8 digits of the epoch-ms timestamp + 4 random base-36 characters."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    rng = rng or random.Random()
    suffix = "".join(rng.choice(_BASE36) for _ in range(4))
    return f"ORD{str(now_ms)[-8:]}{suffix}"


class CheckoutService:
    """Places orders from the cart and answers tracking lookups."""

    def __init__(self, cart: CartStore, *, payment_delay_s: Optional[float] = None) -> None:
        self._cart = cart
        if payment_delay_s is None:
            payment_delay_s = get_config().payment_delay_s
        self._payment_delay_s = payment_delay_s
        self._orders: Dict[str, Order] = {}

    async def place_order(self, session: Optional[AuthSession], payment: PaymentDetails) -> Order:
        """
        Charge (simulated) and record an order for everything in the cart.

        Raises AuthorizationError when nobody is signed in and CheckoutError
        when the cart is empty. The ordered lines leave the cart only after
        payment succeeds; anything added during the payment delay stays.
        """
        if session is None or not session.is_authenticated:
            raise AuthorizationError("Please sign in to complete your purchase")

        items = self._cart.items()
        if not items:
            raise CheckoutError("Your cart is empty")

        logger.info(f"Processing payment for user_id={session.user_id} card={payment.masked_number}")
        await asyncio.sleep(self._payment_delay_s)

        order = Order(
            order_id=generate_order_id(),
            user_id=session.user_id,
            items=items,
            total=round(sum(item.line_total for item in items), 2),
            created_at=datetime.now(timezone.utc),
        )
        self._orders[order.order_id] = order
        self._cart.remove_ordered(items)
        logger.info(f"Order {order.order_id} placed: {len(items)} line(s), total={order.total}")
        return order

    def get_order(self, order_id: str) -> Order:
        order = self._orders.get(order_id.strip())
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def orders_for(self, session: AuthSession) -> List[Order]:
        """The user's orders, newest first."""
        orders = [o for o in self._orders.values() if o.user_id == session.user_id]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    def track_order(self, order_id: str) -> List[TrackingStep]:
        """Tracking milestones for an order placed in this session."""
        if not order_id or not order_id.strip():
            raise ValueError("Please enter an order number")
        order = self.get_order(order_id)
        placed = order.created_at
        return [
            TrackingStep(
                title="Order Confirmed",
                description="Your order has been confirmed and is being processed",
                timestamp=placed,
            ),
            TrackingStep(
                title="Order Shipped",
                description="Your order has been shipped via express delivery",
                timestamp=placed + timedelta(days=1),
            ),
            TrackingStep(
                title="In Transit",
                description="Your order is on its way to the delivery address",
                timestamp=placed + timedelta(days=2),
            ),
        ]
