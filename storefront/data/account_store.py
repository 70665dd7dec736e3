"""
Supabase profile and order history for signed-in users.

Profiles table schema:
  id          uuid PK FK auth.users(id) ON DELETE CASCADE
  first_name  text
  last_name   text
  phone       text
  address     text

Orders are read with their order_items and each item's product embedded:
  orders(id, user_id, total, status, created_at)
  order_items(id, order_id, product_id, quantity, price)

Like the wishlist, every call carries the user's access token and is
rejected before any request when nobody is signed in.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from storefront.errors import AccountError, AuthorizationError
from storefront.data.product_store import normalize_product_row
from storefront.schemas import (
    AuthSession,
    DeliveryTime,
    OrderLine,
    OrderSummary,
    Profile,
    ProfileUpdate,
)
from storefront.utils.logger import get_logger
from storefront.utils.supabase_client import SupabaseClient, SupabaseRequestError

logger = get_logger("data.account_store")

ORDER_SELECT = "*,order_items(*,products(*))"


def _require_session(session: Optional[AuthSession]) -> AuthSession:
    if session is None or not session.is_authenticated:
        raise AuthorizationError("You need to be logged in to view your account")
    return session


class ProfileStore:
    """Read and edit the signed-in user's row in the profiles table."""

    def __init__(self, client: SupabaseClient, *, table: str = "profiles") -> None:
        self._client = client
        self._table = table

    def get(self, session: Optional[AuthSession]) -> Profile:
        """The user's profile. A user without a row gets blank fields."""
        session = _require_session(session)
        logger.info(f"profile: method=get user_id={session.user_id}")
        try:
            rows = self._client.select(
                self._table,
                filters=[("id", f"eq.{session.user_id}")],
                limit=1,
                access_token=session.access_token,
            )
        except SupabaseRequestError as e:
            raise AccountError(f"Could not load profile: {e}") from e
        if not rows:
            return Profile(id=session.user_id)
        return Profile.model_validate({**rows[0], "id": str(rows[0].get("id", session.user_id))})

    def update(self, session: Optional[AuthSession], changes: ProfileUpdate) -> Profile:
        """
        Write the given fields and return the stored profile.

        Raises AccountError when the backend updated no row (no profile row
        exists, or row level security hid it).
        """
        session = _require_session(session)
        values = changes.changes()
        if not values:
            return self.get(session)
        logger.info(f"profile: method=update user_id={session.user_id} fields={sorted(values)}")
        try:
            rows = self._client.update(
                self._table,
                [("id", f"eq.{session.user_id}")],
                values,
                access_token=session.access_token,
            )
        except SupabaseRequestError as e:
            raise AccountError(f"Could not update profile: {e}") from e
        if not rows:
            raise AccountError("Could not update profile: no profile found for this account")
        return Profile.model_validate({**rows[0], "id": str(rows[0].get("id", session.user_id))})


class OrderHistoryStore:
    """The signed-in user's stored orders, newest first."""

    def __init__(
        self,
        client: SupabaseClient,
        *,
        table: str = "orders",
        default_delivery: DeliveryTime = DeliveryTime.THREE_TO_FIVE_DAYS,
    ) -> None:
        self._client = client
        self._table = table
        self._default_delivery = default_delivery

    def list(self, session: Optional[AuthSession]) -> List[OrderSummary]:
        session = _require_session(session)
        logger.info(f"orders: method=list user_id={session.user_id}")
        try:
            rows = self._client.select(
                self._table,
                filters=[("user_id", f"eq.{session.user_id}")],
                select=ORDER_SELECT,
                order="created_at.desc",
                access_token=session.access_token,
            )
        except SupabaseRequestError as e:
            raise AccountError(f"Could not load orders: {e}") from e
        return [self._to_summary(row) for row in rows]

    def _to_summary(self, row: Dict[str, Any]) -> OrderSummary:
        return OrderSummary(
            id=str(row["id"]),
            user_id=str(row.get("user_id") or ""),
            total=row.get("total") or 0,
            status=row.get("status") or "",
            created_at=row.get("created_at"),
            items=[self._to_line(item) for item in row.get("order_items") or []],
        )

    def _to_line(self, row: Dict[str, Any]) -> OrderLine:
        product = None
        if row.get("products"):
            try:
                product = normalize_product_row(row["products"], self._default_delivery)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Order item {row.get('id')} has an unreadable product: {e}")
        return OrderLine(
            id=str(row["id"]),
            product_id=row.get("product_id"),
            quantity=row.get("quantity") or 0,
            price=row.get("price") or 0,
            product=product,
        )
