"""
Supabase wishlist for signed-in users.

Wishlists table schema:
  id          uuid PK default gen_random_uuid()
  user_id     uuid not null FK auth.users(id) ON DELETE CASCADE, default auth.uid()
  product_id  bigint not null FK products(id)
  created_at  timestamptz default now()
  UNIQUE (user_id, product_id)

Every call runs with the user's access token, so row level security limits
it to that user's rows. Calls without a signed-in session are rejected
before any request is made.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from storefront.errors import AuthorizationError, WishlistError
from storefront.data.product_store import normalize_product_row
from storefront.schemas import AuthSession, DeliveryTime, WishlistEntry
from storefront.utils.logger import get_logger
from storefront.utils.supabase_client import SupabaseClient, SupabaseRequestError

logger = get_logger("data.wishlist_store")

UNIQUE_VIOLATION = "23505"


def _require_session(session: Optional[AuthSession]) -> AuthSession:
    if session is None or not session.is_authenticated:
        raise AuthorizationError("You need to be logged in to manage your wishlist")
    return session


class WishlistStore:
    """Add/remove/query (user, product) membership in the wishlists table."""

    def __init__(
        self,
        client: SupabaseClient,
        *,
        table: str = "wishlists",
        default_delivery: DeliveryTime = DeliveryTime.THREE_TO_FIVE_DAYS,
    ) -> None:
        self._client = client
        self._table = table
        self._default_delivery = default_delivery

    def list(self, session: Optional[AuthSession]) -> List[WishlistEntry]:
        """The user's wishlist, newest first, with each product embedded."""
        session = _require_session(session)
        logger.info(f"wishlist: method=list user_id={session.user_id}")
        try:
            rows = self._client.select(
                self._table,
                filters=[("user_id", f"eq.{session.user_id}")],
                select="*,product:products(*)",
                order="created_at.desc",
                access_token=session.access_token,
            )
        except SupabaseRequestError as e:
            raise WishlistError(f"Could not load wishlist: {e}") from e
        return [self._to_entry(row) for row in rows]

    def add(self, session: Optional[AuthSession], product_id: int) -> bool:
        """
        Add a product. Returns False when it was already in the wishlist.
        """
        session = _require_session(session)
        logger.info(f"wishlist: method=add user_id={session.user_id} product_id={product_id}")
        try:
            self._client.insert(
                self._table,
                {"user_id": session.user_id, "product_id": product_id},
                access_token=session.access_token,
            )
        except SupabaseRequestError as e:
            if e.code == UNIQUE_VIOLATION or e.status_code == 409:
                logger.info(f"wishlist: product_id={product_id} already in wishlist")
                return False
            raise WishlistError(f"Could not add to wishlist: {e}") from e
        return True

    def remove(self, session: Optional[AuthSession], product_id: int) -> None:
        session = _require_session(session)
        logger.info(f"wishlist: method=remove user_id={session.user_id} product_id={product_id}")
        try:
            self._client.delete(
                self._table,
                [("user_id", f"eq.{session.user_id}"), ("product_id", f"eq.{product_id}")],
                access_token=session.access_token,
            )
        except SupabaseRequestError as e:
            raise WishlistError(f"Could not remove from wishlist: {e}") from e

    def contains(self, session: Optional[AuthSession], product_id: int) -> bool:
        session = _require_session(session)
        try:
            rows = self._client.select(
                self._table,
                filters=[("user_id", f"eq.{session.user_id}"), ("product_id", f"eq.{product_id}")],
                select="id",
                limit=1,
                access_token=session.access_token,
            )
        except SupabaseRequestError as e:
            raise WishlistError(f"Could not check wishlist: {e}") from e
        return bool(rows)

    def _to_entry(self, row: Dict[str, Any]) -> WishlistEntry:
        product = None
        if row.get("product"):
            try:
                product = normalize_product_row(row["product"], self._default_delivery)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Wishlist row {row.get('id')} has an unreadable product: {e}")
        return WishlistEntry(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            product_id=int(row["product_id"]),
            created_at=row.get("created_at"),
            product=product,
        )
