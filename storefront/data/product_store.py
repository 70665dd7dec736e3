"""
Product stores for the 'products' table.

Two interchangeable backends:
  SupabaseProductStore    PostgREST REST API over httpx (SUPABASE_URL + SUPABASE_KEY)
  SQLAlchemyProductStore  direct Postgres connection (DATABASE_URL)

Both return normalized Product models: every row passes through
normalize_product_row() at this boundary, so nullable optional columns get
their display defaults in exactly one place.

Table schema (Supabase):
  id            bigint  primary key
  name          text
  description   text
  price         numeric  (>= 0)
  image         text     image URL
  category      text
  subcategory   text
  delivery_time text     under-24h | 1-2-days | 3-5-days
  rating        numeric
  reviews_count integer
  is_featured   boolean
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

import httpx

from storefront.core.config import StorefrontConfig, get_config
from storefront.data.query_builder import PREDICATES, ProductQuery, apply_to_select, to_postgrest_params
from storefront.errors import ProductStoreError
from storefront.schemas import DeliveryTime, Product
from storefront.utils.logger import get_logger

logger = get_logger("data.product_store")


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def normalize_product_row(
    row: Dict[str, Any],
    default_delivery: DeliveryTime = DeliveryTime.THREE_TO_FIVE_DAYS,
) -> Product:
    """
    Normalise a products row into a Product, filling display defaults.

    rating -> 0, reviews_count -> 0, is_featured -> False, text columns -> "",
    delivery_time -> ``default_delivery`` when missing or unrecognised.
    Raises KeyError, TypeError or ValueError for rows without a usable id or
    price (missing, null, non-numeric or negative).
    """
    raw_delivery = row.get("delivery_time")
    try:
        delivery = DeliveryTime(raw_delivery) if raw_delivery else default_delivery
    except ValueError:
        delivery = default_delivery

    return Product(
        id=int(row["id"]),
        name=row.get("name") or "",
        description=row.get("description") or "",
        price=float(row["price"]),
        image=row.get("image") or "",
        category=row.get("category") or "",
        subcategory=row.get("subcategory") or None,
        delivery_time=delivery,
        rating=float(row.get("rating") or 0),
        reviews_count=int(row.get("reviews_count") or 0),
        is_featured=bool(row.get("is_featured") or False),
    )


def _normalize_rows(rows: Iterable[Dict[str, Any]], default_delivery: DeliveryTime) -> List[Product]:
    products = []
    for row in rows:
        try:
            products.append(normalize_product_row(row, default_delivery))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed product row id={row.get('id')!r}: {e}")
    return products


def _predicate_set(names: Iterable[str]) -> FrozenSet[str]:
    names = frozenset(names)
    unknown = names - set(PREDICATES)
    if unknown:
        raise ValueError(f"Unknown predicates {sorted(unknown)}; expected a subset of {PREDICATES}")
    return names


def _group_categories(rows: Iterable[Dict[str, Any]]) -> Dict[str, List[str]]:
    """category -> sorted distinct non-null subcategories."""
    grouped: Dict[str, set] = {}
    for row in rows:
        category = row.get("category")
        if not category:
            continue
        subs = grouped.setdefault(category, set())
        if row.get("subcategory"):
            subs.add(row["subcategory"])
    return {category: sorted(subs) for category, subs in sorted(grouped.items())}


# ---------------------------------------------------------------------------
# Supabase REST store
# ---------------------------------------------------------------------------

class SupabaseProductStore:
    """
    Query the Supabase `products` table via its REST API.

    ``unsupported_predicates`` names predicates to leave out of the request
    (e.g. a deployment whose table lacks a column); run_query() applies them
    client-side instead.
    """

    def __init__(
        self,
        base_url: str,
        key: str,
        *,
        table: str = "products",
        default_delivery: DeliveryTime = DeliveryTime.THREE_TO_FIVE_DAYS,
        unsupported_predicates: Iterable[str] = (),
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.unsupported_predicates = _predicate_set(unsupported_predicates)
        if not base_url or not key:
            logger.warning("SUPABASE_URL or SUPABASE_KEY not set; product store unavailable")
        headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }
        self._client = httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout, transport=transport)
        self._path = f"/rest/v1/{table}"
        self.default_delivery = default_delivery

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_products(self, query: ProductQuery) -> List[Product]:
        """Return every product row matching the query's native predicates."""
        params = to_postgrest_params(query.without(self.unsupported_predicates))
        rows = await self._get(params)
        logger.info(f"Fetched {len(rows)} products")
        return _normalize_rows(rows, self.default_delivery)

    async def get_product(self, product_id: int) -> Optional[Product]:
        """Fetch a single product by id; None when it does not exist."""
        rows = await self._get([("select", "*"), ("id", f"eq.{product_id}"), ("limit", "1")])
        products = _normalize_rows(rows, self.default_delivery)
        return products[0] if products else None

    async def list_categories(self) -> Dict[str, List[str]]:
        rows = await self._get([
            ("select", "category,subcategory"),
            ("category", "not.is.null"),
        ])
        return _group_categories(rows)

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _get(self, params: List[tuple]) -> List[Dict[str, Any]]:
        """Execute a GET request; any transport or HTTP failure raises ProductStoreError."""
        try:
            resp = await self._client.get(self._path, params=params)
            resp.raise_for_status()
            rows = resp.json()
        except httpx.HTTPStatusError as e:
            raise ProductStoreError(f"Supabase products query failed: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ProductStoreError(f"Supabase products query failed: {e!r}") from e
        except ValueError as e:
            raise ProductStoreError(f"Supabase returned invalid JSON: {e}") from e
        return rows if isinstance(rows, list) else []


# ---------------------------------------------------------------------------
# SQLAlchemy store (DATABASE_URL)
# ---------------------------------------------------------------------------

class SQLAlchemyProductStore:
    """
    Product store using SQLAlchemy + DATABASE_URL.
    Same public interface as SupabaseProductStore. Queries run in a worker
    thread so the event loop stays responsive.
    """

    def __init__(
        self,
        database_url: str = "",
        *,
        engine: Any = None,
        default_delivery: DeliveryTime = DeliveryTime.THREE_TO_FIVE_DAYS,
        unsupported_predicates: Iterable[str] = (),
    ) -> None:
        from sqlalchemy import create_engine

        if engine is None:
            if not database_url:
                raise ProductStoreError("DATABASE_URL not set, no product store available")
            engine = create_engine(database_url, pool_pre_ping=True)
        self._engine = engine
        self.default_delivery = default_delivery
        self.unsupported_predicates = _predicate_set(unsupported_predicates)

    async def fetch_products(self, query: ProductQuery) -> List[Product]:
        rows = await asyncio.to_thread(self._select_products, query.without(self.unsupported_predicates))
        logger.info(f"Fetched {len(rows)} products")
        return _normalize_rows(rows, self.default_delivery)

    async def get_product(self, product_id: int) -> Optional[Product]:
        row = await asyncio.to_thread(self._select_one, product_id)
        if row is None:
            return None
        products = _normalize_rows([row], self.default_delivery)
        return products[0] if products else None

    async def list_categories(self) -> Dict[str, List[str]]:
        rows = await asyncio.to_thread(self._select_categories)
        return _group_categories(rows)

    async def aclose(self) -> None:
        self._engine.dispose()

    def _select_products(self, query: ProductQuery) -> List[Dict[str, Any]]:
        from sqlalchemy import select
        from storefront.data.models import ProductRecord

        stmt = apply_to_select(query, select(ProductRecord), ProductRecord)
        return self._run(lambda session: [r.to_row() for r in session.scalars(stmt)])

    def _select_one(self, product_id: int) -> Optional[Dict[str, Any]]:
        from storefront.data.models import ProductRecord

        def load(session):
            record = session.get(ProductRecord, product_id)
            return record.to_row() if record is not None else None

        return self._run(load)

    def _select_categories(self) -> List[Dict[str, Any]]:
        from sqlalchemy import select
        from storefront.data.models import ProductRecord

        stmt = (
            select(ProductRecord.category, ProductRecord.subcategory)
            .where(ProductRecord.category.is_not(None))
            .distinct()
        )
        return self._run(lambda session: [
            {"category": category, "subcategory": subcategory}
            for category, subcategory in session.execute(stmt)
        ])

    def _run(self, work):
        from sqlalchemy.exc import SQLAlchemyError
        from sqlalchemy.orm import Session

        try:
            with Session(self._engine) as session:
                return work(session)
        except SQLAlchemyError as e:
            raise ProductStoreError(f"SQLAlchemy products query failed: {e}") from e


# ---------------------------------------------------------------------------
# Singleton store (lazy-init)
# ---------------------------------------------------------------------------
_store_cache: Optional[Any] = None


def get_product_store(config: Optional[StorefrontConfig] = None):
    """
    Return the process-wide product store.

    Prefers DATABASE_URL (direct Postgres connection) and falls back to the
    Supabase REST API when only SUPABASE_URL + SUPABASE_KEY are set.
    """
    global _store_cache
    if _store_cache is not None:
        return _store_cache

    config = config or get_config()
    default_delivery = DeliveryTime(config.default_delivery_time)
    if config.database_url:
        logger.info("Using SQLAlchemy product store via DATABASE_URL")
        _store_cache = SQLAlchemyProductStore(config.database_url, default_delivery=default_delivery)
    elif config.supabase_url and config.supabase_key:
        logger.info("DATABASE_URL absent, using Supabase REST API product store")
        _store_cache = SupabaseProductStore(
            config.supabase_url,
            config.supabase_key,
            table=config.products_table,
            default_delivery=default_delivery,
        )
    else:
        raise ProductStoreError("No product store available: set DATABASE_URL or SUPABASE_URL+SUPABASE_KEY")
    return _store_cache


def set_product_store(store: Any) -> Optional[Any]:
    """Replace the process-wide product store (None clears it); returns the previous one."""
    global _store_cache
    previous, _store_cache = _store_cache, store
    return previous
