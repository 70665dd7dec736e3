"""
Product query composition.

Turns a FilterState into a ProductQuery holding only the active predicates,
renders it for the two backing stores (PostgREST params, SQLAlchemy select),
and provides the same predicates and sort client-side so results can be
post-filtered and ordered deterministically whatever the store did.

Predicates combine with AND:
  search       name contains the term (case-insensitive)
  category     category equals
  subcategory  subcategory is one of the selected set
  price        min <= price <= max (inclusive)
  delivery     delivery bucket equals; a missing bucket counts as the default

Sort is applied after filtering. Ties keep catalog order (id ascending).
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Protocol, Tuple

from storefront.core.filter_state import CATALOG_MAX_PRICE, FilterState
from storefront.errors import ProductStoreError
from storefront.schemas import DeliveryTime, Product, ResultStatus, SortKey
from storefront.utils.logger import get_logger

logger = get_logger("data.query_builder")

PREDICATES = ("search", "category", "subcategory", "price", "delivery")

# Predicates run_query applies client-side even when the store handled them
ALWAYS_RECHECKED = frozenset({"search"})


@dataclass(frozen=True)
class ProductQuery:
    """Active predicates and sort order for one product fetch."""
    search: Optional[str] = None
    category: Optional[str] = None
    subcategories: Tuple[str, ...] = ()
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    delivery: Optional[DeliveryTime] = None
    sort: SortKey = SortKey.NONE
    default_delivery: DeliveryTime = DeliveryTime.THREE_TO_FIVE_DAYS

    def active_predicates(self) -> FrozenSet[str]:
        active = set()
        if self.search:
            active.add("search")
        if self.category:
            active.add("category")
        if self.subcategories:
            active.add("subcategory")
        if self.min_price is not None or self.max_price is not None:
            active.add("price")
        if self.delivery is not None:
            active.add("delivery")
        return frozenset(active)

    def without(self, predicates: FrozenSet[str]) -> "ProductQuery":
        """Copy with the named predicates dropped (sort is kept)."""
        cleared: Dict[str, Any] = {}
        if "search" in predicates:
            cleared["search"] = None
        if "category" in predicates:
            cleared["category"] = None
        if "subcategory" in predicates:
            cleared["subcategories"] = ()
        if "price" in predicates:
            cleared["min_price"] = None
            cleared["max_price"] = None
        if "delivery" in predicates:
            cleared["delivery"] = None
        return replace(self, **cleared)


class ProductStore(Protocol):
    """What the query layer needs from a backing store."""

    unsupported_predicates: FrozenSet[str]

    async def fetch_products(self, query: ProductQuery) -> List[Product]: ...

    async def get_product(self, product_id: int) -> Optional[Product]: ...

    async def list_categories(self) -> Dict[str, List[str]]: ...


def build_query(
    state: FilterState,
    catalog_max_price: int = CATALOG_MAX_PRICE,
    default_delivery: DeliveryTime = DeliveryTime.THREE_TO_FIVE_DAYS,
) -> ProductQuery:
    """Map a FilterState to a ProductQuery. Default dimensions add no predicate."""
    return ProductQuery(
        search=state.search or None,
        category=state.category or None,
        subcategories=tuple(sorted(state.subcategories)),
        min_price=state.min_price if state.min_price > 0 else None,
        max_price=state.max_price if state.max_price < catalog_max_price else None,
        delivery=state.delivery,
        sort=state.sort,
        default_delivery=default_delivery,
    )


# ---------------------------------------------------------------------------
# PostgREST rendering
# ---------------------------------------------------------------------------

_POSTGREST_ORDER = {
    SortKey.NONE: "name.asc",
    SortKey.PRICE_ASC: "price.asc",
    SortKey.PRICE_DESC: "price.desc",
    SortKey.NAME_ASC: "name.asc",
    SortKey.NAME_DESC: "name.desc",
    SortKey.RATING_DESC: "rating.desc.nullslast",
}


def _escape_like(value: str) -> str:
    """Backslash-escape LIKE metacharacters so the term matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _quote_postgrest(value: str) -> str:
    """Double-quote a value for use inside in.(...) / or=(...) lists."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _fmt_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"


def to_postgrest_params(query: ProductQuery) -> List[Tuple[str, str]]:
    """Render a ProductQuery as PostgREST query params (repeated keys allowed)."""
    params: List[Tuple[str, str]] = [("select", "*")]

    if query.search:
        # PostgREST uses * as the LIKE wildcard in URLs; a literal * in the
        # term cannot be escaped, so run_query re-checks search client-side
        params.append(("name", f"ilike.*{_escape_like(query.search)}*"))

    if query.category:
        params.append(("category", f"eq.{query.category}"))

    if query.subcategories:
        values = ",".join(_quote_postgrest(s) for s in query.subcategories)
        params.append(("subcategory", f"in.({values})"))

    if query.min_price is not None:
        params.append(("price", f"gte.{_fmt_number(query.min_price)}"))
    if query.max_price is not None:
        params.append(("price", f"lte.{_fmt_number(query.max_price)}"))

    if query.delivery is not None:
        if query.delivery == query.default_delivery:
            params.append(("or", f"(delivery_time.eq.{query.delivery.value},delivery_time.is.null)"))
        else:
            params.append(("delivery_time", f"eq.{query.delivery.value}"))

    params.append(("order", f"{_POSTGREST_ORDER[query.sort]},id.asc"))
    return params


# ---------------------------------------------------------------------------
# SQLAlchemy rendering
# ---------------------------------------------------------------------------

def apply_to_select(query: ProductQuery, stmt: Any, model: Any) -> Any:
    """Add the query's WHERE and ORDER BY clauses to a select() on ``model``."""
    from sqlalchemy import or_

    if query.search:
        stmt = stmt.where(model.name.ilike(f"%{_escape_like(query.search)}%", escape="\\"))
    if query.category:
        stmt = stmt.where(model.category == query.category)
    if query.subcategories:
        stmt = stmt.where(model.subcategory.in_(query.subcategories))
    if query.min_price is not None:
        stmt = stmt.where(model.price >= query.min_price)
    if query.max_price is not None:
        stmt = stmt.where(model.price <= query.max_price)
    if query.delivery is not None:
        if query.delivery == query.default_delivery:
            stmt = stmt.where(or_(model.delivery_time == query.delivery.value, model.delivery_time.is_(None)))
        else:
            stmt = stmt.where(model.delivery_time == query.delivery.value)

    order = {
        SortKey.NONE: model.name.asc(),
        SortKey.PRICE_ASC: model.price.asc(),
        SortKey.PRICE_DESC: model.price.desc(),
        SortKey.NAME_ASC: model.name.asc(),
        SortKey.NAME_DESC: model.name.desc(),
        SortKey.RATING_DESC: model.rating.desc().nulls_last(),
    }[query.sort]
    return stmt.order_by(order, model.id.asc())


# ---------------------------------------------------------------------------
# Client-side predicates and sort
# ---------------------------------------------------------------------------

def matches(product: Product, query: ProductQuery, predicates: Optional[FrozenSet[str]] = None) -> bool:
    """True when ``product`` satisfies every active predicate (or only those named)."""
    check = query.active_predicates() if predicates is None else predicates & query.active_predicates()

    if "search" in check and query.search.casefold() not in product.name.casefold():
        return False
    if "category" in check and product.category != query.category:
        return False
    if "subcategory" in check and product.subcategory not in query.subcategories:
        return False
    if "price" in check:
        if query.min_price is not None and product.price < query.min_price:
            return False
        if query.max_price is not None and product.price > query.max_price:
            return False
    if "delivery" in check and product.delivery_time != query.delivery:
        return False
    return True


_SORT_KEYS: Dict[SortKey, Tuple[Callable[[Product], Any], bool]] = {
    SortKey.NONE: (lambda p: p.name.casefold(), False),
    SortKey.PRICE_ASC: (lambda p: p.price, False),
    SortKey.PRICE_DESC: (lambda p: p.price, True),
    SortKey.NAME_ASC: (lambda p: p.name.casefold(), False),
    SortKey.NAME_DESC: (lambda p: p.name.casefold(), True),
    SortKey.RATING_DESC: (lambda p: p.rating, True),
}


def sort_products(products: List[Product], sort: SortKey) -> List[Product]:
    """Stable sort; equal keys stay in catalog order (id ascending)."""
    key, reverse = _SORT_KEYS[sort]
    by_catalog_order = sorted(products, key=lambda p: p.id)
    return sorted(by_catalog_order, key=key, reverse=reverse)


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------

@dataclass
class QueryResult:
    """Outcome of a fetch. Failures are values, not exceptions."""
    status: ResultStatus
    products: List[Product] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ResultStatus.OK

    @property
    def product(self) -> Optional[Product]:
        return self.products[0] if self.products else None

    @classmethod
    def success(cls, products: List[Product]) -> "QueryResult":
        return cls(status=ResultStatus.OK, products=products)

    @classmethod
    def failure(cls, message: str) -> "QueryResult":
        return cls(status=ResultStatus.ERROR, error=message)

    @classmethod
    def not_found(cls, message: str) -> "QueryResult":
        return cls(status=ResultStatus.NOT_FOUND, error=message)


async def run_query(
    store: ProductStore,
    state: FilterState,
    *,
    catalog_max_price: int = CATALOG_MAX_PRICE,
    default_delivery: DeliveryTime = DeliveryTime.THREE_TO_FIVE_DAYS,
    timeout: Optional[float] = None,
) -> QueryResult:
    """
    Fetch the products matching ``state``.

    Predicates the store cannot express natively, plus the search term, are
    applied as a post-filter, and the result is always re-sorted client-side
    so ordering does not depend on the store. Fetch failures and timeouts
    come back as an ERROR result with a message suitable for display.
    """
    query = build_query(state, catalog_max_price, default_delivery)
    try:
        products = await asyncio.wait_for(store.fetch_products(query), timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Product fetch timed out after {timeout}s")
        return QueryResult.failure("Loading products timed out. Please try again.")
    except ProductStoreError as e:
        logger.error(f"Product fetch failed: {e}")
        return QueryResult.failure("Failed to load products")

    pending = (frozenset(store.unsupported_predicates) | ALWAYS_RECHECKED) & query.active_predicates()
    if pending:
        logger.debug(f"Applying client-side post-filter for {sorted(pending)}")
        products = [p for p in products if matches(p, query, pending)]

    return QueryResult.success(sort_products(products, query.sort))


async def fetch_product(
    store: ProductStore,
    product_id: int,
    *,
    timeout: Optional[float] = None,
) -> QueryResult:
    """Fetch one product; a missing id is NOT_FOUND rather than an error."""
    try:
        product = await asyncio.wait_for(store.get_product(product_id), timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Product {product_id} fetch timed out after {timeout}s")
        return QueryResult.failure("Loading the product timed out. Please try again.")
    except ProductStoreError as e:
        logger.error(f"Product {product_id} fetch failed: {e}")
        return QueryResult.failure("Failed to load product details")

    if product is None:
        return QueryResult.not_found(f"Product {product_id} not found")
    return QueryResult.success([product])


async def fetch_categories(store: ProductStore, *, timeout: Optional[float] = None) -> Dict[str, List[str]]:
    """Category -> sorted subcategories. An unreachable store gives an empty mapping."""
    try:
        return await asyncio.wait_for(store.list_categories(), timeout)
    except (asyncio.TimeoutError, ProductStoreError) as e:
        logger.error(f"Error fetching categories: {e!r}")
        return {}
