"""
Filter state for the product listing.

FilterState is an immutable snapshot of the current selection (search text,
category, subcategories, sort, price range, delivery bucket).
FilterStateStore owns the current snapshot, applies one-dimension updates,
and keeps the shareable form (URL query parameters) in sync by calling
``on_change`` after every effective update.

Shareable form keys:
    search, category, subcategory, sort, minPrice, maxPrice, delivery

A dimension at its default is omitted, so the default state serializes to {}.
Malformed values never raise: they are clamped or fall back to defaults.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import parse_qsl, urlencode

from storefront.schemas import DeliveryTime, SortKey
from storefront.utils.logger import get_logger

logger = get_logger("core.filter_state")

CATALOG_MAX_PRICE = 5000

DIMENSIONS = (
    "search",
    "category",
    "subcategories",
    "sort",
    "min_price",
    "max_price",
    "price_range",
    "delivery",
)


@dataclass(frozen=True)
class FilterState:
    """Current filter/sort/search selection."""
    search: str = ""
    category: Optional[str] = None
    subcategories: FrozenSet[str] = field(default_factory=frozenset)
    sort: SortKey = SortKey.NONE
    min_price: int = 0
    max_price: int = CATALOG_MAX_PRICE
    delivery: Optional[DeliveryTime] = None


def default_state(catalog_max_price: int = CATALOG_MAX_PRICE) -> FilterState:
    return FilterState(max_price=catalog_max_price)


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------

def _parse_price(raw: Any, default: int) -> int:
    """Parse a price bound; anything non-numeric or negative gives ``default``."""
    if raw is None or raw == "":
        return default
    try:
        value = int(float(raw))
    except (TypeError, ValueError, OverflowError):
        return default
    return value if value >= 0 else default


def _clamp_range(min_price: int, max_price: int) -> Tuple[int, int]:
    """Keep min <= max by pulling min down to max."""
    if min_price > max_price:
        logger.debug(f"Clamping inverted price range [{min_price}, {max_price}]")
        min_price = max_price
    return min_price, max_price


def _parse_sort(raw: Any) -> SortKey:
    if isinstance(raw, SortKey):
        return raw
    try:
        return SortKey(raw)
    except ValueError:
        return SortKey.NONE


def _parse_delivery(raw: Any) -> Optional[DeliveryTime]:
    if raw is None or isinstance(raw, DeliveryTime):
        return raw
    try:
        return DeliveryTime(raw)
    except ValueError:
        return None


def _parse_text(raw: Any) -> str:
    return str(raw).strip() if raw is not None else ""


def _parse_subcategories(raw: Any) -> FrozenSet[str]:
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        raw = [raw]
    elif not isinstance(raw, Iterable):
        return frozenset()
    return frozenset(s.strip() for s in raw if isinstance(s, str) and s.strip())


def _encode_list(values: Iterable[str]) -> str:
    return ",".join(v.replace("%", "%25").replace(",", "%2C") for v in sorted(values))


def _decode_list(raw: str) -> List[str]:
    return [part.replace("%2C", ",").replace("%25", "%") for part in raw.split(",")]


# ---------------------------------------------------------------------------
# Single-dimension updates
# ---------------------------------------------------------------------------

def apply_filter(state: FilterState, dimension: str, value: Any) -> FilterState:
    """
    Return a copy of ``state`` with one dimension changed.

    Only the named dimension changes, except that a price update which would
    leave min > max clamps min down to max.
    """
    if dimension == "search":
        return replace(state, search=_parse_text(value))
    if dimension == "category":
        return replace(state, category=_parse_text(value) or None)
    if dimension == "subcategories":
        return replace(state, subcategories=_parse_subcategories(value))
    if dimension == "sort":
        return replace(state, sort=_parse_sort(value))
    if dimension == "delivery":
        return replace(state, delivery=_parse_delivery(value))
    if dimension == "min_price":
        min_price, max_price = _clamp_range(_parse_price(value, 0), state.max_price)
        return replace(state, min_price=min_price, max_price=max_price)
    if dimension == "max_price":
        min_price, max_price = _clamp_range(state.min_price, _parse_price(value, state.max_price))
        return replace(state, min_price=min_price, max_price=max_price)
    if dimension == "price_range":
        try:
            if isinstance(value, (str, bytes)):
                raise ValueError(value)
            low, high = value
        except (TypeError, ValueError):
            logger.debug(f"Ignoring malformed price range {value!r}")
            return state
        min_price, max_price = _clamp_range(_parse_price(low, 0), _parse_price(high, state.max_price))
        return replace(state, min_price=min_price, max_price=max_price)
    raise ValueError(f"Unknown filter dimension: {dimension!r} (expected one of {', '.join(DIMENSIONS)})")


# ---------------------------------------------------------------------------
# Shareable form
# ---------------------------------------------------------------------------

def to_shareable_form(state: FilterState, catalog_max_price: int = CATALOG_MAX_PRICE) -> Dict[str, str]:
    """Flat string mapping of every non-default dimension, in a fixed key order."""
    form: Dict[str, str] = {}
    if state.search:
        form["search"] = state.search
    if state.category:
        form["category"] = state.category
    if state.subcategories:
        form["subcategory"] = _encode_list(state.subcategories)
    if state.sort != SortKey.NONE:
        form["sort"] = state.sort.value
    if state.min_price != 0:
        form["minPrice"] = str(state.min_price)
    if state.max_price != catalog_max_price:
        form["maxPrice"] = str(state.max_price)
    if state.delivery is not None:
        form["delivery"] = state.delivery.value
    return form


def from_shareable_form(form: Mapping[str, str], catalog_max_price: int = CATALOG_MAX_PRICE) -> FilterState:
    """Inverse of to_shareable_form. Unknown keys are ignored."""
    min_price, max_price = _clamp_range(
        _parse_price(form.get("minPrice"), 0),
        _parse_price(form.get("maxPrice"), catalog_max_price),
    )
    subcategory = form.get("subcategory")
    return FilterState(
        search=_parse_text(form.get("search")),
        category=_parse_text(form.get("category")) or None,
        subcategories=_parse_subcategories(_decode_list(subcategory) if subcategory else None),
        sort=_parse_sort(form.get("sort")),
        min_price=min_price,
        max_price=max_price,
        delivery=_parse_delivery(form.get("delivery")),
    )


def to_query_string(state: FilterState, catalog_max_price: int = CATALOG_MAX_PRICE) -> str:
    return urlencode(to_shareable_form(state, catalog_max_price))


def from_query_string(query: str, catalog_max_price: int = CATALOG_MAX_PRICE) -> FilterState:
    return from_shareable_form(dict(parse_qsl(query.lstrip("?"))), catalog_max_price)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class FilterStateStore:
    """
    Single source of truth for the listing's filter selection.

    Listeners registered with subscribe() receive the new FilterState after
    every update that actually changes it; ``on_change`` receives the new
    shareable form so the caller can write it back to the URL.
    """

    def __init__(
        self,
        initial: Optional[FilterState] = None,
        catalog_max_price: int = CATALOG_MAX_PRICE,
        on_change: Optional[Callable[[Dict[str, str]], None]] = None,
    ):
        self.catalog_max_price = catalog_max_price
        self._state = initial if initial is not None else default_state(catalog_max_price)
        self._on_change = on_change
        self._listeners: List[Callable[[FilterState], None]] = []

    @classmethod
    def from_shareable_form(
        cls,
        form: Mapping[str, str],
        catalog_max_price: int = CATALOG_MAX_PRICE,
        on_change: Optional[Callable[[Dict[str, str]], None]] = None,
    ) -> "FilterStateStore":
        """Restore a session from a bookmarked/shared URL."""
        return cls(from_shareable_form(form, catalog_max_price), catalog_max_price, on_change)

    @property
    def state(self) -> FilterState:
        return self._state

    def set_filter(self, dimension: str, value: Any) -> FilterState:
        return self._commit(apply_filter(self._state, dimension, value))

    def toggle_subcategory(self, subcategory: str) -> FilterState:
        current = set(self._state.subcategories)
        current.symmetric_difference_update({subcategory})
        return self.set_filter("subcategories", current)

    def reset(self) -> FilterState:
        return self._commit(default_state(self.catalog_max_price))

    def to_shareable_form(self) -> Dict[str, str]:
        return to_shareable_form(self._state, self.catalog_max_price)

    def subscribe(self, listener: Callable[[FilterState], None]) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, new_state: FilterState) -> FilterState:
        if new_state == self._state:
            return self._state
        self._state = new_state
        form = self.to_shareable_form()
        logger.debug(f"Filter state changed: {form}")
        if self._on_change is not None:
            self._on_change(form)
        for listener in list(self._listeners):
            listener(new_state)
        return new_state
