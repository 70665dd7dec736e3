"""
Result presenter for the product listing.

Holds the view state of the listing (idle -> loading -> populated | error)
and drives fetches when the filter state changes. Every load is tagged with
a sequence number; a response is applied only if no newer load was issued
after it, so overlapping fetches resolve by issuance order rather than by
resolution order.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Set

from storefront.core.config import StorefrontConfig, get_config
from storefront.core.filter_state import FilterState, FilterStateStore
from storefront.data.query_builder import ProductStore, QueryResult, run_query
from storefront.schemas import DeliveryTime, Product
from storefront.utils.logger import get_logger

logger = get_logger("core.presenter")


class PresenterState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    POPULATED = "populated"
    ERROR = "error"


@dataclass(frozen=True)
class PresenterSnapshot:
    """What a view needs to render the listing."""
    state: PresenterState
    products: List[Product] = field(default_factory=list)
    error: Optional[str] = None
    sequence: int = 0

    @property
    def is_empty(self) -> bool:
        return self.state == PresenterState.POPULATED and not self.products


class ResultPresenter:
    """Exposes loading/populated/error state for the latest issued fetch."""

    def __init__(self, store: ProductStore, config: Optional[StorefrontConfig] = None):
        config = config or get_config()
        self._store = store
        self._timeout = config.fetch_timeout_s
        self._catalog_max_price = config.catalog_max_price
        self._default_delivery = DeliveryTime(config.default_delivery_time)

        self._issued = 0
        self._snapshot = PresenterSnapshot(state=PresenterState.IDLE)
        self._listeners: List[Callable[[PresenterSnapshot], None]] = []
        self._pending: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> PresenterSnapshot:
        return self._snapshot

    @property
    def state(self) -> PresenterState:
        return self._snapshot.state

    @property
    def products(self) -> List[Product]:
        return self._snapshot.products

    @property
    def error(self) -> Optional[str]:
        return self._snapshot.error

    @property
    def is_empty(self) -> bool:
        return self._snapshot.is_empty

    def subscribe(self, listener: Callable[[PresenterSnapshot], None]) -> Callable[[], None]:
        """Register a listener for every state transition; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self, state: FilterState) -> PresenterSnapshot:
        """
        Fetch products for ``state`` and publish the result if this is still
        the most recently issued load. Returns the snapshot current after
        the fetch resolves (which may belong to a newer load).
        """
        self._issued += 1
        sequence = self._issued
        self._publish(PresenterSnapshot(
            state=PresenterState.LOADING,
            products=self._snapshot.products,
            sequence=sequence,
        ))

        result = await run_query(
            self._store,
            state,
            catalog_max_price=self._catalog_max_price,
            default_delivery=self._default_delivery,
            timeout=self._timeout,
        )

        if sequence != self._issued:
            logger.debug(f"Discarding stale response #{sequence} (latest is #{self._issued})")
            return self._snapshot

        self._publish(self._snapshot_for(result, sequence))
        return self._snapshot

    def on_filter_change(self, state: FilterState) -> asyncio.Task:
        """Schedule a load on the running loop. Suitable as a FilterStateStore listener."""
        task = asyncio.get_running_loop().create_task(self.load(state))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def bind(self, filter_store: FilterStateStore) -> Callable[[], None]:
        """Reload whenever ``filter_store`` changes; returns the unsubscribe callable."""
        return filter_store.subscribe(self.on_filter_change)

    async def wait_idle(self) -> None:
        """Wait until every scheduled load has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _snapshot_for(result: QueryResult, sequence: int) -> PresenterSnapshot:
        if result.ok:
            return PresenterSnapshot(state=PresenterState.POPULATED, products=result.products, sequence=sequence)
        return PresenterSnapshot(state=PresenterState.ERROR, error=result.error, sequence=sequence)

    def _publish(self, snapshot: PresenterSnapshot) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            listener(snapshot)
