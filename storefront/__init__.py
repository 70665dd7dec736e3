"""
Storefront - product catalog, filtering, cart and wishlist.

- Filter state with a shareable (URL query) form
- Query builder over a Supabase/Postgres products table
- Result presenter with last-issued-wins fetch sequencing
- Client-local cart with change notifications
"""

from storefront.core.config import StorefrontConfig, get_config, set_config
from storefront.core.filter_state import FilterState, FilterStateStore
from storefront.core.presenter import PresenterState, ResultPresenter
from storefront.data.query_builder import QueryResult, build_query, run_query

__all__ = [
    'StorefrontConfig',
    'get_config',
    'set_config',
    'FilterState',
    'FilterStateStore',
    'PresenterState',
    'ResultPresenter',
    'QueryResult',
    'build_query',
    'run_query',
]

__version__ = '0.1.0'
