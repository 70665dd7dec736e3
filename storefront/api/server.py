"""
FastAPI server for the storefront.

Product listing, product detail, categories and the signed-in user's
wishlist, profile and order history. The listing accepts the shareable
filter form directly as query parameters, so a bookmarked storefront URL
maps 1:1 onto an API call.

Usage:
    python -m storefront.api.server
    # or
    uvicorn storefront.api.server:app --reload --port 8000
"""
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.api.models import (
    CategoriesResponse,
    HealthResponse,
    OrderHistoryResponse,
    ProductListResponse,
    ProductResponse,
    WishlistResponse,
    WishlistStatusResponse,
)
from storefront.core.config import get_config
from storefront.core.filter_state import from_shareable_form, to_shareable_form
from storefront.data.account_store import OrderHistoryStore, ProfileStore
from storefront.data.product_store import get_product_store, set_product_store
from storefront.data.query_builder import fetch_categories, fetch_product, run_query
from storefront.data.wishlist_store import WishlistStore
from storefront.errors import AccountError, AuthorizationError, ProductStoreError, WishlistError
from storefront.schemas import AuthSession, DeliveryTime, Profile, ProfileUpdate, ResultStatus
from storefront.utils.logger import configure_logging, get_logger
from storefront.utils.supabase_client import SupabaseClient

logger = get_logger("api.server")

VERSION = "1.0.0"

# Initialize FastAPI app
app = FastAPI(
    title="Storefront API",
    description="Product catalog, filtering, wishlist and account API for the storefront",
    version=VERSION,
)

# Enable CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_supabase: Optional[SupabaseClient] = None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_store():
    return get_product_store(get_config())


def get_supabase() -> SupabaseClient:
    global _supabase
    if _supabase is None:
        config = get_config()
        _supabase = SupabaseClient(config.supabase_url, config.supabase_key)
    return _supabase


def get_wishlist_store(client: SupabaseClient = Depends(get_supabase)) -> WishlistStore:
    config = get_config()
    return WishlistStore(
        client,
        table=config.wishlists_table,
        default_delivery=DeliveryTime(config.default_delivery_time),
    )


def get_profile_store(client: SupabaseClient = Depends(get_supabase)) -> ProfileStore:
    return ProfileStore(client, table=get_config().profiles_table)


def get_order_history_store(client: SupabaseClient = Depends(get_supabase)) -> OrderHistoryStore:
    config = get_config()
    return OrderHistoryStore(
        client,
        table=config.orders_table,
        default_delivery=DeliveryTime(config.default_delivery_time),
    )


def get_auth_session(
    authorization: Optional[str] = Header(default=None),
    client: SupabaseClient = Depends(get_supabase),
) -> AuthSession:
    """Resolve the bearer token to a signed-in user, or reject with 401."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthorizationError("Please sign in to continue")
    return client.get_user(authorization.split(" ", 1)[1].strip())


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError):
    return JSONResponse(status_code=401, content={"detail": str(exc), "action": "sign_in"})


@app.exception_handler(WishlistError)
async def wishlist_error_handler(request: Request, exc: WishlistError):
    logger.error(f"Wishlist error on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(AccountError)
async def account_error_handler(request: Request, exc: AccountError):
    logger.error(f"Account error on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(ProductStoreError)
async def product_store_error_handler(request: Request, exc: ProductStoreError):
    logger.error(f"Product store unavailable: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Product catalog is unavailable"})


@app.on_event("shutdown")
async def shutdown_event():
    global _supabase
    store = set_product_store(None)
    if store is not None:
        await store.aclose()
    if _supabase is not None:
        _supabase.close()
        _supabase = None


# ---------------------------------------------------------------------------
# API Endpoints
# ---------------------------------------------------------------------------

@app.get("/", response_model=HealthResponse)
async def root():
    """Health check endpoint."""
    config = get_config()
    if config.database_url:
        store = "postgres"
    elif config.supabase_url:
        store = "supabase"
    else:
        store = None
    return HealthResponse(status="online", service="Storefront API", version=VERSION, store=store)


@app.get("/products", response_model=ProductListResponse)
async def list_products(request: Request, store=Depends(get_store)):
    """
    Product listing.

    Query parameters (all optional): search, category, subcategory, sort,
    minPrice, maxPrice, delivery. Malformed values fall back to defaults.
    """
    config = get_config()
    state = from_shareable_form(dict(request.query_params), config.catalog_max_price)
    result = await run_query(
        store,
        state,
        catalog_max_price=config.catalog_max_price,
        default_delivery=DeliveryTime(config.default_delivery_time),
        timeout=config.fetch_timeout_s,
    )
    response = ProductListResponse(
        status=result.status,
        products=result.products,
        count=len(result.products),
        filters=to_shareable_form(state, config.catalog_max_price),
        error=result.error,
    )
    if not result.ok:
        return JSONResponse(status_code=502, content=response.model_dump(mode="json"))
    return response


@app.get("/products/{product_id}", response_model=ProductResponse)
async def get_product(product_id: int, store=Depends(get_store)):
    """Single product; 404 when it does not exist."""
    result = await fetch_product(store, product_id, timeout=get_config().fetch_timeout_s)
    response = ProductResponse(status=result.status, product=result.product, error=result.error)
    if result.status == ResultStatus.NOT_FOUND:
        return JSONResponse(status_code=404, content=response.model_dump(mode="json"))
    if result.status == ResultStatus.ERROR:
        return JSONResponse(status_code=502, content=response.model_dump(mode="json"))
    return response


@app.get("/categories", response_model=CategoriesResponse)
async def list_categories(store=Depends(get_store)):
    """Category -> subcategories, for the filter panel."""
    categories = await fetch_categories(store, timeout=get_config().fetch_timeout_s)
    return CategoriesResponse(categories=categories)


@app.get("/wishlist", response_model=WishlistResponse)
def get_wishlist(
    session: AuthSession = Depends(get_auth_session),
    wishlist: WishlistStore = Depends(get_wishlist_store),
):
    return WishlistResponse(items=wishlist.list(session))


@app.get("/wishlist/{product_id}", response_model=WishlistStatusResponse)
def wishlist_status(
    product_id: int,
    session: AuthSession = Depends(get_auth_session),
    wishlist: WishlistStore = Depends(get_wishlist_store),
):
    return WishlistStatusResponse(product_id=product_id, in_wishlist=wishlist.contains(session, product_id))


@app.post("/wishlist/{product_id}", response_model=WishlistStatusResponse)
def add_to_wishlist(
    product_id: int,
    session: AuthSession = Depends(get_auth_session),
    wishlist: WishlistStore = Depends(get_wishlist_store),
):
    added = wishlist.add(session, product_id)
    message = "Added to wishlist" if added else "Item already in wishlist"
    return WishlistStatusResponse(product_id=product_id, in_wishlist=True, message=message)


@app.delete("/wishlist/{product_id}", response_model=WishlistStatusResponse)
def remove_from_wishlist(
    product_id: int,
    session: AuthSession = Depends(get_auth_session),
    wishlist: WishlistStore = Depends(get_wishlist_store),
):
    wishlist.remove(session, product_id)
    return WishlistStatusResponse(product_id=product_id, in_wishlist=False, message="Removed from wishlist")


@app.get("/profile", response_model=Profile)
def get_profile(
    session: AuthSession = Depends(get_auth_session),
    profiles: ProfileStore = Depends(get_profile_store),
):
    return profiles.get(session)


@app.patch("/profile", response_model=Profile)
def update_profile(
    changes: ProfileUpdate,
    session: AuthSession = Depends(get_auth_session),
    profiles: ProfileStore = Depends(get_profile_store),
):
    """Update the given contact fields; unknown fields are rejected with 422."""
    return profiles.update(session, changes)


@app.get("/orders", response_model=OrderHistoryResponse)
def list_orders(
    session: AuthSession = Depends(get_auth_session),
    orders: OrderHistoryStore = Depends(get_order_history_store),
):
    """The user's stored orders, newest first, with items and products embedded."""
    return OrderHistoryResponse(orders=orders.list(session))


if __name__ == "__main__":
    import uvicorn

    configure_logging()
    print("=" * 60)
    print("Storefront API Server")
    print("=" * 60)
    print("API Documentation: http://localhost:8000/docs")
    print("")
    print("Environment variables:")
    print("  SUPABASE_URL / SUPABASE_KEY  - Supabase project (REST + auth)")
    print("  DATABASE_URL                 - Direct Postgres connection (preferred for products)")
    print("=" * 60)

    uvicorn.run(app, host="0.0.0.0", port=8000)
