"""
Tests for the storefront HTTP API.

The product store is replaced with the in-memory fake and the Supabase
client with one backed by httpx.MockTransport.
"""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from storefront.api.server import app, get_supabase
from storefront.data.product_store import set_product_store
from storefront.utils.supabase_client import SupabaseClient

from conftest import CATALOG_ROWS, FakeProductStore


def supabase_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/auth/v1/user":
        if request.headers.get("Authorization") == "Bearer good-token":
            return httpx.Response(200, json={"id": "user-1", "email": "sam@example.com"})
        return httpx.Response(401, json={"message": "invalid JWT"})
    if request.url.path == "/rest/v1/profiles":
        row = {"id": "user-1", "first_name": "Sam", "last_name": "Lee", "phone": None, "address": ""}
        if request.method == "PATCH":
            row.update(json.loads(request.content))
        return httpx.Response(200, json=[row])
    if request.url.path == "/rest/v1/orders":
        return httpx.Response(200, json=[{
            "id": "ord-1", "user_id": "user-1", "total": 360, "status": "processing",
            "created_at": "2024-06-01T10:00:00+00:00",
            "order_items": [{"id": "oi-1", "product_id": 1, "quantity": 2, "price": 180, "products": CATALOG_ROWS[0]}],
        }])
    if request.method == "POST":
        if b'"product_id": 5' in request.content or b'"product_id":5' in request.content:
            return httpx.Response(409, json={"code": "23505", "message": "duplicate key value"})
        return httpx.Response(201, json=[])
    if request.method == "DELETE":
        return httpx.Response(204)
    params = dict(request.url.params)
    if params.get("select") == "id":
        return httpx.Response(200, json=[{"id": "w1"}] if params.get("product_id") == "eq.5" else [])
    return httpx.Response(200, json=[
        {"id": "w1", "user_id": "user-1", "product_id": 5, "product": CATALOG_ROWS[4]},
    ])


@pytest.fixture
def store():
    fake = FakeProductStore()
    set_product_store(fake)
    yield fake
    set_product_store(None)


@pytest.fixture
def client(store):
    supabase = SupabaseClient("https://test.supabase.co", "anon-key", transport=httpx.MockTransport(supabase_handler))
    app.dependency_overrides[get_supabase] = lambda: supabase
    yield TestClient(app)
    app.dependency_overrides.clear()
    supabase.close()


AUTH = {"Authorization": "Bearer good-token"}


class TestHealth:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "online"
        assert body["store"] == "supabase"


class TestProducts:
    def test_all_products_name_order(self, client):
        body = client.get("/products").json()
        assert body["status"] == "OK"
        assert body["count"] == len(CATALOG_ROWS)
        names = [p["name"] for p in body["products"]]
        assert names == sorted(names, key=str.casefold)
        assert body["filters"] == {}

    def test_shareable_form_query_params(self, client):
        response = client.get("/products", params={
            "search": "mint", "sort": "price-desc", "maxPrice": "100", "utm_source": "mail",
        })
        body = response.json()
        assert [p["name"] for p in body["products"]] == ["Mentos Mint", "Polo Mints"]
        assert body["filters"] == {"search": "mint", "sort": "price-desc", "maxPrice": "100"}

    def test_subcategory_list_param(self, client):
        response = client.get("/products", params={"subcategory": "Milk Chocolates,Nutty Chocolates"})
        assert {p["id"] for p in response.json()["products"]} == {1, 8}

    def test_inverted_range_is_clamped(self, client):
        body = client.get("/products", params={"minPrice": "1000", "maxPrice": "500"}).json()
        assert body["status"] == "OK"
        assert body["filters"] == {"minPrice": "500", "maxPrice": "500"}
        assert body["products"] == []

    def test_defaults_filled(self, client):
        product = next(p for p in client.get("/products").json()["products"] if p["id"] == 4)
        assert product["rating"] == 0
        assert product["reviews_count"] == 0
        assert product["delivery_time"] == "3-5-days"

    def test_store_failure_is_502_with_message(self, client, store):
        store.fail = True
        response = client.get("/products")
        assert response.status_code == 502
        assert response.json()["error"] == "Failed to load products"


class TestProductDetail:
    def test_found(self, client):
        body = client.get("/products/7").json()
        assert body["product"]["name"] == "Godiva Gift Box"

    def test_not_found(self, client):
        response = client.get("/products/999")
        assert response.status_code == 404
        assert response.json()["status"] == "NOT_FOUND"

    def test_non_integer_id(self, client):
        assert client.get("/products/abc").status_code == 422


class TestCategories:
    def test_grouped(self, client):
        categories = client.get("/categories").json()["categories"]
        assert categories["Chocolates"] == ["Dark Chocolates", "Milk Chocolates", "Nutty Chocolates"]


class TestWishlist:
    def test_requires_sign_in(self, client):
        response = client.post("/wishlist/3")
        assert response.status_code == 401
        assert response.json()["action"] == "sign_in"

    def test_rejects_invalid_token(self, client):
        response = client.get("/wishlist", headers={"Authorization": "Bearer stale"})
        assert response.status_code == 401

    def test_list(self, client):
        body = client.get("/wishlist", headers=AUTH).json()
        assert body["items"][0]["product"]["name"] == "Ferrero Rocher 24pc"

    def test_add(self, client):
        body = client.post("/wishlist/3", headers=AUTH).json()
        assert body == {"product_id": 3, "in_wishlist": True, "message": "Added to wishlist"}

    def test_add_duplicate(self, client):
        body = client.post("/wishlist/5", headers=AUTH).json()
        assert body["message"] == "Item already in wishlist"

    def test_status(self, client):
        assert client.get("/wishlist/5", headers=AUTH).json()["in_wishlist"] is True
        assert client.get("/wishlist/3", headers=AUTH).json()["in_wishlist"] is False

    def test_remove(self, client):
        body = client.delete("/wishlist/5", headers=AUTH).json()
        assert body["in_wishlist"] is False
        assert body["message"] == "Removed from wishlist"


class TestProfile:
    def test_requires_sign_in(self, client):
        response = client.get("/profile")
        assert response.status_code == 401
        assert response.json()["action"] == "sign_in"

    def test_get(self, client):
        body = client.get("/profile", headers=AUTH).json()
        assert body == {"id": "user-1", "first_name": "Sam", "last_name": "Lee", "phone": "", "address": ""}

    def test_update(self, client):
        response = client.patch("/profile", headers=AUTH, json={"phone": "555-0100", "address": "12 Baker St"})
        assert response.status_code == 200
        body = response.json()
        assert (body["phone"], body["address"], body["first_name"]) == ("555-0100", "12 Baker St", "Sam")

    def test_update_rejects_unknown_fields(self, client):
        response = client.patch("/profile", headers=AUTH, json={"email": "x@example.com"})
        assert response.status_code == 422


class TestOrders:
    def test_requires_sign_in(self, client):
        assert client.get("/orders").status_code == 401

    def test_list(self, client):
        orders = client.get("/orders", headers=AUTH).json()["orders"]
        assert [o["id"] for o in orders] == ["ord-1"]
        assert orders[0]["items"][0]["product"]["name"] == "Dairy Milk Silk"
        assert orders[0]["items"][0]["quantity"] == 2
