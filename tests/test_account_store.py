"""
Tests for the Supabase profile and order history, run against httpx.MockTransport.
"""

import json
from urllib.parse import parse_qsl

import httpx
import pytest
from pydantic import ValidationError

from storefront.data.account_store import OrderHistoryStore, ProfileStore
from storefront.errors import AccountError, AuthorizationError
from storefront.schemas import AuthSession, ProfileUpdate
from storefront.utils.supabase_client import SupabaseClient

from conftest import CATALOG_ROWS

SESSION = AuthSession(user_id="user-1", access_token="user-token", email="sam@example.com")

PROFILE_ROW = {"id": "user-1", "first_name": "Sam", "last_name": "Lee", "phone": None, "address": "12 Baker St"}

ORDER_ROWS = [
    {
        "id": "ord-2", "user_id": "user-1", "total": 540, "status": "delivered",
        "created_at": "2024-06-02T10:00:00+00:00",
        "order_items": [
            {"id": "oi-3", "order_id": "ord-2", "product_id": 1, "quantity": 3, "price": 180,
             "products": CATALOG_ROWS[0]},
        ],
    },
    {
        "id": "ord-1", "user_id": "user-1", "total": 40, "status": None,
        "created_at": "2024-06-01T10:00:00+00:00",
        "order_items": [
            {"id": "oi-1", "order_id": "ord-1", "product_id": 2, "quantity": 2, "price": 20,
             "products": CATALOG_ROWS[1]},
            {"id": "oi-2", "order_id": "ord-1", "product_id": 99, "quantity": 1, "price": 0,
             "products": {"id": 99, "name": "Retired", "price": None}},
        ],
    },
]


class Recorder:
    """MockTransport handler that records requests and replays a canned response."""

    def __init__(self, response: httpx.Response = None):
        self.requests = []
        self.response = response or httpx.Response(200, json=[])

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response


def make_client(recorder: Recorder) -> SupabaseClient:
    return SupabaseClient("https://test.supabase.co", "anon-key", transport=httpx.MockTransport(recorder))


class TestSignedOut:
    @pytest.mark.parametrize("session", [None, AuthSession(user_id="", access_token="")])
    def test_rejected_without_request(self, session):
        recorder = Recorder()
        profiles = ProfileStore(make_client(recorder))
        orders = OrderHistoryStore(make_client(recorder))
        with pytest.raises(AuthorizationError):
            profiles.get(session)
        with pytest.raises(AuthorizationError):
            profiles.update(session, ProfileUpdate(first_name="Sam"))
        with pytest.raises(AuthorizationError):
            orders.list(session)
        assert recorder.requests == []

    def test_expired_token(self):
        profiles = ProfileStore(make_client(Recorder(httpx.Response(401, json={"message": "JWT expired"}))))
        with pytest.raises(AuthorizationError):
            profiles.get(SESSION)


class TestProfile:
    def test_get_with_user_token(self):
        recorder = Recorder(httpx.Response(200, json=[PROFILE_ROW]))
        profile = ProfileStore(make_client(recorder)).get(SESSION)

        request = recorder.requests[0]
        params = parse_qsl(request.url.query.decode())
        assert request.url.path == "/rest/v1/profiles"
        assert request.headers["Authorization"] == "Bearer user-token"
        assert ("id", "eq.user-1") in params
        assert ("limit", "1") in params
        assert (profile.first_name, profile.last_name, profile.phone) == ("Sam", "Lee", "")

    def test_missing_row_reads_as_blank(self):
        profile = ProfileStore(make_client(Recorder())).get(SESSION)
        assert profile.id == "user-1"
        assert profile.first_name == profile.address == ""

    def test_update_patches_only_given_fields(self):
        updated = {**PROFILE_ROW, "phone": "555-0100"}
        recorder = Recorder(httpx.Response(200, json=[updated]))
        profile = ProfileStore(make_client(recorder)).update(SESSION, ProfileUpdate(phone="555-0100"))

        request = recorder.requests[0]
        assert request.method == "PATCH"
        assert ("id", "eq.user-1") in parse_qsl(request.url.query.decode())
        assert json.loads(request.content) == {"phone": "555-0100"}
        assert profile.phone == "555-0100"

    def test_update_with_no_changes_reads_current(self):
        recorder = Recorder(httpx.Response(200, json=[PROFILE_ROW]))
        profile = ProfileStore(make_client(recorder)).update(SESSION, ProfileUpdate())
        assert [r.method for r in recorder.requests] == ["GET"]
        assert profile.first_name == "Sam"

    def test_update_without_row_raises(self):
        store = ProfileStore(make_client(Recorder()))
        with pytest.raises(AccountError):
            store.update(SESSION, ProfileUpdate(first_name="Sam"))

    def test_backend_error_raises_account_error(self):
        store = ProfileStore(make_client(Recorder(httpx.Response(500, json={"message": "boom"}))))
        with pytest.raises(AccountError):
            store.get(SESSION)

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError):
            ProfileUpdate(email="sam@example.com")


class TestOrderHistory:
    def test_request_shape(self):
        recorder = Recorder()
        OrderHistoryStore(make_client(recorder)).list(SESSION)

        request = recorder.requests[0]
        params = parse_qsl(request.url.query.decode())
        assert request.url.path == "/rest/v1/orders"
        assert ("select", "*,order_items(*,products(*))") in params
        assert ("user_id", "eq.user-1") in params
        assert ("order", "created_at.desc") in params
        assert request.headers["Authorization"] == "Bearer user-token"

    def test_orders_with_embedded_products(self):
        orders = OrderHistoryStore(make_client(Recorder(httpx.Response(200, json=ORDER_ROWS)))).list(SESSION)

        assert [o.id for o in orders] == ["ord-2", "ord-1"]
        assert orders[0].items[0].product.name == "Dairy Milk Silk"
        assert orders[0].items[0].quantity == 3
        assert orders[1].status == ""
        assert orders[1].items[1].product is None
        assert orders[1].items[1].product_id == 99

    def test_backend_error_raises_account_error(self):
        store = OrderHistoryStore(make_client(Recorder(httpx.Response(400, json={"message": "bad select"}))))
        with pytest.raises(AccountError):
            store.list(SESSION)
