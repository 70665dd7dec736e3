from typing import Any, Dict, List, Optional, Tuple

import httpx

from storefront.errors import AuthorizationError, StorefrontError
from storefront.schemas import AuthSession
from storefront.utils.logger import get_logger

logger = get_logger("utils.supabase_client")


class SupabaseRequestError(StorefrontError):
    """A Supabase request failed for a reason other than authorization."""

    def __init__(self, message: str, status_code: int = 0, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class SupabaseClient:
    """
    Lightweight client for the Supabase REST and auth APIs.

    Requests made with a user's access token run under that user's row level
    security policies; without one they use the project key.
    """

    def __init__(self, url: str, key: str, transport: Optional[httpx.BaseTransport] = None):
        self.url = url
        self.key = key

        if not self.url or not self.key:
            logger.warning("SUPABASE_URL or SUPABASE_KEY not set in environment.")

        self.client = httpx.Client(base_url=self.url, timeout=30.0, transport=transport)

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        return {
            "apikey": self.key,
            "Authorization": f"Bearer {access_token or self.key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    def _request(self, method: str, path: str, access_token: Optional[str] = None, **kwargs) -> Any:
        try:
            response = self.client.request(method, path, headers=self._headers(access_token), **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Supabase {method} {path} failed: {e!r}")
            raise SupabaseRequestError(f"Supabase request failed: {e!r}") from e

        if response.status_code in (401, 403):
            raise AuthorizationError("Your session has expired. Please sign in again.")
        if response.status_code >= 400:
            code, message = _error_details(response)
            logger.error(f"Supabase {method} {path} returned {response.status_code}: {message}")
            raise SupabaseRequestError(message, status_code=response.status_code, code=code)

        if not response.content:
            return None
        return response.json()

    def select(
        self,
        table: str,
        filters: Optional[List[Tuple[str, str]]] = None,
        select: str = "*",
        limit: Optional[int] = None,
        order: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Query a Supabase table. Filters are PostgREST (column, "op.value") pairs.
        """
        params: List[Tuple[str, str]] = [("select", select)]
        params.extend(filters or [])
        if limit:
            params.append(("limit", str(limit)))
        if order:
            params.append(("order", order))
        rows = self._request("GET", f"/rest/v1/{table}", access_token, params=params)
        return rows if isinstance(rows, list) else []

    def insert(self, table: str, row: Dict[str, Any], access_token: Optional[str] = None) -> List[Dict[str, Any]]:
        rows = self._request("POST", f"/rest/v1/{table}", access_token, json=[row])
        return rows if isinstance(rows, list) else []

    def update(
        self,
        table: str,
        filters: List[Tuple[str, str]],
        values: Dict[str, Any],
        access_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """PATCH the rows matching ``filters``; returns the updated rows."""
        rows = self._request("PATCH", f"/rest/v1/{table}", access_token, params=filters, json=values)
        return rows if isinstance(rows, list) else []

    def delete(self, table: str, filters: List[Tuple[str, str]], access_token: Optional[str] = None) -> None:
        self._request("DELETE", f"/rest/v1/{table}", access_token, params=filters)

    def get_user(self, access_token: str) -> AuthSession:
        """
        Validate an access token with the hosted auth provider.
        Raises AuthorizationError when the token is missing, expired or revoked.
        """
        if not access_token:
            raise AuthorizationError("Please sign in to continue")
        data = self._request("GET", "/auth/v1/user", access_token) or {}
        if not data.get("id"):
            raise AuthorizationError("Please sign in to continue")
        return AuthSession(user_id=data["id"], access_token=access_token, email=data.get("email"))

    def close(self) -> None:
        self.client.close()


def _error_details(response: httpx.Response) -> Tuple[Optional[str], str]:
    """Pull PostgREST's error code and message out of a failed response."""
    try:
        body = response.json()
    except ValueError:
        return None, response.text or f"HTTP {response.status_code}"
    if not isinstance(body, dict):
        return None, f"HTTP {response.status_code}"
    return body.get("code"), body.get("message") or f"HTTP {response.status_code}"
