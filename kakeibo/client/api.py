"""Typed facade over the kakeibo HTTP API.

``ApiClient.request`` adds JSON encoding and bearer authentication on top of
the retrying dispatcher and turns unusable responses into ``ApiError``.
Resource groups (``expenses``, ``budgets``, ...) are thin wrappers around it.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from kakeibo.client.auth import TokenStore
from kakeibo.client.dispatcher import RetryingDispatcher
from kakeibo.core.errors import ApiError, SessionExpiredError

logger = logging.getLogger(__name__)


def _error_payload(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


class ApiClient:
    """Send JSON requests to the API and decode the responses."""

    def __init__(
        self,
        dispatcher: RetryingDispatcher,
        tokens: TokenStore,
        *,
        base_path: str = "/api",
    ) -> None:
        self._dispatcher = dispatcher
        self._tokens = tokens
        self._base_path = base_path.rstrip("/")

        self.expenses = BulkResource(self, "/expenses")
        self.incomes = BulkResource(self, "/incomes")
        self.subscriptions = Resource(self, "/subscriptions")
        self.goals = Resource(self, "/goals")
        self.family = Resource(self, "/family")
        self.quick_inputs = Resource(self, "/quick-inputs")
        self.budgets = SingletonResource(self, "/budgets")

    def build_headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self._tokens.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        headers.update(extra or {})
        return headers

    async def request(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        body: Any = None,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Call an API endpoint.

        Args:
            endpoint: Path below the API base path, e.g. ``/expenses``.
            method: HTTP method.
            body: dict/list bodies are JSON-encoded; strings are sent as-is.
            headers: Extra headers overriding the defaults.
            params: Query string parameters.

        Returns:
            Decoded JSON, or None for 204 responses.

        Raises:
            SessionExpiredError: The server rejected the token (401); the
                stored token is removed.
            ApiError: Any other non-2xx response, or no response at all
                (``status == 0``). ``OfflineQueuedError`` and
                ``NetworkUnavailableError`` propagate unchanged.
        """
        url = f"{self._base_path}{endpoint}"
        if params:
            url = str(httpx.URL(url, params={k: v for k, v in params.items() if v is not None}))

        content: str | None
        if isinstance(body, (dict, list)):
            content = json.dumps(body, ensure_ascii=False)
        else:
            content = body

        try:
            response = await self._dispatcher.dispatch(
                url,
                method=method,
                body=content,
                headers=self.build_headers(headers),
            )
        except httpx.TransportError as exc:
            logger.error(
                "api.request_failed",
                extra={"method": method, "url": url, "error_type": type(exc).__name__},
            )
            raise ApiError(
                code="network_error",
                message=str(exc) or "ネットワークエラーが発生しました",
                details={"url": url, "method": method},
                status=0,
            ) from exc

        if response.status_code == 401:
            self._tokens.remove_token()
            raise SessionExpiredError(
                code="session_expired",
                message="セッションが期限切れです",
                status=401,
            )

        if not response.is_success:
            payload = _error_payload(response)
            details = payload.get("details")
            raise ApiError(
                code="http_error",
                message=payload.get("message") or f"エラーが発生しました ({response.status_code})",
                details={"errors": details} if details else None,
                status=response.status_code,
            )

        if response.status_code == 204:
            return None

        return response.json()


class Resource:
    """CRUD endpoints of one collection."""

    def __init__(self, client: ApiClient, path: str) -> None:
        self._client = client
        self._path = path

    async def list(self, **params: Any) -> Any:
        return await self._client.request(self._path, params=params or None)

    async def create(self, data: dict[str, Any]) -> Any:
        return await self._client.request(self._path, method="POST", body=data)

    async def update(self, item_id: str, data: dict[str, Any]) -> Any:
        return await self._client.request(f"{self._path}/{item_id}", method="PUT", body=data)

    async def delete(self, item_id: str) -> Any:
        return await self._client.request(f"{self._path}/{item_id}", method="DELETE")


class BulkResource(Resource):
    """Collection that also supports bulk creation and clearing."""

    async def bulk_create(self, items: list[dict[str, Any]]) -> Any:
        return await self._client.request(f"{self._path}/bulk", method="POST", body=items)

    async def delete_all(self) -> Any:
        return await self._client.request(self._path, method="DELETE")


class SingletonResource:
    """A single per-user document, e.g. the budget settings."""

    def __init__(self, client: ApiClient, path: str) -> None:
        self._client = client
        self._path = path

    async def get(self) -> Any:
        return await self._client.request(self._path)

    async def update(self, data: dict[str, Any]) -> Any:
        return await self._client.request(self._path, method="PUT", body=data)
