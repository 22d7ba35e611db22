"""Async client for the hosted backend (PostgREST tables, RPC and auth)."""

import logging
from typing import Any, Iterable, Optional, Sequence

import httpx

from gearflow.config import BackendSettings, require_backend_settings
from gearflow.exceptions import AuthenticationError, BackendError

logger = logging.getLogger(__name__)

# (column, operator, value), e.g. ("created_at", "gte", "2024-03-01")
Filter = tuple[str, str, Any]

_OPERATORS = {"eq", "neq", "gt", "gte", "lt", "lte", "like", "ilike", "is", "in"}


def _encode_value(op: str, value: Any) -> str:
    if op == "in":
        return "(" + ",".join(str(v) for v in value) + ")"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_filter_params(filters: Optional[Iterable[Filter]]) -> list[tuple[str, str]]:
    """Translate filter tuples into PostgREST query parameters.

    Examples:
        >>> build_filter_params([("status", "eq", "Pending"), ("is_read", "is", False)])
        [('status', 'eq.Pending'), ('is_read', 'is.false')]
    """
    params: list[tuple[str, str]] = []
    for column, op, value in filters or ():
        if op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {op!r}")
        params.append((column, op + "." + _encode_value(op, value)))
    return params


class BackendClient:
    """Thin async wrapper over the backend's REST, RPC and auth endpoints.

    Usage::

        async with BackendClient.from_env() as client:
            gears = await client.select("gears", order="created_at.desc")
            await client.rpc("cancel_gear_request", {"p_request_id": rid})
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "apikey": api_key,
                "Authorization": "Bearer " + api_key,
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: BackendSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "BackendClient":
        return cls(
            settings.url,
            settings.api_key,
            timeout=settings.timeout,
            transport=transport,
        )

    @classmethod
    def from_env(cls) -> "BackendClient":
        """Build a client from the environment, raising if unconfigured."""
        return cls.from_settings(require_backend_settings())

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _raise_for_error(response: httpx.Response, context: str) -> None:
        """Convert a non-2xx response into :class:`BackendError`."""
        if response.is_success:
            return
        message = response.reason_phrase or "Backend request failed"
        code = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = (
                body.get("message")
                or body.get("msg")
                or body.get("error_description")
                or body.get("error")
                or message
            )
            code = body.get("code")
            if code is not None:
                code = str(code)
        logger.debug("%s failed: %s %s", context, response.status_code, message)
        raise BackendError(str(message), status_code=response.status_code, code=code)

    @staticmethod
    def _json_or_none(response: httpx.Response) -> Any:
        if not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Table operations
    # ------------------------------------------------------------------

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Sequence[Filter]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Read rows from *table*.

        Args:
            table: Table name.
            columns: PostgREST select expression (may embed relations).
            filters: ``(column, operator, value)`` tuples.
            order: e.g. ``"created_at.desc"``.
            limit: Maximum number of rows.
            offset: Rows to skip, for paging.
        """
        params = [("select", columns)] + build_filter_params(filters)
        if order:
            params.append(("order", order))
        if limit is not None:
            params.append(("limit", str(limit)))
        if offset:
            params.append(("offset", str(offset)))
        response = await self._client.get("/rest/v1/" + table, params=params)
        self._raise_for_error(response, "select " + table)
        rows = self._json_or_none(response)
        return list(rows or [])

    async def select_one(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Sequence[Filter]] = None,
    ) -> Optional[dict[str, Any]]:
        """Return the first matching row, or None."""
        rows = await self.select(table, columns=columns, filters=filters, limit=1)
        return rows[0] if rows else None

    async def count(
        self,
        table: str,
        filters: Optional[Sequence[Filter]] = None,
    ) -> int:
        """Exact row count using ``Prefer: count=exact``."""
        params = [("select", "id")] + build_filter_params(filters)
        response = await self._client.head(
            "/rest/v1/" + table,
            params=params,
            headers={"Prefer": "count=exact"},
        )
        self._raise_for_error(response, "count " + table)
        content_range = response.headers.get("content-range", "")
        total = content_range.rsplit("/", 1)[-1] if "/" in content_range else ""
        return int(total) if total.isdigit() else 0

    async def insert(
        self,
        table: str,
        values: dict[str, Any] | list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """Insert one or many rows and return the stored representation."""
        response = await self._client.post(
            "/rest/v1/" + table,
            json=values,
            headers={"Prefer": "return=representation"},
        )
        self._raise_for_error(response, "insert " + table)
        return list(self._json_or_none(response) or [])

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: Sequence[Filter],
    ) -> list[dict[str, Any]]:
        """Update rows matching *filters* and return them."""
        if not filters:
            raise ValueError("update requires at least one filter")
        response = await self._client.patch(
            "/rest/v1/" + table,
            params=build_filter_params(filters),
            json=values,
            headers={"Prefer": "return=representation"},
        )
        self._raise_for_error(response, "update " + table)
        return list(self._json_or_none(response) or [])

    async def delete(self, table: str, filters: Sequence[Filter]) -> None:
        """Delete rows matching *filters*."""
        if not filters:
            raise ValueError("delete requires at least one filter")
        response = await self._client.delete(
            "/rest/v1/" + table,
            params=build_filter_params(filters),
        )
        self._raise_for_error(response, "delete " + table)

    # ------------------------------------------------------------------
    # RPC and auth
    # ------------------------------------------------------------------

    async def rpc(self, function: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Invoke a remote procedure and return its decoded result."""
        response = await self._client.post("/rest/v1/rpc/" + function, json=params or {})
        self._raise_for_error(response, "rpc " + function)
        return self._json_or_none(response)

    async def get_user(self, access_token: str) -> dict[str, Any]:
        """Resolve an end-user access token to the auth user record.

        Raises:
            AuthenticationError: If the token is missing or rejected.
        """
        if not access_token:
            raise AuthenticationError("Unauthorized")
        response = await self._client.get(
            "/auth/v1/user",
            headers={"Authorization": "Bearer " + access_token},
        )
        if response.status_code in (401, 403):
            raise AuthenticationError("Authentication failed")
        self._raise_for_error(response, "get_user")
        user = self._json_or_none(response)
        if not isinstance(user, dict) or not user.get("id"):
            raise AuthenticationError("Unauthorized")
        return user
