"""
REST remote store client (PostgREST / Supabase style).

Talks to a hosted Postgres through its REST layer:
    GET    /rest/v1/{table}?select=*            select
    POST   /rest/v1/{table}                     insert
    POST   /rest/v1/{table}  (merge-duplicates) upsert
    PATCH  /rest/v1/{table}?id=in.(...)         update
    DELETE /rest/v1/{table}?id=in.(...)         delete

Non-2xx responses are returned as RemoteResult errors carrying the
server's message text (row-level security denials, missing columns, ...).
Transport failures raise RemoteConnectionError.

Invariants:
    - No request timeout unless configured; a stalled call simply delays
      reconciliation
    - Error text is passed through unmodified for classification upstream
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import httpx
from pydantic import Field
from pydantic_settings import BaseSettings

from .base import RemoteConnectionError, RemoteResult

logger = logging.getLogger(__name__)


class RemoteSettings(BaseSettings):
    """Remote store connection settings loaded from environment."""

    url: str = Field(default="http://localhost:54321", description="Base URL of the project")
    api_key: str = Field(default="", description="API key sent as apikey and bearer token")
    schema_name: str = Field(default="public", description="Postgres schema exposed over REST")
    timeout_seconds: Optional[float] = Field(
        default=None, description="Per-request timeout; unset means wait indefinitely"
    )

    model_config = {"env_prefix": "SCHOOLSYNC_REMOTE_"}

    @property
    def rest_endpoint(self) -> str:
        return f"{self.url.rstrip('/')}/rest/v1"


def _quote(value: Any) -> str:
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def in_filter(ids: Sequence[Any]) -> str:
    """Build a PostgREST `in` filter value for the given ids."""
    return f"in.({','.join(_quote(i) for i in ids)})"


class RestRemoteStore:
    """RemoteStoreClient backed by a PostgREST endpoint over httpx.

    Example:
        >>> client = RestRemoteStore(RemoteSettings(url="https://xyz.supabase.co", api_key="..."))
        >>> await client.connect()
        >>> result = await client.select("students")
    """

    def __init__(
        self,
        settings: RemoteSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Connection settings
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self._settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        if self._client is not None:
            return
        key = self._settings.api_key
        headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Accept-Profile": self._settings.schema_name,
            "Content-Profile": self._settings.schema_name,
        }
        self._client = httpx.AsyncClient(
            base_url=self._settings.rest_endpoint,
            headers=headers,
            timeout=httpx.Timeout(self._settings.timeout_seconds),
            transport=self._transport,
        )
        logger.info(f"Remote store client ready for {self._settings.rest_endpoint}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def select(
        self, table: str, match_ids: Optional[Sequence[Any]] = None
    ) -> RemoteResult:
        params = {"select": "*"}
        if match_ids is not None:
            params["id"] = in_filter(match_ids)
        return await self._request("GET", table, params=params)

    async def insert(self, table: str, rows: Sequence[Dict[str, Any]]) -> RemoteResult:
        return await self._request(
            "POST", table, json=list(rows), prefer="return=representation"
        )

    async def upsert(self, table: str, rows: Sequence[Dict[str, Any]]) -> RemoteResult:
        return await self._request(
            "POST",
            table,
            json=list(rows),
            prefer="resolution=merge-duplicates,return=representation",
        )

    async def update(
        self, table: str, values: Dict[str, Any], match_ids: Sequence[Any]
    ) -> RemoteResult:
        return await self._request(
            "PATCH",
            table,
            params={"id": in_filter(match_ids)},
            json=values,
            prefer="return=representation",
        )

    async def delete(self, table: str, match_ids: Sequence[Any]) -> RemoteResult:
        return await self._request("DELETE", table, params={"id": in_filter(match_ids)})

    async def delete_all(self, table: str) -> RemoteResult:
        # PostgREST refuses unfiltered deletes
        return await self._request("DELETE", table, params={"id": "not.is.null"})

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> RemoteResult:
        if self._client is None:
            raise RemoteConnectionError("Not connected")

        headers = {"Prefer": prefer} if prefer else None
        try:
            response = await self._client.request(
                method, f"/{table}", params=params, json=json, headers=headers
            )
        except httpx.HTTPError as e:
            raise RemoteConnectionError(f"{method} {table} failed: {e}") from e

        if response.is_success:
            if not response.content:
                return RemoteResult(data=[])
            try:
                body = response.json()
            except ValueError:
                logger.warning(
                    "Remote store returned a non-JSON success response",
                    extra={"method": method, "table": table, "status": response.status_code},
                )
                return RemoteResult.failure(
                    f"Unexpected non-JSON response from remote store (HTTP {response.status_code})"
                )
            return RemoteResult(data=body if isinstance(body, list) else [body])

        message = self._error_message(response)
        logger.debug(
            "Remote store rejected request",
            extra={"method": method, "table": table, "status": response.status_code},
        )
        return RemoteResult.failure(message)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            parts = [body.get("message"), body.get("details"), body.get("hint")]
            text = " ".join(str(p) for p in parts if p)
            if text:
                return text
        return response.text or f"HTTP {response.status_code}"
