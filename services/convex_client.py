"""Minimal client for the Convex HTTP function API."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from core.errors import ConvexError
from core.settings import CONVEX


RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}

logger = logging.getLogger("siteops.convex")


class ConvexClient:
    def __init__(
        self,
        deployment_url: Optional[str] = None,
        *,
        auth_token: Optional[str] = None,
        timeout: float = CONVEX.timeout_sec,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        url = deployment_url or CONVEX.deployment_url
        if not url:
            raise ConvexError("Convex deployment URL is not configured (set CONVEX_URL)")
        self.deployment_url = url.rstrip("/")
        self.auth_token = auth_token if auth_token is not None else CONVEX.auth_token
        self.timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    async def mutation(self, path: str, args: Optional[Dict[str, Any]] = None) -> Any:
        return await self._call("mutation", path, args)

    async def query(self, path: str, args: Optional[Dict[str, Any]] = None) -> Any:
        return await self._call("query", path, args)

    async def ping(self) -> bool:
        """Return True when the deployment answers at all."""
        try:
            async with self._client() as client:
                await client.get("/version")
        except httpx.TransportError:
            return False
        return True

    # ------------------------------------------------------------------
    def _client(self) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return httpx.AsyncClient(
            base_url=self.deployment_url,
            headers=headers,
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        )

    async def _call(self, kind: str, path: str, args: Optional[Dict[str, Any]]) -> Any:
        payload = {"path": path, "args": args or {}, "format": "json"}
        try:
            async with self._client() as client:
                response = await client.post(f"/api/{kind}", json=payload)
        except httpx.TransportError as exc:
            raise ConvexError(f"Convex {kind} {path} unreachable: {exc}") from exc

        if response.status_code in RETRYABLE_STATUS or response.status_code >= 500:
            raise ConvexError(
                f"Convex temporary error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ConvexError(
                f"Convex {kind} {path} returned invalid JSON ({response.status_code})",
                status_code=response.status_code,
            ) from exc
        if not isinstance(body, dict):
            body = {}

        if response.status_code >= 400 or body.get("status") != "success":
            message = body.get("errorMessage") or response.text[:300]
            raise ConvexError(
                f"Convex {kind} {path} failed: {message}",
                status_code=response.status_code,
            )
        logger.debug("Convex %s %s ok", kind, path)
        return body.get("value")


class PollingQuery:
    """Reactive value source built on repeated HTTP queries.

    Subscribers are called with the new value whenever a poll returns
    something different from the previous result.
    """

    _UNSET = object()

    def __init__(
        self,
        client: ConvexClient,
        path: str,
        args: Optional[Dict[str, Any]] = None,
        *,
        interval_sec: float = CONVEX.query_poll_interval_sec,
    ) -> None:
        self.client = client
        self.path = path
        self.args = args or {}
        self.interval_sec = interval_sec
        self._listeners: List[Callable[[Any], None]] = []
        self._value: Any = self._UNSET
        self._task: asyncio.Task | None = None

    @property
    def current(self) -> Any:
        return None if self._value is self._UNSET else self._value

    def subscribe(self, callback: Callable[[Any], None]) -> None:
        self._listeners.append(callback)
        if self._value is not self._UNSET:
            callback(self._value)

    def unsubscribe(self, callback: Callable[[Any], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    async def refresh(self) -> bool:
        value = await self.client.query(self.path, self.args)
        if self._value is not self._UNSET and value == self._value:
            return False
        self._value = value
        for listener in list(self._listeners):
            listener(value)
        return True

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
        self._task = None

    async def _loop(self) -> None:
        while True:
            try:
                await self.refresh()
            except ConvexError as exc:
                logger.warning("Query %s poll failed: %s", self.path, exc)
            await asyncio.sleep(self.interval_sec)


__all__ = ["ConvexClient", "PollingQuery", "RETRYABLE_STATUS"]
