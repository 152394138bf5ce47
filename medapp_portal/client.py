"""Async gateway to the MedApp REST backend.

Single chokepoint for outbound calls: attaches the bearer token held by the
session store, tolerates non-JSON bodies and turns failures into the
``errors`` taxonomy. It never retries and never writes to the session.
"""
from __future__ import annotations
import logging
from typing import Any
import httpx
from .config import get_settings
from .errors import ApiError, NetworkFailure, RequestTimeout, classify
from .session import SessionStore

logger = logging.getLogger(__name__)


class ApiClient:
    """
    Example:
        async with ApiClient(session_store=store) as api:
            doctors = await api.get("/doctor/specialization/Kardiologia")
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        session_store: SessionStore | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.base_url).rstrip("/")
        self.timeout = timeout or settings.timeout
        self.session_store = session_store if session_store is not None else SessionStore()
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> ApiClient:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            http2=True,
            timeout=httpx.Timeout(self.timeout),
            headers={"Accept": "application/json"},
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client not initialized. Use 'async with ApiClient() as api:'")
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self.session_store.get().token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Perform one call and return the parsed JSON body (None when not JSON)."""
        client = self._get_client()
        logger.info(f"{method} {path}")
        try:
            resp = await client.request(
                method,
                path,
                json=body,
                params=params,
                headers=self._headers(),
            )
        except httpx.TimeoutException as e:
            raise RequestTimeout(f"Request timed out: {method} {path}") from e
        except httpx.RequestError as e:
            raise NetworkFailure(f"Connection error: {e}") from e

        try:
            payload = resp.json()
        except ValueError:
            if resp.content:
                logger.warning(f"Non-JSON response body from {method} {path} ({resp.status_code})")
            payload = None

        if resp.is_success:
            logger.debug(f"{method} {path} -> {resp.status_code}: {payload}")
            return payload

        raise self._error(resp, payload)

    @staticmethod
    def _error(resp: httpx.Response, payload: Any) -> ApiError:
        message = None
        if isinstance(payload, dict) and payload.get("message"):
            message = str(payload["message"])
        message = message or resp.reason_phrase or "Request failed"
        logger.info(f"Backend rejected {resp.request.method} {resp.request.url.path}: {resp.status_code} {message}")
        return classify(resp.status_code, message, payload)

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request(path, "GET", params=params)

    async def post(self, path: str, body: Any = None) -> Any:
        return await self.request(path, "POST", body=body)

    async def patch(self, path: str, body: Any = None) -> Any:
        return await self.request(path, "PATCH", body=body)

    async def delete(self, path: str) -> Any:
        return await self.request(path, "DELETE")
