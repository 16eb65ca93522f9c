"""
HTTP client for the console REST API.

BackendClient implements every client protocol over aiohttp. It is the
single boundary where pipedeck talks to the backend.

Error classification:
- Connection errors, timeouts, 429 and 5xx -> transient (safe to retry)
- Undecodable response bodies -> transient
- Other 4xx -> ApiError (permanent), carrying the backend's "detail"

Lookups raise TransientLookupError so the poller can back off; actions
raise the broader TransientError.
"""

import asyncio
import json
import logging
from typing import Any, Optional

import aiohttp

from pipedeck.errors import ApiError, TransientError, TransientLookupError
from pipedeck.schemas import JobDetail, ProgressEntry, parse_progress_entry

from .base import ActionReceipt, ActionRequest


logger = logging.getLogger(__name__)

API_PREFIX = "/api/"


class BackendClient:
    """
    aiohttp client for the console backend.

    Usage:
        async with BackendClient("http://localhost:8002", token="...") as client:
            entries = await client.fetch_task_progress(task_id)
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Backend root URL, without the /api/ prefix
            token: Bearer token for the Authorization header
            timeout: Total timeout per request in seconds
            session: Existing session to reuse (not closed by this client)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json"}
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "BackendClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def _url(self, path: str) -> str:
        return f"{self.base_url}{API_PREFIX}{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[dict[str, Any]] = None,
        lookup: bool = True,
    ) -> Any:
        """
        Make a request and decode the JSON body.

        Args:
            method: HTTP method
            path: Path relative to the API root
            payload: Optional JSON body
            lookup: Raise TransientLookupError (True) or TransientError (False)
                for transient failures

        Returns:
            Decoded JSON body

        Raises:
            TransientLookupError / TransientError: Transient failure
            ApiError: Backend rejected the request
        """
        if self._session is None:
            raise RuntimeError("BackendClient must be used as an async context manager")

        transient = TransientLookupError if lookup else TransientError
        url = self._url(path)
        logger.debug(f"{method} {url}")

        try:
            async with self._session.request(
                method,
                url,
                json=payload,
                headers=self.headers,
            ) as response:
                text = await response.text()

                if response.status == 429 or response.status >= 500:
                    raise transient(f"{method} {path} returned {response.status}")

                try:
                    body = json.loads(text) if text else {}
                except ValueError as e:
                    if response.status >= 400:
                        raise ApiError(response.status, text[:200] or response.reason or "", path)
                    raise transient(f"{method} {path} returned an undecodable body: {e}") from e

                if response.status >= 400:
                    detail = body.get("detail") if isinstance(body, dict) else None
                    raise ApiError(response.status, str(detail or response.reason or "request failed"), path)

                return body

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise transient(f"{method} {path} failed: {e}") from e

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    async def fetch_task_progress(self, task_id: str) -> list[ProgressEntry]:
        """GET tasks/{task_id}; a missing or non-list progress means not ready."""
        body = await self._request("GET", f"tasks/{task_id}")
        progress = body.get("progress") if isinstance(body, dict) else None
        if not isinstance(progress, list):
            return []
        return [parse_progress_entry(raw) for raw in progress]

    async def fetch_job_detail(self, job_id: str) -> JobDetail:
        """GET airbyte/jobs/{job_id}."""
        body = await self._request("GET", f"airbyte/jobs/{job_id}")
        if not isinstance(body, dict):
            raise TransientLookupError(f"Job {job_id} returned a non-object body")
        return JobDetail.from_dict(body)

    async def fetch_connector_schema(self, definition_id: str) -> dict[str, Any]:
        """GET airbyte/destination_definitions/{definition_id}/specifications."""
        body = await self._request(
            "GET", f"airbyte/destination_definitions/{definition_id}/specifications"
        )
        if not isinstance(body, dict):
            raise TransientLookupError(f"Specification for {definition_id} is not an object")
        return body

    async def fetch_source_catalog(self, source_id: str) -> dict[str, Any]:
        """GET airbyte/sources/{source_id}/schema_catalog."""
        body = await self._request("GET", f"airbyte/sources/{source_id}/schema_catalog")
        if not isinstance(body, dict):
            raise TransientLookupError(f"Catalog for {source_id} is not an object")
        return body

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    async def submit_action(self, request: ActionRequest) -> ActionReceipt:
        """Send an action with its own method and path."""
        body = await self._request(
            request.method.upper(), request.path, payload=request.payload, lookup=False
        )
        return ActionReceipt.from_response(body)
