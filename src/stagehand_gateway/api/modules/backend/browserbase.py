"""Browserbase-backed browser sessions, one per set of credentials.

Every stream that authenticates with the same credentials shares one
remote browser. ``close(credentials)`` releases it. It is called from
session teardown and tolerates credentials that never acquired a
browser.

Example::

    pool = BrowserSessionPool()
    browser = await pool.acquire(credentials)
    ...
    await pool.close(credentials)
    await pool.aclose()
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from ....observability import get_logger
from ...credentials import Credentials
from ...errors import BackendError

logger = get_logger(__name__)

DEFAULT_API_URL = 'https://api.browserbase.com'


class BackendResourcePool(Protocol):
    """What session teardown needs from the browser backend."""

    async def close(self, credentials: Credentials) -> bool: ...


@dataclass
class BrowserSession:
    """A remote browser acquired for one credential fingerprint."""

    id: str
    project_id: str
    connect_url: str | None = None
    status: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'project_id': self.project_id,
            'connect_url': self.connect_url,
            'status': self.status,
        }


class BrowserbaseClient:
    """Minimal async client for the Browserbase sessions REST API.

    Args:
        base_url: API base URL.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip('/'),
            timeout=timeout,
            transport=transport,
        )

    @staticmethod
    def _headers(api_key: str) -> dict[str, str]:
        return {'X-BB-API-Key': api_key, 'Content-Type': 'application/json'}

    async def _request(self, method: str, path: str, api_key: str, payload: dict) -> dict[str, Any]:
        try:
            response = await self._client.request(
                method, path, headers=self._headers(api_key), json=payload,
            )
        except httpx.HTTPError as exc:
            raise BackendError(
                f'Browserbase request failed: {type(exc).__name__}',
                operation=f'{method} {path}',
            ) from exc

        if response.status_code >= 400:
            detail = response.text[:200] or response.reason_phrase
            raise BackendError(
                f'Browserbase API error {response.status_code}: {detail}',
                status_code=response.status_code,
                operation=f'{method} {path}',
            )
        try:
            return response.json()
        except ValueError:
            return {}

    async def create_session(self, api_key: str, project_id: str) -> BrowserSession:
        data = await self._request('POST', '/v1/sessions', api_key, {'projectId': project_id})
        session_id = data.get('id')
        if not session_id:
            raise BackendError('Browserbase did not return a session id', operation='POST /v1/sessions')
        return BrowserSession(
            id=session_id,
            project_id=data.get('projectId', project_id),
            connect_url=data.get('connectUrl'),
            status=data.get('status'),
            raw=data,
        )

    async def release_session(self, api_key: str, project_id: str, session_id: str) -> None:
        await self._request(
            'POST',
            f'/v1/sessions/{session_id}',
            api_key,
            {'projectId': project_id, 'status': 'REQUEST_RELEASE'},
        )

    async def aclose(self) -> None:
        await self._client.aclose()


class BrowserSessionPool:
    """Browser sessions keyed by credential fingerprint.

    Raw keys are never used as dict keys; only ``Credentials.fingerprint``.
    """

    def __init__(self, client: BrowserbaseClient | None = None):
        self._client = client or BrowserbaseClient()
        self._sessions: dict[str, BrowserSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, fingerprint: str) -> asyncio.Lock:
        lock = self._locks.get(fingerprint)
        if lock is None:
            lock = self._locks[fingerprint] = asyncio.Lock()
        return lock

    def get(self, credentials: Credentials) -> BrowserSession | None:
        return self._sessions.get(credentials.fingerprint)

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    async def acquire(self, credentials: Credentials) -> BrowserSession:
        """Return the browser for these credentials, creating it on first use."""
        if not credentials.browserbase_api_key or not credentials.browserbase_project_id:
            raise BackendError('Browserbase credentials are incomplete', status_code=401, operation='acquire')

        fingerprint = credentials.fingerprint
        async with self._lock_for(fingerprint):
            existing = self._sessions.get(fingerprint)
            if existing is not None:
                return existing
            browser = await self._client.create_session(
                credentials.browserbase_api_key,
                credentials.browserbase_project_id,
            )
            self._sessions[fingerprint] = browser
            logger.info('browser_session_created', browser_session_id=browser.id)
            return browser

    async def close(self, credentials: Credentials) -> bool:
        """Release the browser for these credentials.

        Returns False when there was nothing to release. Raises
        ``BackendError`` when the release call fails; the pool entry is
        dropped either way so a retry does not target a dead browser.
        """
        fingerprint = credentials.fingerprint
        # The lock stays in _locks: callers already queued on it and later
        # callers must serialise on the same object.
        async with self._lock_for(fingerprint):
            browser = self._sessions.pop(fingerprint, None)
            if browser is None:
                return False
            await self._client.release_session(
                credentials.browserbase_api_key or '',
                browser.project_id,
                browser.id,
            )
            logger.info('browser_session_released', browser_session_id=browser.id)
            return True

    async def aclose(self) -> None:
        await self._client.aclose()
