"""Rate-limited access to the Bitrix24 REST API through inbound webhooks."""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Any, Final, ParamSpec, TypeVar

import requests

from .exceptions import RemoteApiError

if TYPE_CHECKING:
    from collections.abc import Callable

logger: logging.Logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_MIN_INTERVAL: Final[float] = 1.0
DEFAULT_TIMEOUT: Final[float] = 20.0
DEFAULT_DOWNLOAD_TIMEOUT: Final[float] = 120.0


class RateLimiter:
    """Serializes calls and keeps a minimum delay between their start times.

    A single limiter is shared by every client of a run, so reads from the
    source and writes to the destination queue behind the same gate. At most
    one call is in flight at any time. Failures are never retried here.
    """

    min_interval: float
    _lock: threading.Lock
    _last_dispatch: float | None

    def __init__(
        self,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_dispatch = None

    def schedule(self, func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
        """Run ``func`` once the gate is free and the minimum delay has elapsed."""
        with self._lock:
            if self._last_dispatch is not None:
                wait = self._last_dispatch + self.min_interval - self._clock()
                if wait > 0:
                    self._sleep(wait)
            self._last_dispatch = self._clock()
            return func(*args, **kwargs)


def build_webhook_url(domain: str, user_id: str, token: str) -> str:
    """Return the base URL of an inbound webhook, e.g. ``https://x.bitrix24.com/rest/1/abc/``."""
    base = domain.rstrip("/")
    if not base.startswith(("http://", "https://")):
        base = f"https://{base}"
    return f"{base}/rest/{user_id}/{token}/"


class BitrixClient:
    """Client for one Bitrix24 portal. All API calls go through the shared limiter."""

    name: str
    webhook_url: str
    token: str | None
    timeout: float
    download_timeout: float

    def __init__(
        self,
        webhook_url: str,
        limiter: RateLimiter,
        *,
        name: str = "bitrix",
        token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.name = name
        self.webhook_url = webhook_url if webhook_url.endswith("/") else f"{webhook_url}/"
        self.token = token
        self.timeout = timeout
        self.download_timeout = download_timeout
        self._limiter = limiter
        self._session = session or requests.Session()

    def _dispatch(self, http_method: str, method: str, **kwargs: Any) -> dict[str, Any]:
        logger.debug(f"REST {self.name} {http_method} {method} at {time.strftime('%H:%M:%S')}")
        response = self._session.request(http_method, f"{self.webhook_url}{method}", timeout=self.timeout, **kwargs)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            msg = f"Unexpected response from {method}: {data!r}"
            raise RemoteApiError(msg)
        return data

    def call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Issue a read (GET with query parameters)."""
        return self._limiter.schedule(self._dispatch, "GET", method, params=params)

    def post(
        self,
        method: str,
        payload: dict[str, Any] | None = None,
        *,
        data: dict[str, Any] | None = None,
        files: dict[str, tuple[str, bytes]] | None = None,
    ) -> dict[str, Any]:
        """Issue a write: a JSON body, or a multipart form when ``files`` is given."""
        if files is not None:
            return self._limiter.schedule(self._dispatch, "POST", method, data=data, files=files)
        return self._limiter.schedule(self._dispatch, "POST", method, json=payload)

    def download(self, url: str) -> bytes:
        """Download raw bytes from a file URL. Not rate limited: this is not an API call."""
        response = self._session.get(url, timeout=self.download_timeout)
        response.raise_for_status()
        return response.content


def get_client(
    domain: str,
    user_id: str,
    token: str,
    limiter: RateLimiter,
    *,
    name: str = "bitrix",
    timeout: float = DEFAULT_TIMEOUT,
) -> BitrixClient:
    """Get a client for the webhook identified by ``domain``, ``user_id`` and ``token``."""
    return BitrixClient(
        build_webhook_url(domain, user_id, token),
        limiter,
        name=name,
        token=token,
        timeout=timeout,
    )


def get_result(data: dict[str, Any], method: str) -> Any:
    """Return the ``result`` payload of a response, raising when it is missing or empty."""
    result = data.get("result")
    if not result:
        msg = f"{method} returned no result: {data!r}"
        raise RemoteApiError(msg)
    return result
