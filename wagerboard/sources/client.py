# sources/client.py

import asyncio
import json
import logging
from collections import deque
from typing import Any, Dict, Mapping, Optional
import time

import aiohttp

from wagerboard.errors import RateLimitError, UpstreamError

log = logging.getLogger(__name__)

# En-têtes "navigateur" : certaines APIs affiliées refusent les clients nus
BROWSER_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
}

# Taille max d'un corps d'erreur recopié dans les logs / la réponse 500
ERROR_BODY_LIMIT = 500


class SourceClient:
    """Async HTTP client for one wager API, with a local quota and retries."""

    def __init__(
        self,
        source: str,
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = 15,
        quota_max: Optional[int] = None,
        quota_window: float = 60,
        max_retry_wait: float = 5,
    ):
        self.source = source
        self.headers = dict(BROWSER_HEADERS)
        self.headers.update(headers or {})
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

        # Pour throttling : timestamps des dernières requêtes
        self._req_times: deque = deque()
        self._quota_window = quota_window  # secondes
        self._quota_max = quota_max        # None = pas de quota local
        self._max_retry_wait = max_retry_wait
        self._lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self):
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _throttle(self):
        """Sliding-window quota. Raises instead of sleeping once the window is full."""
        if not self._quota_max:
            return
        async with self._lock:
            now = time.time()

            # Purge des requêtes trop vieilles
            while self._req_times and self._req_times[0] <= now - self._quota_window:
                self._req_times.popleft()

            if len(self._req_times) >= self._quota_max:
                wait = self._quota_window - (now - self._req_times[0])
                log.warning(f"[{self.source}] local quota reached, next slot in {wait:.1f}s")
                raise RateLimitError(
                    self.source,
                    f"Local request quota reached ({self._quota_max}/{self._quota_window:g}s)",
                    details={"retryInSeconds": round(wait, 1)},
                )

            self._req_times.append(now)

    @staticmethod
    def _retry_after(headers: Mapping[str, str]) -> Optional[float]:
        raw = headers.get("Retry-After") if headers else None
        if raw is None:
            return None
        try:
            return float(raw)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _snippet(raw: bytes) -> str:
        return raw.decode("utf-8", errors="replace")[:ERROR_BODY_LIMIT]

    @classmethod
    def _decode_body(cls, raw: bytes) -> Any:
        """Error payload for diagnosis: parsed JSON if possible, else a snippet."""
        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError:
            return cls._snippet(raw)

    async def _read_json(self, resp) -> Any:
        raw = await resp.read()
        try:
            # UnicodeDecodeError est un ValueError
            return json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise UpstreamError(
                self.source,
                "Upstream returned a non-JSON body",
                status=resp.status,
                details=self._snippet(raw),
            ) from e

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, str]] = None,
        max_retries: int = 3,
    ) -> Any:
        """
        GET ``url`` and decode the JSON body.

        The whole call, retries and backoff included, is bounded by
        ``self.timeout``.

        Args:
            url: The full URL to request
            params: Query parameters
            max_retries: Attempts for 5xx, network errors and short 429 waits

        Returns:
            Decoded JSON body

        Raises:
            RateLimitError: On a 429 that cannot be waited out, or when the
                local quota is spent
            UpstreamError: For any other non-success status, a network
                failure after retries, a non-JSON body or the deadline
        """
        try:
            return await asyncio.wait_for(self._request(url, params, max_retries), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamError(self.source, f"Timed out after {self.timeout:g}s") from e

    async def _request(self, url: str, params: Optional[Dict[str, str]], max_retries: int) -> Any:
        session = await self._get_session()

        for attempt in range(max_retries):
            await self._throttle()
            try:
                async with session.get(url, params=params) as resp:
                    if resp.status == 429:
                        retry_after = self._retry_after(resp.headers)
                        if (retry_after is not None and retry_after <= self._max_retry_wait
                                and attempt < max_retries - 1):
                            log.warning(
                                f"[{self.source}] 429 rate limited, retrying after {retry_after:g}s "
                                f"(attempt {attempt + 1}/{max_retries})"
                            )
                            await asyncio.sleep(retry_after)
                            continue
                        details = self._decode_body(await resp.read())
                        raise RateLimitError(self.source, "Rate limited by upstream", status=429, details=details)

                    if resp.status >= 500 and attempt < max_retries - 1:
                        wait = 2 ** attempt  # Exponential backoff
                        log.warning(f"[{self.source}] server error {resp.status}, retrying in {wait}s")
                        await asyncio.sleep(wait)
                        continue

                    if not 200 <= resp.status < 300:
                        details = self._decode_body(await resp.read())
                        raise UpstreamError(
                            self.source,
                            f"Upstream responded with status {resp.status}",
                            status=resp.status,
                            details=details,
                        )

                    return await self._read_json(resp)

            except aiohttp.ClientError as e:
                if attempt < max_retries - 1:
                    wait = 2 ** attempt
                    log.warning(f"[{self.source}] network error, retrying in {wait}s: {e!r}")
                    await asyncio.sleep(wait)
                    continue
                raise UpstreamError(self.source, f"Network error: {e!r}") from e

        raise UpstreamError(self.source, f"Failed after {max_retries} attempts")
