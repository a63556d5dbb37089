from __future__ import annotations

import asyncio
import random
import time
import urllib.parse

import aiohttp


class HttpError(RuntimeError):
    """Collaborator HTTP call failed (status, transport or payload)."""


class HttpService:
    """Shared aiohttp session with per-host pacing and 429/5xx retry."""

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        min_gap_ms: float = 0.0,
        retries_429: int = 1,
        retries_5xx: int = 1,
        conn_limit: int = 20,
        log=None,
    ):
        self._timeout = max(0.5, float(timeout))
        self._min_gap_s = max(0.0, float(min_gap_ms) / 1000.0)
        self._retries_429 = max(0, int(retries_429))
        self._retries_5xx = max(0, int(retries_5xx))
        self._conn_limit = max(1, int(conn_limit))
        self._log = log

        self._session: aiohttp.ClientSession | None = None
        self._host_backoff: dict[str, float] = {}
        self._host_last_ts: dict[str, float] = {}
        self._host_locks: dict[str, asyncio.Lock] = {}

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is not None and not self._session.closed:
            return self._session
        connector = aiohttp.TCPConnector(limit=self._conn_limit, enable_cleanup_closed=True)
        self._session = aiohttp.ClientSession(
            connector=connector,
            headers={"User-Agent": "updown-bot/0.2", "Content-Type": "application/json"},
        )
        return self._session

    def _host_lock(self, host: str) -> asyncio.Lock:
        lock = self._host_locks.get(host)
        if lock is None:
            lock = asyncio.Lock()
            self._host_locks[host] = lock
        return lock

    async def get_json(self, url: str, *, params: dict | None = None, timeout: float | None = None):
        timeout = self._timeout if timeout is None else max(0.5, float(timeout))
        host = urllib.parse.urlparse(url).netloc
        session = await self._ensure_session()

        async with self._host_lock(host):
            now = time.time()
            last_ts = float(self._host_last_ts.get(host, 0.0) or 0.0)
            if last_ts > 0 and (now - last_ts) < self._min_gap_s:
                await asyncio.sleep(self._min_gap_s - (now - last_ts))
            self._host_last_ts[host] = time.time()

            bt = float(self._host_backoff.get(host, 0.0) or 0.0)
            if bt > time.time():
                raise HttpError(f"http 429 backoff active for {host} ({bt - time.time():.0f}s left)")

            last_err: Exception | None = None
            attempts = max(1, max(self._retries_429, self._retries_5xx) + 1)
            for i in range(attempts):
                try:
                    async with session.get(
                        url,
                        params=params,
                        timeout=aiohttp.ClientTimeout(total=timeout),
                    ) as r:
                        if r.status == 429:
                            retry_after = max(1.0, float(r.headers.get("Retry-After", "2") or 2.0))
                            backoff_s = min(90.0, retry_after + (0.35 * i) + random.uniform(0.05, 0.35))
                            self._host_backoff[host] = time.time() + backoff_s
                            if i < self._retries_429:
                                await asyncio.sleep(backoff_s)
                                continue
                            raise HttpError(f"http 429 {url}")

                        if r.status >= 500 and i < self._retries_5xx:
                            await asyncio.sleep(0.25 + (0.25 * i))
                            continue

                        if r.status >= 400:
                            raise HttpError(f"http {r.status} {url}")

                        return await r.json(content_type=None)
                except HttpError as e:
                    last_err = e
                    break
                except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                    last_err = e
                    if i < (attempts - 1):
                        await asyncio.sleep(0.20 + (0.15 * i))
                        continue

            if self._log is not None:
                self._log.debug("http get failed url=%s err=%s", url, last_err)
            raise HttpError(f"http get failed: {url} err={last_err}")
