"""Offline-first cache for the application shell and its static assets.

The lifecycle has three steps:

- ``install()`` pre-populates the current cache generation from the asset manifest.
  A failing asset is logged and skipped; it falls back to the network on first use.
- ``handle_fetch(request)`` answers same-origin requests cache-first and stores
  successful same-origin network responses. Cross-origin requests always go to the
  network and never touch the cache.
- ``activate()`` deletes every generation except the current one. It is the only
  eviction mechanism; there is no size or TTL based eviction.

Storage and network access are injected so the lifecycle can run without a network.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import urldefrag

import httpx
import structlog

from coffee_finder.core.exceptions import NetworkFetchError

logger = structlog.get_logger(__name__)

EXTENSION_SCHEMES = (
    "chrome-extension://",
    "moz-extension://",
    "safari-extension://",
    "safari-web-extension://",
)
CACHEABLE_METHODS = frozenset({"GET"})


@dataclass(frozen=True)
class ShellCacheConfig:
    cache_name: str
    origin: str
    manifest: tuple[str, ...] = ()

    def asset_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.origin.rstrip('/')}/{path.lstrip('/')}"


@dataclass(frozen=True)
class CachedRequest:
    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def key(self) -> str:
        """Cache lookup key: the URL without its fragment."""
        return urldefrag(self.url).url


@dataclass(frozen=True)
class CachedResponse:
    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)
    # Mirrors Response.type: basic (same-origin), cors, opaque or error
    type: str = "basic"
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def clone(self) -> CachedResponse:
        return dataclasses.replace(self, headers=dict(self.headers))


Fetcher = Callable[[CachedRequest], Awaitable[CachedResponse]]


class CacheStorage(Protocol):
    """Named cache generations of (request key -> response) pairs."""

    async def open(self, name: str) -> None: ...

    async def match(self, name: str, key: str) -> CachedResponse | None: ...

    async def put(self, name: str, key: str, response: CachedResponse) -> None: ...

    async def names(self) -> list[str]: ...

    async def delete(self, name: str) -> bool: ...


class InMemoryCacheStorage:
    def __init__(self) -> None:
        self._caches: dict[str, dict[str, CachedResponse]] = {}

    async def open(self, name: str) -> None:
        self._caches.setdefault(name, {})

    async def match(self, name: str, key: str) -> CachedResponse | None:
        cached = self._caches.get(name, {}).get(key)
        return cached.clone() if cached else None

    async def put(self, name: str, key: str, response: CachedResponse) -> None:
        self._caches.setdefault(name, {})[key] = response.clone()

    async def names(self) -> list[str]:
        return list(self._caches)

    async def delete(self, name: str) -> bool:
        return self._caches.pop(name, None) is not None

    def entries(self, name: str) -> dict[str, CachedResponse]:
        return dict(self._caches.get(name, {}))


@dataclass
class InstallReport:
    cache_name: str
    cached: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def _origin_of(url: str) -> tuple[str, str, int | None]:
    # httpx drops default ports, so :443 on https compares equal to no port
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        return ("", url, None)
    return parsed.scheme, parsed.host, parsed.port


def is_extension_url(url: str) -> bool:
    return url.lower().startswith(EXTENSION_SCHEMES)


class ShellCacheLifecycle:
    def __init__(self, config: ShellCacheConfig, storage: CacheStorage, fetch: Fetcher) -> None:
        self.config = config
        self._storage = storage
        self._fetch = fetch
        self._origin = _origin_of(config.origin)

    @property
    def cache_name(self) -> str:
        return self.config.cache_name

    def is_same_origin(self, url: str) -> bool:
        return _origin_of(url) == self._origin

    async def _precache(self, path: str, report: InstallReport) -> None:
        request = CachedRequest(url=self.config.asset_url(path))
        try:
            response = await self._fetch(request)
            if response.status != 200:
                logger.error("shell_cache_install_failed", path=path, status=response.status)
                report.failed.append(path)
                return
            await self._storage.put(self.cache_name, request.key, response.clone())
        except Exception as exc:
            # A single asset never aborts install
            logger.error("shell_cache_install_failed", path=path, error=repr(exc))
            report.failed.append(path)
            return
        report.cached.append(path)

    async def install(self) -> InstallReport:
        """Open the current generation and pre-populate it from the manifest."""
        report = InstallReport(cache_name=self.cache_name)
        await self._storage.open(self.cache_name)
        logger.info("shell_cache_install", cache=self.cache_name, assets=len(self.config.manifest))
        await asyncio.gather(*(self._precache(path, report) for path in self.config.manifest))
        logger.info(
            "shell_cache_installed",
            cache=self.cache_name,
            cached=len(report.cached),
            failed=len(report.failed),
        )
        return report

    def _should_store(self, request: CachedRequest, response: CachedResponse) -> bool:
        if request.method.upper() not in CACHEABLE_METHODS:
            return False
        if response.status != 200 or response.type != "basic":
            return False
        return not is_extension_url(request.url)

    async def handle_fetch(self, request: CachedRequest) -> CachedResponse:
        """Answer ``request`` cache-first for same-origin URLs, network-only otherwise.

        A network failure on a cache miss raises ``NetworkFetchError``; there is no retry.
        """
        if not self.is_same_origin(request.url):
            return await self._fetch(request)

        if request.method.upper() in CACHEABLE_METHODS:
            cached = await self._storage.match(self.cache_name, request.key)
            if cached is not None:
                logger.debug("shell_cache_hit", url=request.key)
                return cached

        response = await self._fetch(request)
        if self._should_store(request, response):
            await self._storage.put(self.cache_name, request.key, response.clone())
            logger.debug("shell_cache_stored", url=request.key)
        return response

    async def activate(self) -> list[str]:
        """Delete every cache generation other than the current one."""
        deleted: list[str] = []
        for name in await self._storage.names():
            if name != self.cache_name and await self._storage.delete(name):
                deleted.append(name)
        logger.info("shell_cache_activated", cache=self.cache_name, deleted=deleted)
        return deleted


class HttpxFetcher:
    """Network access for the lifecycle, tagging responses the way browsers do."""

    def __init__(
        self,
        origin: str,
        *,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._origin = _origin_of(origin)
        self._timeout = timeout
        self._transport = transport

    async def __call__(self, request: CachedRequest) -> CachedResponse:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport, follow_redirects=True
            ) as client:
                response = await client.request(
                    request.method, request.url, headers=request.headers or None
                )
        except httpx.HTTPError as exc:
            raise NetworkFetchError(f"fetch failed for {request.url}: {exc}") from exc

        response_type = "basic" if _origin_of(str(response.url)) == self._origin else "cors"
        headers = {
            k: v
            for k, v in response.headers.items()
            if k.lower() not in {"content-length", "content-encoding", "transfer-encoding", "connection"}
        }
        return CachedResponse(
            status=response.status_code,
            body=response.content,
            headers=headers,
            type=response_type,
            url=str(response.url),
        )
