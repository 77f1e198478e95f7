from __future__ import annotations

import httpx
import pytest

from coffee_finder import db
from coffee_finder.core.exceptions import NetworkFetchError
from coffee_finder.repositories.cache_storage import SqlAlchemyCacheStorage
from coffee_finder.services.shell_cache import (
    CachedRequest,
    CachedResponse,
    HttpxFetcher,
    InMemoryCacheStorage,
    ShellCacheConfig,
    ShellCacheLifecycle,
)
from tests.factories import FakeNetwork

ORIGIN = "https://coffee.test"


def _ok(body: bytes, type_: str = "basic") -> CachedResponse:
    return CachedResponse(status=200, body=body, headers={"content-type": "text/plain"}, type=type_)


def _lifecycle(network, storage=None, name="coffee-finder-cache-v2", manifest=()):
    config = ShellCacheConfig(cache_name=name, origin=ORIGIN, manifest=tuple(manifest))
    return ShellCacheLifecycle(config, storage or InMemoryCacheStorage(), network)


@pytest.mark.asyncio
async def test_install_tolerates_partial_failures():
    network = FakeNetwork(
        {
            f"{ORIGIN}/": _ok(b"<html>"),
            f"{ORIGIN}/manifest.json": _ok(b"{}"),
            f"{ORIGIN}/logo192.png": CachedResponse(status=404),
        }
    )
    storage = InMemoryCacheStorage()
    lifecycle = _lifecycle(
        network, storage, manifest=["/", "/manifest.json", "/logo192.png", "/static/js/bundle.js"]
    )

    report = await lifecycle.install()

    assert sorted(report.cached) == ["/", "/manifest.json"]
    assert sorted(report.failed) == ["/logo192.png", "/static/js/bundle.js"]
    assert sorted(storage.entries(lifecycle.cache_name)) == [
        f"{ORIGIN}/",
        f"{ORIGIN}/manifest.json",
    ]


@pytest.mark.asyncio
async def test_cached_same_origin_asset_never_hits_network():
    network = FakeNetwork({f"{ORIGIN}/index.html": _ok(b"shell")})
    lifecycle = _lifecycle(network, manifest=["/index.html"])
    await lifecycle.install()
    network.calls.clear()
    network.offline = True

    response = await lifecycle.handle_fetch(CachedRequest(url=f"{ORIGIN}/index.html"))

    assert response.body == b"shell"
    assert network.calls == []


@pytest.mark.asyncio
async def test_miss_is_fetched_then_served_from_cache():
    network = FakeNetwork({f"{ORIGIN}/static/css/main.css": _ok(b"body{}")})
    lifecycle = _lifecycle(network)
    request = CachedRequest(url=f"{ORIGIN}/static/css/main.css")

    first = await lifecycle.handle_fetch(request)
    second = await lifecycle.handle_fetch(request)

    assert first.body == second.body == b"body{}"
    assert network.calls == [request.url]


@pytest.mark.asyncio
async def test_fragment_is_ignored_for_lookup():
    network = FakeNetwork({f"{ORIGIN}/index.html": _ok(b"shell")})
    lifecycle = _lifecycle(network, manifest=["/index.html"])
    await lifecycle.install()
    network.offline = True

    response = await lifecycle.handle_fetch(CachedRequest(url=f"{ORIGIN}/index.html#top"))
    assert response.body == b"shell"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        CachedResponse(status=404, body=b"missing"),
        CachedResponse(status=206, body=b"partial"),
        CachedResponse(status=200, body=b"opaque", type="opaque"),
    ],
)
async def test_unsuccessful_or_opaque_responses_are_not_stored(response):
    url = f"{ORIGIN}/maybe"
    storage = InMemoryCacheStorage()
    lifecycle = _lifecycle(FakeNetwork({url: response}), storage)

    returned = await lifecycle.handle_fetch(CachedRequest(url=url))

    assert returned.body == response.body
    assert storage.entries(lifecycle.cache_name) == {}


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [200, 404, 500])
async def test_cross_origin_is_never_cached(status):
    url = "https://tile.openstreetmap.org/1/0/0.png"
    network = FakeNetwork({url: CachedResponse(status=status, body=b"tile", type="basic")})
    storage = InMemoryCacheStorage()
    lifecycle = _lifecycle(network, storage)

    await lifecycle.handle_fetch(CachedRequest(url=url))
    await lifecycle.handle_fetch(CachedRequest(url=url))

    assert network.calls == [url, url]
    assert await storage.names() == []


@pytest.mark.asyncio
async def test_extension_urls_are_not_cached():
    url = "chrome-extension://abcdef/script.js"
    storage = InMemoryCacheStorage()
    config = ShellCacheConfig(cache_name="v1", origin="chrome-extension://abcdef")
    lifecycle = ShellCacheLifecycle(config, storage, FakeNetwork({url: _ok(b"ext")}))

    await lifecycle.handle_fetch(CachedRequest(url=url))

    assert storage.entries("v1") == {}


@pytest.mark.asyncio
async def test_non_get_requests_bypass_cache():
    url = f"{ORIGIN}/api/submit"
    network = FakeNetwork({url: _ok(b"done")})
    storage = InMemoryCacheStorage()
    lifecycle = _lifecycle(network, storage)

    await lifecycle.handle_fetch(CachedRequest(url=url, method="POST"))
    await lifecycle.handle_fetch(CachedRequest(url=url, method="POST"))

    assert len(network.calls) == 2
    assert storage.entries(lifecycle.cache_name) == {}


@pytest.mark.asyncio
async def test_network_failure_on_miss_propagates():
    network = FakeNetwork()
    network.offline = True
    lifecycle = _lifecycle(network)

    with pytest.raises(NetworkFetchError):
        await lifecycle.handle_fetch(CachedRequest(url=f"{ORIGIN}/script.js"))


@pytest.mark.asyncio
async def test_activate_keeps_only_current_generation():
    storage = InMemoryCacheStorage()
    await storage.put("v1", f"{ORIGIN}/", _ok(b"old"))
    await storage.put("v2", f"{ORIGIN}/", _ok(b"new"))
    lifecycle = _lifecycle(FakeNetwork(), storage, name="v2")

    deleted = await lifecycle.activate()

    assert deleted == ["v1"]
    assert set(await storage.names()) == {"v2"}


@pytest.mark.asyncio
async def test_generations_are_isolated_by_configured_name():
    storage = InMemoryCacheStorage()
    v1 = _lifecycle(FakeNetwork({f"{ORIGIN}/": _ok(b"v1 shell")}), storage, name="v1", manifest=["/"])
    await v1.install()

    v2_network = FakeNetwork({f"{ORIGIN}/": _ok(b"v2 shell")})
    v2 = _lifecycle(v2_network, storage, name="v2", manifest=["/"])
    await v2.install()

    # Before activation the old generation still answers its own requests
    v1_response = await v1.handle_fetch(CachedRequest(url=f"{ORIGIN}/"))
    assert v1_response.body == b"v1 shell"

    await v2.activate()
    assert await storage.names() == ["v2"]
    v2_response = await v2.handle_fetch(CachedRequest(url=f"{ORIGIN}/"))
    assert v2_response.body == b"v2 shell"


@pytest.mark.asyncio
async def test_sql_storage_activation(engine):
    storage = SqlAlchemyCacheStorage(db.SessionLocal)
    await storage.put("v1", f"{ORIGIN}/", _ok(b"old"))
    await storage.put("v2", f"{ORIGIN}/", _ok(b"new"))
    await storage.put("v2", f"{ORIGIN}/", _ok(b"newer"))
    lifecycle = _lifecycle(FakeNetwork(), storage, name="v2")

    await lifecycle.activate()

    assert await storage.names() == ["v2"]
    cached = await storage.match("v2", f"{ORIGIN}/")
    assert cached is not None and cached.body == b"newer"
    assert await storage.match("v1", f"{ORIGIN}/") is None


@pytest.mark.asyncio
async def test_httpx_fetcher_tags_response_type():
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"ok", headers={"content-type": "text/plain"})

    fetcher = HttpxFetcher(ORIGIN, transport=httpx.MockTransport(_handler))

    same = await fetcher(CachedRequest(url=f"{ORIGIN}/index.html"))
    cross = await fetcher(CachedRequest(url="https://cdn.test/lib.js"))

    assert same.type == "basic" and same.body == b"ok"
    assert cross.type == "cors"


@pytest.mark.asyncio
async def test_httpx_fetcher_wraps_transport_errors():
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    fetcher = HttpxFetcher(ORIGIN, transport=httpx.MockTransport(_handler))
    with pytest.raises(NetworkFetchError):
        await fetcher(CachedRequest(url=f"{ORIGIN}/index.html"))


class _FailingPutStorage(InMemoryCacheStorage):
    def __init__(self, broken_key: str) -> None:
        super().__init__()
        self._broken_key = broken_key

    async def put(self, name: str, key: str, response: CachedResponse) -> None:
        if key == self._broken_key:
            raise OSError("disk full")
        await super().put(name, key, response)


@pytest.mark.asyncio
async def test_install_survives_storage_failure_for_one_asset():
    network = FakeNetwork(
        {
            f"{ORIGIN}/": _ok(b"<html>"),
            f"{ORIGIN}/bad.png": _ok(b"png"),
            f"{ORIGIN}/c.css": _ok(b"css"),
        }
    )
    storage = _FailingPutStorage(f"{ORIGIN}/bad.png")
    lifecycle = _lifecycle(network, storage, manifest=["/", "/bad.png", "/c.css"])

    report = await lifecycle.install()

    assert sorted(report.cached) == ["/", "/c.css"]
    assert report.failed == ["/bad.png"]


@pytest.mark.asyncio
async def test_install_survives_unexpected_fetcher_error():
    async def _broken(request: CachedRequest) -> CachedResponse:
        raise RuntimeError("boom")

    lifecycle = _lifecycle(_broken, manifest=["/"])

    report = await lifecycle.install()

    assert report.cached == []
    assert report.failed == ["/"]


@pytest.mark.asyncio
async def test_default_port_counts_as_same_origin():
    url = f"{ORIGIN}:443/static/js/app.js"
    storage = InMemoryCacheStorage()
    lifecycle = _lifecycle(FakeNetwork({url: _ok(b"js")}), storage, name="v1")

    assert lifecycle.is_same_origin(url)
    await lifecycle.handle_fetch(CachedRequest(url=url))

    assert list(storage.entries("v1")) == [url]
    assert not lifecycle.is_same_origin("https://coffee.test:8443/static/js/app.js")
    assert not lifecycle.is_same_origin("http://coffee.test/static/js/app.js")
