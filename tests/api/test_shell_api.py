from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from coffee_finder.main import create_app
from coffee_finder.services.shell_cache import (
    CachedResponse,
    InMemoryCacheStorage,
    ShellCacheConfig,
    ShellCacheLifecycle,
)
from tests.factories import FakeNetwork

ORIGIN = "https://coffee.test"


@pytest.mark.asyncio
async def test_shell_assets_served_from_cache(settings):
    network = FakeNetwork(
        {
            f"{ORIGIN}/": CachedResponse(
                status=200, body=b"<html>shell</html>", headers={"content-type": "text/html"}
            )
        }
    )
    lifecycle = ShellCacheLifecycle(
        ShellCacheConfig(cache_name="v1", origin=ORIGIN, manifest=("/",)),
        InMemoryCacheStorage(),
        network,
    )
    await lifecycle.install()
    network.offline = True

    app = create_app(settings, shell_cache=lifecycle)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        hit = await ac.get("/app/")
        miss = await ac.get("/app/static/js/bundle.js")

    assert hit.status_code == 200
    assert hit.text == "<html>shell</html>"
    assert hit.headers["content-type"].startswith("text/html")
    assert miss.status_code == 503


@pytest.mark.asyncio
async def test_shell_route_404_when_disabled(app_client: AsyncClient):
    r = await app_client.get("/app/index.html")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_startup_installs_then_drops_old_generations(settings):
    storage = InMemoryCacheStorage()
    await storage.put("v1", f"{ORIGIN}/", CachedResponse(status=200, body=b"old shell"))
    network = FakeNetwork(
        {
            f"{ORIGIN}/": CachedResponse(status=200, body=b"new shell"),
            f"{ORIGIN}/manifest.json": CachedResponse(status=200, body=b"{}"),
        }
    )
    lifecycle = ShellCacheLifecycle(
        ShellCacheConfig(cache_name="v2", origin=ORIGIN, manifest=("/", "/manifest.json")),
        storage,
        network,
    )
    app = create_app(settings, shell_cache=lifecycle)

    async with app.router.lifespan_context(app):
        assert await storage.names() == ["v2"]
        assert sorted(storage.entries("v2")) == [f"{ORIGIN}/", f"{ORIGIN}/manifest.json"]
        assert storage.entries("v2")[f"{ORIGIN}/"].body == b"new shell"
