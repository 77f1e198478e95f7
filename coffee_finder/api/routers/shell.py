from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from coffee_finder.api.deps import get_shell_cache
from coffee_finder.services.shell_cache import CachedRequest, ShellCacheLifecycle

router = APIRouter(prefix="/app", tags=["shell"])

_FORWARDED_HEADERS = ("accept", "accept-language")


@router.get("/{path:path}", summary="Application shell assets (cache-first)")
async def shell_asset(
    path: str,
    request: Request,
    lifecycle: ShellCacheLifecycle = Depends(get_shell_cache),
):
    url = lifecycle.config.asset_url(path)
    if request.url.query:
        url = f"{url}?{request.url.query}"
    headers = {k: v for k, v in request.headers.items() if k.lower() in _FORWARDED_HEADERS}
    cached = await lifecycle.handle_fetch(CachedRequest(url=url, headers=headers))
    return Response(content=cached.body, status_code=cached.status, headers=cached.headers)
