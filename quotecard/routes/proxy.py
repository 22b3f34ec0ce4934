"""Thin relays that inject server-held provider secrets."""
from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlparse

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from quotecard.config import Settings, get_settings
from quotecard.errors import (
    NetworkError,
    ProtocolError,
    TaskFailedError,
    TaskTimeoutError,
    UpstreamError,
)
from quotecard.routes.deps import error_response, get_http_client, get_sleep, read_json_body
from quotecard.schemas import ArkRequest, JimengRequest
from quotecard.services.image_provider.ark import ArkImageAdapter
from quotecard.services.image_provider.factory import build_primary, build_task_client
from quotecard.services.jimeng import Sleep

router = APIRouter(prefix="/api", tags=["proxy"])

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _relay(response: httpx.Response) -> Response:
    return Response(
        content=response.content,
        status_code=response.status_code,
        media_type=response.headers.get("content-type") or "application/json",
    )


@router.get("/image")
async def proxy_image(
    url: Optional[str] = None,
    client: httpx.AsyncClient = Depends(get_http_client),
) -> Response:
    if not url:
        return PlainTextResponse("Missing url", status_code=400)

    parsed = urlparse(url)
    if not parsed.scheme:
        return PlainTextResponse("Invalid url", status_code=400)
    if parsed.scheme not in {"http", "https"}:
        return PlainTextResponse("Invalid protocol", status_code=400)
    if not parsed.netloc:
        return PlainTextResponse("Invalid url", status_code=400)

    try:
        upstream = await client.get(url, follow_redirects=True)
    except httpx.RequestError as exc:
        logger.warning("[proxy.image] fetch failed host=%s err=%s", parsed.netloc, exc)
        return PlainTextResponse("Image fetch failed", status_code=500)

    if not upstream.is_success:
        return PlainTextResponse(upstream.text, status_code=upstream.status_code)

    headers = {}
    content_type = upstream.headers.get("content-type")
    if content_type:
        headers["Content-Type"] = content_type
    return Response(content=upstream.content, status_code=200, headers=headers)


@router.post("/imagen")
async def proxy_imagen(
    request: Request,
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> Response:
    if not settings.primary.is_configured:
        return error_response(500, "Missing API config")

    body = await read_json_body(request)
    try:
        upstream = await build_primary(settings, client).relay(body)
    except NetworkError as exc:
        return error_response(502, str(exc))
    return _relay(upstream)


@router.post("/jimeng")
async def proxy_jimeng(
    request: Request,
    debug: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
    sleep: Sleep = Depends(get_sleep),
) -> Response:
    if not settings.jimeng.is_configured:
        return error_response(500, "Missing Jimeng config")

    payload = await read_json_body(request)
    data = JimengRequest.model_validate(payload if isinstance(payload, dict) else {})
    if not data.prompt:
        return PlainTextResponse("Missing prompt", status_code=400)

    task_client = build_task_client(settings, client, sleep=sleep)
    with_debug = (debug or "").strip().lower() in _TRUTHY

    def _debug_extra() -> dict:
        return {"debug": task_client.diagnostics()} if with_debug else {}

    try:
        result = await task_client.run(data.prompt, data.task_params())
    except UpstreamError as exc:
        if with_debug:
            return error_response(exc.status, exc.body, **_debug_extra())
        return Response(content=exc.body, status_code=exc.status, media_type="application/json")
    except TaskTimeoutError:
        return error_response(504, "Jimeng timeout", **_debug_extra())
    except TaskFailedError as exc:
        return error_response(500, f"Task {exc.status}", **_debug_extra())
    except ProtocolError as exc:
        return error_response(500, str(exc), **_debug_extra())
    except NetworkError as exc:
        return error_response(502, str(exc), **_debug_extra())

    return JSONResponse({**result.as_payload(), **_debug_extra()})


@router.post("/ark")
async def proxy_ark(
    request: Request,
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> Response:
    if not settings.ark.is_configured:
        return error_response(500, "Missing Ark config")

    payload = await read_json_body(request)
    data = ArkRequest.model_validate(payload if isinstance(payload, dict) else {})
    if not data.prompt:
        return PlainTextResponse("Missing prompt", status_code=400)

    adapter = ArkImageAdapter(settings.ark, client=client, timeout=settings.http_timeout)
    try:
        result = await adapter.generate(data.prompt, data.options())
    except UpstreamError as exc:
        return Response(content=exc.body, status_code=exc.status, media_type="application/json")
    except ProtocolError as exc:
        return error_response(500, str(exc))
    except NetworkError as exc:
        return error_response(502, str(exc))

    if result.kind == "url":
        return JSONResponse({"image_url": result.url})
    return JSONResponse({"image_base64": result.b64})
