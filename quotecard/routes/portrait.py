from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from quotecard.config import Settings, get_settings
from quotecard.errors import NetworkError, ProtocolError, UpstreamError
from quotecard.routes.deps import error_response, get_http_client, get_sleep
from quotecard.schemas import (
    GenerationRequest,
    PortraitRequest,
    PortraitResponse,
    PosterContent,
    PosterValidation,
    QuoteRequest,
    QuoteResponse,
)
from quotecard.services.jimeng import Sleep
from quotecard.services.orchestrator import build_orchestrator
from quotecard.services.poster import (
    build_portrait_prompt,
    create_poster_filename,
    export_image_url,
    validate_poster_content,
)
from quotecard.services.quote import generate_quote

router = APIRouter(prefix="/api", tags=["portrait"])

logger = logging.getLogger(__name__)


@router.post("/portrait", response_model=PortraitResponse)
async def create_portrait(
    req: PortraitRequest,
    request: Request,
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
    sleep: Sleep = Depends(get_sleep),
) -> Response:
    prompt = req.prompt or build_portrait_prompt(req.name or "")
    generation = GenerationRequest(prompt=prompt, options=req.options)
    orchestrator = build_orchestrator(settings, client, sleep=sleep)

    try:
        outcome = await orchestrator.generate(generation)
    except UpstreamError as exc:
        return error_response(exc.status, f"API 调用失败: {exc.status} {exc.body}")
    except (ProtocolError, NetworkError) as exc:
        return error_response(502, str(exc))

    payload = PortraitResponse(
        image=outcome.result.reference,
        kind=outcome.result.kind,
        provider=outcome.provider,
        degraded=outcome.degraded,
        attempts=[{"provider": a.provider, "error": a.error} for a in outcome.attempts],
        export_image=export_image_url(
            outcome.result.reference, request.headers.get("origin") or str(request.base_url)
        ),
    )
    return JSONResponse(payload.model_dump())


@router.post("/quote", response_model=QuoteResponse)
async def create_quote(
    req: QuoteRequest,
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> Response:
    try:
        quote = await generate_quote(req.name, settings.deepseek, http_client=client)
    except UpstreamError as exc:
        return error_response(exc.status, f"Failed to generate quote: {exc.status} {exc.body}")
    except (ProtocolError, NetworkError) as exc:
        return error_response(502, str(exc))
    return JSONResponse(QuoteResponse(quote=quote).model_dump())


@router.post("/poster/validate", response_model=PosterValidation)
def validate_poster(content: PosterContent) -> PosterValidation:
    ok, errors = validate_poster_content(content)
    return PosterValidation(
        ok=ok,
        errors=errors,
        filename=create_poster_filename("png") if ok else None,
    )
