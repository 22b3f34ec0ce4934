from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quotecard.config import Settings, get_settings
from quotecard.errors import ConfigError
from quotecard.middlewares.body_guard import BodyGuardMiddleware
from quotecard.routes import portrait, proxy

settings = get_settings()
LOG_LEVEL = settings.log_level

# uvicorn 日志级别统一
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("uvicorn").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.error").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.access").setLevel(LOG_LEVEL)
logging.getLogger("quotecard").setLevel(LOG_LEVEL)

logger = logging.getLogger("quotecard")

app = FastAPI(title="Quote Card API", version="1.0.0")


@app.exception_handler(ConfigError)
async def config_error_handler(request: Request, exc: ConfigError) -> JSONResponse:
    logger.error("[config] %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": {"message": str(exc)}})


@app.get("/", include_in_schema=False)
def root() -> dict[str, Any]:
    return {"service": "quote-card", "ok": True}


@app.head("/", include_in_schema=False)
def root_head() -> Response:
    return Response(status_code=200)


@app.get("/health")
def health(current: Settings = Depends(get_settings)) -> dict[str, Any]:
    return {
        "ok": True,
        "providers": {
            "primary": current.primary.is_configured,
            "jimeng": current.jimeng.is_configured,
            "ark": current.ark.is_configured,
            "deepseek": current.deepseek.is_configured,
        },
    }


app.add_middleware(BodyGuardMiddleware, max_bytes=settings.max_json_bytes)
logger.info("BodyGuardMiddleware ready", extra={"max_json_bytes": settings.max_json_bytes})

allow_all = "*" in settings.allowed_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else settings.allowed_origins,
    allow_credentials=not allow_all,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    max_age=86400,
)

app.include_router(proxy.router)
app.include_router(portrait.router)

logger.info(
    "Quote card service ready env=%s primary=%s fallbacks=%s",
    settings.environment,
    settings.primary.is_configured,
    [name for name, ok in (("jimeng", settings.jimeng.is_configured), ("ark", settings.ark.is_configured)) if ok],
)
