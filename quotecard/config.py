from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List
from urllib.parse import urlparse

DEFAULT_ARK_API_URL = "https://ark.cn-beijing.volces.com/api/v3/images/generations"
DEFAULT_ARK_MODEL = "doubao-seedream-4-5-251128"
DEFAULT_JIMENG_HOST = "visual.volcengineapi.com"
DEFAULT_DEEPSEEK_BASE_URL = "https://api.deepseek.com"


def _env(*names: str) -> str | None:
    """Return the first non-empty value among the given variable aliases."""

    for name in names:
        value = os.getenv(name)
        if value is None:
            continue
        text = value.strip()
        if text:
            return text
    return None


def _as_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return max(float(value), 0.0)
    except (TypeError, ValueError):
        return default


def _as_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return default


def _parse_allowed_origins(raw: str | None) -> List[str]:
    """Normalise comma-separated origins into values accepted by CORSMiddleware."""

    if not raw:
        return ["*"]

    cleaned: List[str] = []
    for origin in raw.split(","):
        value = origin.strip()
        if not value:
            continue
        if value == "*":
            return ["*"]

        parsed = urlparse(value)
        if parsed.scheme and parsed.netloc:
            normalised = f"{parsed.scheme}://{parsed.netloc}"
        else:
            normalised = value.rstrip("/")

        if normalised not in cleaned:
            cleaned.append(normalised)

    return cleaned or ["*"]


@dataclass(frozen=True)
class PrimaryConfig:
    """Multimodal generateContent endpoint ("Nano Banana")."""

    api_key: str | None = None
    api_url: str | None = None
    aspect_ratio: str = "3:4"

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_url)

    @classmethod
    def from_env(cls) -> "PrimaryConfig":
        return cls(
            api_key=_env("NANO_BANANA_API_KEY", "VITE_NANO_BANANA_API_KEY"),
            api_url=_env("NANO_BANANA_API_URL", "VITE_NANO_BANANA_API_URL"),
            aspect_ratio=_env("NANO_BANANA_ASPECT_RATIO") or "3:4",
        )


@dataclass(frozen=True)
class ArkConfig:
    api_key: str | None = None
    api_url: str = DEFAULT_ARK_API_URL
    model: str = DEFAULT_ARK_MODEL
    size: str = "2K"

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_url)

    @classmethod
    def from_env(cls) -> "ArkConfig":
        # VITE_NANO_BANANA_API_KEY 作为最后的兜底，沿用早期部署的变量名
        return cls(
            api_key=_env(
                "ARK_API_KEY",
                "VOLC_ARK_API_KEY",
                "VITE_ARK_API_KEY",
                "VITE_NANO_BANANA_API_KEY",
            ),
            api_url=_env("ARK_API_URL", "VOLC_ARK_API_URL") or DEFAULT_ARK_API_URL,
            model=_env("ARK_IMAGE_MODEL", "VOLC_IMAGE_MODEL") or DEFAULT_ARK_MODEL,
            size=_env("ARK_IMAGE_SIZE", "VOLC_IMAGE_SIZE") or "2K",
        )


@dataclass(frozen=True)
class Credentials:
    access_key: str | None = None
    secret_key: str | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.access_key and self.secret_key)

    def __repr__(self) -> str:
        # keep secrets out of tracebacks and debug logs
        masked = "***" if self.secret_key else None
        return f"Credentials(access_key={self.access_key!r}, secret_key={masked!r})"


@dataclass(frozen=True)
class JimengConfig:
    """Signed async-task provider (Volcengine visual API)."""

    credentials: Credentials = field(default_factory=Credentials)
    host: str = DEFAULT_JIMENG_HOST
    region: str = "cn-north-1"
    service: str = "cv"
    poll_interval: float = 1.2
    max_attempts: int = 20

    @property
    def is_configured(self) -> bool:
        return self.credentials.is_configured

    @property
    def endpoint(self) -> str:
        return f"https://{self.host}/"

    @classmethod
    def from_env(cls) -> "JimengConfig":
        credentials = Credentials(
            access_key=_env("JIMENG_ACCESS_KEY", "VOLC_ACCESS_KEY", "VITE_JIMENG_ACCESS_KEY"),
            secret_key=_env("JIMENG_SECRET_KEY", "VOLC_SECRET_KEY", "VITE_JIMENG_SECRET_KEY"),
        )
        return cls(
            credentials=credentials,
            host=_env("JIMENG_HOST", "VOLC_HOST") or DEFAULT_JIMENG_HOST,
            region=_env("JIMENG_REGION", "VOLC_REGION") or "cn-north-1",
            service=_env("JIMENG_SERVICE", "VOLC_SERVICE") or "cv",
            poll_interval=_as_float(_env("JIMENG_POLL_INTERVAL"), 1.2),
            max_attempts=max(_as_int(_env("JIMENG_POLL_ATTEMPTS"), 20), 1),
        )


@dataclass(frozen=True)
class DeepSeekConfig:
    api_key: str | None = None
    base_url: str = DEFAULT_DEEPSEEK_BASE_URL
    model: str = "deepseek-chat"

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls) -> "DeepSeekConfig":
        return cls(
            api_key=_env("DEEPSEEK_API_KEY", "VITE_DEEPSEEK_API_KEY"),
            base_url=_env("DEEPSEEK_BASE_URL") or DEFAULT_DEEPSEEK_BASE_URL,
            model=_env("DEEPSEEK_MODEL") or "deepseek-chat",
        )


@dataclass(frozen=True)
class Settings:
    environment: str
    allowed_origins: List[str]
    http_timeout: float
    max_json_bytes: int
    log_level: str
    primary: PrimaryConfig
    ark: ArkConfig
    jimeng: JimengConfig
    deepseek: DeepSeekConfig


def load_settings() -> Settings:
    """Assemble a fresh Settings object from the process environment."""

    return Settings(
        environment=_env("ENVIRONMENT") or "development",
        allowed_origins=_parse_allowed_origins(_env("ALLOWED_ORIGINS", "CORS_ALLOW_ORIGINS")),
        http_timeout=_as_float(_env("HTTP_TIMEOUT_SECONDS"), 60.0) or 60.0,
        max_json_bytes=_as_int(_env("MAX_JSON_BYTES"), 200_000),
        log_level=(_env("LOG_LEVEL") or "INFO").upper(),
        primary=PrimaryConfig.from_env(),
        ark=ArkConfig.from_env(),
        jimeng=JimengConfig.from_env(),
        deepseek=DeepSeekConfig.from_env(),
    )


@lru_cache()
def get_settings() -> Settings:
    return load_settings()
