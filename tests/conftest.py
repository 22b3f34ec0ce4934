from __future__ import annotations

from typing import Any, Callable

import pytest

from quotecard.config import (
    ArkConfig,
    Credentials,
    DeepSeekConfig,
    JimengConfig,
    PrimaryConfig,
    Settings,
)

PRIMARY_URL = "https://primary.test/v1beta/models/image:generateContent"
# 1x1 transparent PNG
PNG_B64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


def build_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "environment": "test",
        "allowed_origins": ["*"],
        "http_timeout": 5.0,
        "max_json_bytes": 200_000,
        "log_level": "INFO",
        "primary": PrimaryConfig(api_key="primary-key", api_url=PRIMARY_URL),
        "ark": ArkConfig(),
        "jimeng": JimengConfig(
            credentials=Credentials(access_key="AKTEST", secret_key="SKTEST"),
            poll_interval=0.0,
        ),
        "deepseek": DeepSeekConfig(),
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    return build_settings


@pytest.fixture
def png_b64() -> str:
    return PNG_B64


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()
