"""Portrait generation: primary provider, fallback chain, degraded public URL.

State machine for one user action::

    PRIMARY --ok--------------------------------------------> done
    PRIMARY --retryable (429/401/403/5xx/network)--> FALLBACK
    PRIMARY --anything else---------------------------------> raised
    FALLBACK --ok-------------------------------------------> done
    FALLBACK --any error--> next FALLBACK step ... --> DEGRADED --> done
"""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence

import httpx

from quotecard.config import Settings
from quotecard.errors import ConfigError, error_summary, is_retryable
from quotecard.schemas import Attempt, GenerationRequest, PortraitResult
from quotecard.services.image_provider.base import ImageAdapter
from quotecard.services.image_provider.factory import build_fallbacks, build_primary
from quotecard.services.image_provider.public import PublicImageFallback
from quotecard.services.jimeng import Sleep

logger = logging.getLogger(__name__)

Classifier = Callable[[BaseException], bool]


class PortraitState(str, enum.Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"
    DEGRADED = "degraded"


def _always(_exc: BaseException) -> bool:
    return True


@dataclass(frozen=True)
class ChainStep:
    adapter: ImageAdapter
    state: PortraitState
    falls_through: Classifier


class PortraitOrchestrator:
    def __init__(
        self,
        primary: ImageAdapter,
        fallbacks: Iterable[ImageAdapter] = (),
        degraded: Optional[PublicImageFallback] = None,
        *,
        classifier: Classifier = is_retryable,
    ) -> None:
        self.degraded = degraded or PublicImageFallback()
        self.steps: List[ChainStep] = [ChainStep(primary, PortraitState.PRIMARY, classifier)]
        self.steps.extend(
            ChainStep(adapter, PortraitState.FALLBACK, _always) for adapter in fallbacks
        )

    @property
    def chain(self) -> Sequence[str]:
        return [step.adapter.name for step in self.steps] + [self.degraded.name]

    async def generate(self, request: GenerationRequest) -> PortraitResult:
        attempts: List[Attempt] = []

        for step in self.steps:
            name = step.adapter.name
            try:
                result = await step.adapter.generate(request.prompt, request.options)
            except ConfigError:
                if step.state is PortraitState.PRIMARY:
                    raise
                logger.warning("[portrait.%s] provider=%s not configured", step.state.value, name)
                attempts.append(Attempt(provider=name, error="ConfigError"))
                continue
            except Exception as exc:
                if not step.falls_through(exc):
                    logger.info(
                        "[portrait.%s] provider=%s terminal error=%s",
                        step.state.value,
                        name,
                        error_summary(exc),
                    )
                    raise
                logger.warning(
                    "[portrait.%s] provider=%s failed, moving on: %s",
                    step.state.value,
                    name,
                    error_summary(exc),
                )
                attempts.append(Attempt(provider=name, error=error_summary(exc)))
                continue

            logger.info(
                "[portrait.%s] provider=%s kind=%s after %s failed attempt(s)",
                step.state.value,
                name,
                result.kind,
                len(attempts),
            )
            return PortraitResult(
                result=result, provider=name, state=step.state.value, attempts=attempts
            )

        result = await self.degraded.generate(request.prompt, request.options)
        logger.warning(
            "[portrait.degraded] every provider failed (%s), using public image url",
            ", ".join(attempt.provider for attempt in attempts),
        )
        return PortraitResult(
            result=result,
            provider=self.degraded.name,
            state=PortraitState.DEGRADED.value,
            attempts=attempts,
        )


def build_orchestrator(
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    *,
    sleep: Sleep = asyncio.sleep,
) -> PortraitOrchestrator:
    return PortraitOrchestrator(
        build_primary(settings, client),
        build_fallbacks(settings, client, sleep=sleep),
    )
