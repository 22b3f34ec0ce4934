from __future__ import annotations

from typing import Any, Mapping, Optional

from quotecard.schemas import ProviderResult
from quotecard.services.jimeng import JimengTaskClient


class JimengImageAdapter:
    """Runs the signed submit/poll cycle and prefers base64 over URL."""

    name = "jimeng"

    def __init__(self, task_client: JimengTaskClient) -> None:
        self.task_client = task_client

    async def generate(
        self, prompt: str, options: Optional[Mapping[str, Any]] = None
    ) -> ProviderResult:
        result = await self.task_client.run(prompt, options)
        return result.to_provider_result()
