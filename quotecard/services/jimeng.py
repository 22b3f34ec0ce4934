"""Submit/poll client for the Jimeng text-to-image async task API."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import httpx

from quotecard.config import JimengConfig
from quotecard.errors import ProtocolError, TaskFailedError, TaskTimeoutError, UpstreamError
from quotecard.schemas import AsyncTask, SignedEnvelope, TaskResult, TaskStatus
from quotecard.services.http import post
from quotecard.services.signer import Signer, build_query

logger = logging.getLogger(__name__)

REQ_KEY = "jimeng_t2i_v40"
API_VERSION = "2022-08-31"
SUBMIT_QUERY = {"Action": "CVSync2AsyncSubmitTask", "Version": API_VERSION}
RESULT_QUERY = {"Action": "CVSync2AsyncGetResult", "Version": API_VERSION}

# 3:4 portrait at 1728x2304
DEFAULT_TASK_PARAMS: Dict[str, Any] = {
    "force_single": True,
    "width": 1728,
    "height": 2304,
    "scale": 0.5,
}

# caller keys forwarded into the submit body
TASK_PARAM_KEYS = frozenset(
    {
        "force_single",
        "width",
        "height",
        "scale",
        "seed",
        "size",
        "min_ratio",
        "max_ratio",
        "image_urls",
        "binary_data_base64",
    }
)

Sleep = Callable[[float], Awaitable[Any]]


def _dumps(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def _parse_json(text: str) -> dict[str, Any]:
    if not text:
        return {}
    try:
        data = json.loads(text)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _first(value: Any) -> Optional[str]:
    if isinstance(value, list) and value:
        item = value[0]
        return item if isinstance(item, str) and item else None
    return None


class JimengTaskClient:
    """Signs, submits and polls one generation task at a time.

    Every request (submit and each poll) gets a freshly computed signature.
    The client keeps no state between tasks apart from the diagnostic
    envelopes of the latest calls.
    """

    name = "jimeng"

    def __init__(
        self,
        config: JimengConfig,
        *,
        client: httpx.AsyncClient | None = None,
        signer: Signer | None = None,
        sleep: Sleep = asyncio.sleep,
        timeout: float = 60.0,
        return_url: bool = False,
    ) -> None:
        self.config = config
        self.signer = signer or Signer.from_config(config)
        self._client = client
        self._sleep = sleep
        self._timeout = timeout
        self.return_url = return_url
        self.last_envelopes: Dict[str, SignedEnvelope] = {}

    async def _post(self, body: str, query: Mapping[str, str], label: str) -> httpx.Response:
        envelope = self.signer.sign(body, query)
        self.last_envelopes[label] = envelope
        return await post(
            self._client,
            f"{self.config.endpoint}?{build_query(query)}",
            timeout=self._timeout,
            provider=f"{self.name} {label}",
            content=body.encode("utf-8"),
            headers=envelope.headers(),
        )

    async def submit(self, prompt: str, params: Mapping[str, Any] | None = None) -> AsyncTask:
        payload: Dict[str, Any] = {"req_key": REQ_KEY, "prompt": prompt, **DEFAULT_TASK_PARAMS}
        if params:
            payload.update({k: v for k, v in params.items() if k in TASK_PARAM_KEYS})
        response = await self._post(_dumps(payload), SUBMIT_QUERY, "submit")
        if not response.is_success:
            raise UpstreamError(response.status_code, response.text, provider=self.name)

        data = _parse_json(response.text).get("data") or {}
        task_id = data.get("task_id") if isinstance(data, dict) else None
        if not task_id:
            raise ProtocolError(f"Missing task_id: {response.text[:300]}")

        logger.info("[jimeng.submit] task_id=%s prompt_len=%s", task_id, len(prompt))
        return AsyncTask(task_id=str(task_id))

    async def poll(self, task: AsyncTask) -> TaskResult | None:
        """Run one status check; ``None`` means the task is still pending."""

        payload = {
            "req_key": REQ_KEY,
            "task_id": task.task_id,
            "req_json": _dumps({"return_url": self.return_url}),
        }
        response = await self._post(_dumps(payload), RESULT_QUERY, "poll")
        task.attempts += 1

        if not response.is_success:
            # error bodies carry no data.status, so the task stays pending
            logger.warning(
                "[jimeng.poll] task_id=%s attempt=%s status=%s body=%s",
                task.task_id,
                task.attempts,
                response.status_code,
                response.text[:200],
            )
            return None

        data = _parse_json(response.text).get("data")
        if not isinstance(data, dict):
            data = {}
        task.status = TaskStatus.parse(data.get("status"))

        if task.status is TaskStatus.DONE:
            result = TaskResult(
                image_base64=_first(data.get("binary_data_base64")),
                image_url=_first(data.get("image_urls")),
            )
            if not (result.image_base64 or result.image_url):
                raise ProtocolError("empty result")
            return result
        if task.status.is_terminal:
            raise TaskFailedError(task.status.value, response.text)
        return None

    async def wait(self, task: AsyncTask) -> TaskResult:
        max_attempts = self.config.max_attempts
        for attempt in range(1, max_attempts + 1):
            result = await self.poll(task)
            if result is not None:
                logger.info(
                    "[jimeng.poll] task_id=%s done after %s attempt(s)", task.task_id, attempt
                )
                return result
            if attempt < max_attempts:
                await self._sleep(self.config.poll_interval)

        logger.warning("[jimeng.poll] task_id=%s timed out after %s attempts", task.task_id, max_attempts)
        raise TaskTimeoutError(task.task_id, max_attempts)

    async def run(self, prompt: str, params: Mapping[str, Any] | None = None) -> TaskResult:
        task = await self.submit(prompt, params)
        return await self.wait(task)

    def diagnostics(self) -> Dict[str, Dict[str, str]]:
        return {label: envelope.diagnostics() for label, envelope in self.last_envelopes.items()}
