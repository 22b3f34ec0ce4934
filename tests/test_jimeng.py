from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List

import httpx
import pytest

from quotecard.config import Credentials, JimengConfig
from quotecard.errors import ProtocolError, TaskFailedError, TaskTimeoutError, UpstreamError
from quotecard.services.image_provider import JimengImageAdapter
from quotecard.services.jimeng import REQ_KEY, JimengTaskClient
from quotecard.services.signer import Signer

CONFIG = JimengConfig(
    credentials=Credentials(access_key="AKTEST", secret_key="SKTEST"),
    host="visual.test",
    poll_interval=1.2,
)


def _json(status: int, payload: Any) -> httpx.Response:
    return httpx.Response(status, json=payload)


def _pending() -> httpx.Response:
    return _json(200, {"code": 10000, "data": {"status": "generating"}})


def _submitted(task_id: str = "task-1") -> httpx.Response:
    return _json(200, {"code": 10000, "data": {"task_id": task_id}})


class TickingClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(seconds=1)
        return current


class Recorder:
    """Dispatch on the ``Action`` query parameter and remember each request."""

    def __init__(self, submit: Callable[[], httpx.Response], polls: List[httpx.Response]) -> None:
        self.submit = submit
        self.polls = list(polls)
        self.requests: List[httpx.Request] = []

    @property
    def poll_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.params["Action"] == "CVSync2AsyncGetResult"]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.params["Action"] == "CVSync2AsyncSubmitTask":
            return self.submit()
        template = self.polls.pop(0) if len(self.polls) > 1 else self.polls[0]
        return httpx.Response(template.status_code, headers=template.headers, content=template.content)


def run_task(
    recorder: Recorder,
    sleep: Callable[[float], Any],
    *,
    prompt: str = "Ada Lovelace",
    params: dict | None = None,
    config: JimengConfig = CONFIG,
):
    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as client:
            task_client = JimengTaskClient(
                config,
                client=client,
                signer=Signer.from_config(config, clock=TickingClock()),
                sleep=sleep,
            )
            return await task_client.run(prompt, params)

    return asyncio.run(_run())


def test_submit_sends_signed_json_body(sleep_recorder) -> None:
    recorder = Recorder(_submitted, [_json(200, {"data": {"status": "done", "image_urls": ["https://img/1.png"]}})])

    run_task(recorder, sleep_recorder, params={"width": 1024, "prompt": "ignored", "seed": 7})

    submit = recorder.requests[0]
    assert submit.method == "POST"
    assert submit.url.host == "visual.test"
    assert submit.url.params["Version"] == "2022-08-31"
    assert submit.headers["Authorization"].startswith("HMAC-SHA256 Credential=AKTEST/20240102/")
    assert submit.headers["X-Date"] == "20240102T030405Z"
    body = json.loads(submit.content)
    assert body["req_key"] == REQ_KEY
    assert body["prompt"] == "Ada Lovelace"
    assert body["width"] == 1024
    assert body["height"] == 2304
    assert body["seed"] == 7
    assert body["force_single"] is True


def test_poll_returns_url_after_pending_attempts(sleep_recorder) -> None:
    recorder = Recorder(
        _submitted,
        [
            _pending(),
            _pending(),
            _json(200, {"data": {"status": "done", "image_urls": ["https://img/final.png"]}}),
        ],
    )

    result = run_task(recorder, sleep_recorder)

    assert result.image_url == "https://img/final.png"
    assert result.image_base64 is None
    assert len(recorder.poll_requests) == 3
    assert sleep_recorder.calls == [1.2, 1.2]

    poll_body = json.loads(recorder.poll_requests[0].content)
    assert poll_body["task_id"] == "task-1"
    assert json.loads(poll_body["req_json"]) == {"return_url": False}


def test_each_poll_is_signed_with_a_fresh_timestamp(sleep_recorder) -> None:
    recorder = Recorder(
        _submitted,
        [_pending(), _json(200, {"data": {"status": "done", "binary_data_base64": ["aGk="]}})],
    )

    result = run_task(recorder, sleep_recorder)

    assert result.image_base64 == "aGk="
    dates = [r.headers["X-Date"] for r in recorder.requests]
    assert len(set(dates)) == len(dates) == 3
    signatures = {r.headers["Authorization"] for r in recorder.requests}
    assert len(signatures) == 3


def test_base64_takes_precedence_over_url(sleep_recorder) -> None:
    recorder = Recorder(
        _submitted,
        [
            _json(
                200,
                {
                    "data": {
                        "status": "done",
                        "binary_data_base64": ["aGk="],
                        "image_urls": ["https://img/ignored.png"],
                    }
                },
            )
        ],
    )

    result = run_task(recorder, sleep_recorder)

    assert result.to_provider_result().kind == "base64"
    assert result.to_provider_result().data == b"hi"


def test_always_pending_times_out_after_max_attempts(sleep_recorder) -> None:
    recorder = Recorder(_submitted, [_pending()])

    with pytest.raises(TaskTimeoutError) as excinfo:
        run_task(recorder, sleep_recorder)

    assert excinfo.value.attempts == 20
    assert len(recorder.poll_requests) == 20
    assert len(sleep_recorder.calls) == 19


def test_expired_task_fails(sleep_recorder) -> None:
    recorder = Recorder(_submitted, [_pending(), _json(200, {"data": {"status": "expired"}})])

    with pytest.raises(TaskFailedError) as excinfo:
        run_task(recorder, sleep_recorder)

    assert excinfo.value.status == "expired"
    assert len(recorder.poll_requests) == 2


def test_done_without_image_is_protocol_error(sleep_recorder) -> None:
    recorder = Recorder(_submitted, [_json(200, {"data": {"status": "done", "image_urls": []}})])

    with pytest.raises(ProtocolError):
        run_task(recorder, sleep_recorder)


def test_submit_without_task_id_is_protocol_error(sleep_recorder) -> None:
    recorder = Recorder(lambda: _json(200, {"code": 50400, "data": None}), [_pending()])

    with pytest.raises(ProtocolError):
        run_task(recorder, sleep_recorder)

    assert recorder.poll_requests == []


def test_submit_http_error_is_upstream_error(sleep_recorder) -> None:
    recorder = Recorder(lambda: _json(401, {"ResponseMetadata": {"Error": {"Code": "SignatureDoesNotMatch"}}}), [])

    with pytest.raises(UpstreamError) as excinfo:
        run_task(recorder, sleep_recorder)

    assert excinfo.value.status == 401
    assert "SignatureDoesNotMatch" in excinfo.value.body


def test_transient_poll_errors_count_as_pending(sleep_recorder) -> None:
    recorder = Recorder(
        _submitted,
        [
            httpx.Response(500, text="busy"),
            httpx.Response(429, text="slow down"),
            _json(200, {"data": {"status": "done", "image_urls": ["https://img/ok.png"]}}),
        ],
    )

    result = run_task(recorder, sleep_recorder)

    assert result.image_url == "https://img/ok.png"
    assert len(recorder.poll_requests) == 3


def test_poll_client_errors_keep_the_task_pending(sleep_recorder) -> None:
    recorder = Recorder(
        _submitted,
        [
            httpx.Response(401, text="denied"),
            httpx.Response(404, json={"ResponseMetadata": {"Error": {"Code": "NotFound"}}}),
            _json(200, {"data": {"status": "done", "image_urls": ["https://img/late.png"]}}),
        ],
    )

    result = run_task(recorder, sleep_recorder)

    assert result.image_url == "https://img/late.png"
    assert len(recorder.poll_requests) == 3
    assert sleep_recorder.calls == [1.2, 1.2]


def test_persistent_poll_errors_use_up_the_attempts(sleep_recorder) -> None:
    recorder = Recorder(_submitted, [httpx.Response(403, text="forbidden")])

    with pytest.raises(TaskTimeoutError):
        run_task(recorder, sleep_recorder)

    assert len(recorder.poll_requests) == 20


def test_diagnostics_cover_submit_and_poll(sleep_recorder) -> None:
    recorder = Recorder(_submitted, [_json(200, {"data": {"status": "done", "image_urls": ["u"]}})])

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as client:
            task_client = JimengTaskClient(CONFIG, client=client, sleep=sleep_recorder)
            await task_client.run("prompt")
            return task_client.diagnostics()

    diagnostics = asyncio.run(_run())

    assert set(diagnostics) == {"submit", "poll"}
    assert "SKTEST" not in json.dumps(diagnostics)
    assert diagnostics["poll"]["canonical_query"] == "Action=CVSync2AsyncGetResult&Version=2022-08-31"


def test_adapter_forwards_only_task_params(sleep_recorder) -> None:
    recorder = Recorder(_submitted, [_json(200, {"data": {"status": "done", "image_urls": ["u"]}})])

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as client:
            adapter = JimengImageAdapter(JimengTaskClient(CONFIG, client=client, sleep=sleep_recorder))
            return await adapter.generate(
                "Ada", {"aspect_ratio": "1:1", "watermark": False, "seed": 11, "req_key": "other"}
            )

    result = asyncio.run(_run())

    assert result.url == "u"
    body = json.loads(recorder.requests[0].content)
    assert body["seed"] == 11
    assert body["req_key"] == REQ_KEY
    assert "aspect_ratio" not in body
    assert "watermark" not in body
