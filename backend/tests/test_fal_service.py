"""
Tests for the fal queue client.
"""

import json
import time

import httpx
import pytest

from promptreel.exceptions import ExternalApiError
from promptreel.services.fal_service import FalVideoClient, KlingInput, parse_result

MODEL = "fal-ai/kling-video/v2/master/text-to-video"
BASE = "https://queue.fal.run"
STATUS_URL = f"{BASE}/fal-ai/kling-video/requests/req-1/status"
RESPONSE_URL = f"{BASE}/fal-ai/kling-video/requests/req-1"


def make_transport(statuses, output=None, seen=None):
    """Serve a submit, the given status sequence, then the output."""
    statuses = list(statuses)
    output = output if output is not None else {"video": {"url": "https://cdn.fal/out.mp4"}}

    def handler(request):
        if seen is not None:
            seen.append(request)
        url = str(request.url)
        if request.method == "POST" and url == f"{BASE}/{MODEL}":
            return httpx.Response(
                200,
                json={"request_id": "req-1", "status_url": STATUS_URL, "response_url": RESPONSE_URL},
            )
        if url.startswith(STATUS_URL):
            status = statuses.pop(0) if len(statuses) > 1 else statuses[0]
            return httpx.Response(200, json=status)
        if url == RESPONSE_URL:
            return httpx.Response(200, json=output)
        return httpx.Response(404, json={"detail": "not found"})

    return httpx.MockTransport(handler)


def make_client(transport, **kwargs):
    return FalVideoClient(
        api_key="fal-test-key",
        http_client=httpx.Client(transport=transport),
        sleep=lambda seconds: None,
        **kwargs,
    )


def test_requires_api_key():
    with pytest.raises(ValueError):
        FalVideoClient(api_key=None)


def test_subscribe_polls_until_completed():
    seen = []
    transport = make_transport(
        [
            {"status": "IN_QUEUE", "queue_position": 1},
            {"status": "IN_PROGRESS", "logs": [{"message": "Rendering"}]},
            {"status": "COMPLETED"},
        ],
        seen=seen,
    )
    updates = []
    client = make_client(transport)

    result = client.subscribe(KlingInput(prompt="A red fox in the snow"), on_queue_update=updates.append)

    assert result.request_id == "req-1"
    assert result.data.video.url == "https://cdn.fal/out.mp4"
    assert [u.status for u in updates] == ["IN_QUEUE", "IN_PROGRESS", "COMPLETED"]
    assert updates[0].queue_position == 1
    assert updates[1].logs[0].message == "Rendering"
    assert seen[0].headers["Authorization"] == "Key fal-test-key"


def test_submission_body_uses_model_parameters():
    seen = []
    client = make_client(make_transport([{"status": "COMPLETED"}], seen=seen))

    client.subscribe(KlingInput(prompt="A red fox in the snow", duration="10", aspect_ratio="1:1"))

    body = json.loads(seen[0].content)
    assert body == {
        "prompt": "A red fox in the snow",
        "duration": "10",
        "aspect_ratio": "1:1",
        "negative_prompt": "blur, distort, and low quality",
        "cfg_scale": 0.5,
    }


def test_missing_video_url_is_rejected():
    client = make_client(make_transport([{"status": "COMPLETED"}], output={"video": {}}))

    with pytest.raises(ExternalApiError) as exc_info:
        client.subscribe(KlingInput(prompt="A red fox in the snow"))

    assert exc_info.value.message == "No video URL returned from Fal.ai"
    assert exc_info.value.request_id == "req-1"


def test_empty_video_url_is_rejected():
    with pytest.raises(ExternalApiError):
        parse_result("req-1", {"video": {"url": ""}})


def test_unexpected_status_raises():
    client = make_client(make_transport([{"status": "FAILED"}]))

    with pytest.raises(ExternalApiError) as exc_info:
        client.subscribe(KlingInput(prompt="A red fox in the snow"))

    assert "FAILED" in exc_info.value.message


def test_submission_http_error():
    def handler(request):
        return httpx.Response(401, json={"detail": "Unauthorized"})

    client = make_client(httpx.MockTransport(handler))

    with pytest.raises(ExternalApiError) as exc_info:
        client.subscribe(KlingInput(prompt="A red fox in the snow"))

    assert "submission failed" in exc_info.value.message


def test_max_wait_gives_up():
    client = FalVideoClient(
        api_key="fal-test-key",
        http_client=httpx.Client(transport=make_transport([{"status": "IN_QUEUE"}])),
        sleep=lambda seconds: time.sleep(0.01),
        max_wait_seconds=0.005,
    )

    with pytest.raises(ExternalApiError) as exc_info:
        client.subscribe(KlingInput(prompt="A red fox in the snow"))

    assert "did not finish" in exc_info.value.message
