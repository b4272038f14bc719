import os
from dataclasses import dataclass, field

# Keep tests deterministic and offline-safe.
os.environ["INFERENCE_BASE_URL"] = "https://space.test"
os.environ["INFERENCE_API_NAME"] = "predict"
os.environ["LOG_JSON"] = "false"
os.environ["ENABLE_METRICS"] = "true"
os.environ["SNIFF_IMAGE_SIGNATURE"] = "false"
os.environ["CORS_ORIGINS"] = ""

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from score_relay.adapter.gradio import GradioClient  # noqa: E402
from score_relay.main import app, get_inference_client  # noqa: E402


@dataclass
class FakeSpace:
    """In-memory stand-in for the hosted Gradio app."""

    upload_status: int = 200
    upload_body: object = field(default_factory=lambda: ["/tmp/abc.jpg"])
    submit_status: int = 200
    submit_body: object | None = None
    next_event_id: int = 42
    result_status: int = 200
    result_text: str = "event: complete\ndata: [7.8]\n"
    requests: list[httpx.Request] = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path == "/gradio_api/upload":
            return httpx.Response(self.upload_status, json=self.upload_body)
        if request.method == "POST" and path == "/gradio_api/call/predict":
            if self.submit_body is not None:
                return httpx.Response(self.submit_status, json=self.submit_body)
            event_id = str(self.next_event_id)
            self.next_event_id += 1
            return httpx.Response(self.submit_status, json={"event_id": event_id})
        if request.method == "GET" and path.startswith("/gradio_api/call/predict/"):
            return httpx.Response(
                self.result_status,
                text=self.result_text,
                headers={"content-type": "text/event-stream"},
            )
        return httpx.Response(404, json={"detail": "Not Found"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str, prefix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.startswith(prefix)]


@pytest.fixture
def fake_space() -> FakeSpace:
    return FakeSpace()


@pytest.fixture
def client(fake_space: FakeSpace):
    async def _gradio_override():
        async with GradioClient("https://space.test", transport=fake_space.transport()) as gradio:
            yield gradio

    app.dependency_overrides[get_inference_client] = _gradio_override
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
