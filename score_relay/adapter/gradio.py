import logging
import uuid
from collections.abc import AsyncIterator

import httpx

from score_relay.errors import RESULT_FAILED, SUBMIT_FAILED, UPLOAD_FAILED, UpstreamError
from score_relay.observability import metrics_registry
from score_relay.schemas import UploadedImage
from score_relay.sse import EventStreamParser, ServerSentEvent

logger = logging.getLogger("score_relay.gradio")

_MAX_LOGGED_BODY = 2000


class GradioClient:
    """Talks to the upload / call / result endpoints of a hosted Gradio app.

    Use as an async context manager; one underlying ``httpx.AsyncClient`` is
    opened for the lifetime of the block.
    """

    def __init__(
        self,
        base_url: str,
        api_name: str = "predict",
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_name = api_name
        self.timeout_s = timeout_s
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "GradioClient":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_s,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("GradioClient must be used inside 'async with'")
        return self._client

    async def upload(self, image: UploadedImage) -> str:
        upload_id = str(uuid.uuid4())
        try:
            response = await self.client.post(
                "/gradio_api/upload",
                params={"upload_id": upload_id},
                files={"files": (image.filename, image.content, image.content_type)},
            )
        except httpx.HTTPError as exc:
            metrics_registry.record_upstream("upload", None)
            logger.error("upload_request_failed", extra={"upload_id": upload_id, "error": str(exc)})
            raise UpstreamError(UPLOAD_FAILED) from exc

        metrics_registry.record_upstream("upload", response.status_code)
        if response.is_error:
            _log_upstream_failure("upload_rejected", response, upload_id=upload_id)
            raise UpstreamError(UPLOAD_FAILED)

        try:
            paths = response.json()
        except ValueError as exc:
            raise UpstreamError(UPLOAD_FAILED) from exc
        if not isinstance(paths, list) or not paths or not isinstance(paths[0], str):
            _log_upstream_failure("upload_unexpected_body", response, upload_id=upload_id)
            raise UpstreamError(UPLOAD_FAILED)

        logger.info("upload_complete", extra={"upload_id": upload_id})
        return paths[0]

    async def submit(self, file_path: str) -> str:
        try:
            response = await self.client.post(
                f"/gradio_api/call/{self.api_name}",
                json={"data": [{"path": file_path}]},
            )
        except httpx.HTTPError as exc:
            metrics_registry.record_upstream("submit", None)
            logger.error("submit_request_failed", extra={"error": str(exc)})
            raise UpstreamError(SUBMIT_FAILED) from exc

        metrics_registry.record_upstream("submit", response.status_code)
        if response.is_error:
            _log_upstream_failure("submit_rejected", response)
            raise UpstreamError(SUBMIT_FAILED)

        try:
            event_id = response.json().get("event_id")
        except (ValueError, AttributeError) as exc:
            raise UpstreamError(SUBMIT_FAILED) from exc
        if not event_id:
            _log_upstream_failure("submit_missing_event_id", response)
            raise UpstreamError(SUBMIT_FAILED)

        logger.info("submit_complete", extra={"event_id": str(event_id)})
        return str(event_id)

    async def stream_events(self, event_id: str) -> AsyncIterator[ServerSentEvent]:
        parser = EventStreamParser()
        try:
            async with self.client.stream(
                "GET", f"/gradio_api/call/{self.api_name}/{event_id}"
            ) as response:
                metrics_registry.record_upstream("result", response.status_code)
                if response.is_error:
                    await response.aread()
                    _log_upstream_failure("result_rejected", response, event_id=event_id)
                    raise UpstreamError(RESULT_FAILED)

                async for line in response.aiter_lines():
                    event = parser.feed_line(line)
                    if event is not None:
                        yield event
        except httpx.HTTPError as exc:
            metrics_registry.record_upstream("result", None)
            logger.error("result_request_failed", extra={"event_id": event_id, "error": str(exc)})
            raise UpstreamError(RESULT_FAILED) from exc

        tail = parser.flush()
        if tail is not None:
            yield tail


def _log_upstream_failure(message: str, response: httpx.Response, **extra: str) -> None:
    logger.error(
        message,
        extra={
            "upstream_status": response.status_code,
            "upstream_body": response.text[:_MAX_LOGGED_BODY],
            **extra,
        },
    )
