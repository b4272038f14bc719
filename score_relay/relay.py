import logging
from contextlib import aclosing

from score_relay.adapter.gradio import GradioClient
from score_relay.errors import PARSE_FAILED, ResultParseError
from score_relay.schemas import UploadedImage
from score_relay.sse import extract_prediction

logger = logging.getLogger("score_relay.relay")


async def run_prediction(image: UploadedImage, client: GradioClient) -> int | float | str:
    """Upload the image, submit a job for it and read back the score.

    Each step depends on the previous one; the first failure propagates and
    nothing is retried.
    """
    file_path = await client.upload(image)
    event_id = await client.submit(file_path)

    async with aclosing(client.stream_events(event_id)) as events:
        async for event in events:
            if event.event == "complete":
                prediction = extract_prediction(event)
                logger.info("prediction_complete", extra={"event_id": event_id})
                return prediction
            if event.event == "error":
                logger.error(
                    "prediction_error_event",
                    extra={"event_id": event_id, "upstream_body": event.data[:2000]},
                )
                break

    raise ResultParseError(PARSE_FAILED)
