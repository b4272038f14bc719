import json
import math
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from score_relay.errors import PARSE_FAILED, ResultParseError


@dataclass(frozen=True)
class ServerSentEvent:
    event: str = "message"
    data: str = ""
    id: str | None = None

    def json(self):
        return json.loads(self.data)


class EventStreamParser:
    """Incremental ``text/event-stream`` parser.

    Feed it one line at a time; a completed event is returned when a blank
    line closes it. Call ``flush`` once the stream ends so a trailing event
    without its blank line is not lost.
    """

    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self._event_name: str | None = None
        self._data_lines: list[str] = []
        self._last_id: str | None = None

    def feed_line(self, line: str) -> ServerSentEvent | None:
        line = line.rstrip("\r")
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event_name = value
        elif name == "data":
            self._data_lines.append(value)
        elif name == "id":
            self._last_id = value
        return None

    def flush(self) -> ServerSentEvent | None:
        return self._dispatch()

    def _dispatch(self) -> ServerSentEvent | None:
        if not self._data_lines:
            self._reset()
            return None
        event = ServerSentEvent(
            event=self._event_name or "message",
            data="\n".join(self._data_lines),
            id=self._last_id,
        )
        self._reset()
        return event


def iter_events(lines: Iterable[str]) -> Iterator[ServerSentEvent]:
    parser = EventStreamParser()
    for line in lines:
        event = parser.feed_line(line)
        if event is not None:
            yield event
    tail = parser.flush()
    if tail is not None:
        yield tail


def parse_event_stream(text: str) -> list[ServerSentEvent]:
    return list(iter_events(text.splitlines()))


def extract_prediction(event: ServerSentEvent) -> int | float | str:
    """Pull the scalar score out of a ``complete`` event.

    Gradio sends the outputs as a JSON array; the score is its first item.
    """
    try:
        payload = event.json()
    except ValueError as exc:
        raise ResultParseError(PARSE_FAILED) from exc

    if not isinstance(payload, list) or not payload:
        raise ResultParseError(PARSE_FAILED)

    value = payload[0]
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ResultParseError(PARSE_FAILED)
    if isinstance(value, float) and not math.isfinite(value):
        raise ResultParseError(PARSE_FAILED)
    return value
