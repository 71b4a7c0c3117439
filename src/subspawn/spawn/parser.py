"""Line stream parser — reassembles stdout chunks into JSONL events."""

from __future__ import annotations

import codecs

from pydantic import TypeAdapter, ValidationError

from subspawn.spawn.events import AgentEvent

_EVENT_ADAPTER: TypeAdapter[AgentEvent] = TypeAdapter(AgentEvent)


class OutputLimitExceeded(Exception):
    """The pending stdout buffer grew past its configured limit."""

    def __init__(self, limit: int, size: int) -> None:
        super().__init__(f"subagent output exceeded {limit} bytes")
        self.limit = limit
        self.size = size


def decode_event(line: str) -> AgentEvent | None:
    """Decode one line into an event, or ``None`` if it is not one.

    Blank lines, invalid JSON, non-object JSON and unknown ``type`` tags
    all return ``None``; this never raises.
    """
    if not line.strip():
        return None
    try:
        return _EVENT_ADAPTER.validate_json(line)
    except ValidationError:
        return None


class LineStreamParser:
    """Turns arbitrarily split stdout chunks into decoded events.

    Bytes are decoded incrementally so a multi-byte UTF-8 character split
    across two chunks is reassembled.  The trailing partial line is held
    until the next chunk (or :meth:`close`) completes it.
    """

    def __init__(self, max_buffer: int | None = None) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._max_buffer = max_buffer

    @property
    def pending_size(self) -> int:
        """Length of the partial line waiting for its newline."""
        return len(self._buffer)

    def feed(self, chunk: bytes | str) -> list[AgentEvent]:
        """Append *chunk* and return events for every completed line.

        Raises:
            OutputLimitExceeded: If the buffered text exceeds ``max_buffer``.
                The buffer is discarded and the chunk is not parsed.
        """
        text = chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        buffer = self._buffer + text
        if self._max_buffer is not None and len(buffer) > self._max_buffer:
            self._buffer = ""
            raise OutputLimitExceeded(self._max_buffer, len(buffer))

        *lines, self._buffer = buffer.split("\n")
        return self._decode_lines(lines)

    def close(self) -> list[AgentEvent]:
        """Flush the final unterminated line, if any."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return self._decode_lines([tail])

    @staticmethod
    def _decode_lines(lines: list[str]) -> list[AgentEvent]:
        events: list[AgentEvent] = []
        for line in lines:
            event = decode_event(line)
            if event is not None:
                events.append(event)
        return events
