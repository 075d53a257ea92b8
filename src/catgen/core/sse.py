"""Server-sent-event framing for the streaming backstory.

Wire format
-----------
Each event is a block of ``field: value`` lines terminated by a blank line::

    event: text
    data: {"text": "Once upon a time"}

The backstory stream uses four event types:

=========  ==========================  ===================================
Event      Payload                     Meaning
=========  ==========================  ===================================
``start``  ``{}``                      Stream established, reset the text
``text``   ``{"text": "<fragment>"}``  Next piece of the backstory
``done``   ``{}``                      Backstory complete (terminal)
``error``  ``{"message": "..."}``      Stream aborted (terminal)
=========  ==========================  ===================================

The server side only needs :func:`encode_event`.  The client side uses
:class:`SSEDecoder`, a small state machine that is fed raw chunks exactly as
they come off the socket::

    accumulate -> find blank line -> split fields -> emit event -> repeat

The decoder never assumes anything about chunk boundaries: an event, a line,
or even a multi-byte UTF-8 character may be split across reads.  Once a
terminal event has been decoded the decoder closes and ignores everything
that follows.
"""

from __future__ import annotations

import codecs
import json
import re
from dataclasses import dataclass
from typing import Any

START = "start"
TEXT = "text"
DONE = "done"
ERROR = "error"

TERMINAL_EVENTS = frozenset({DONE, ERROR})

# Blank line between events.  CRLF and bare CR line endings are normalised to
# LF before searching, so a single pattern is enough.
_EVENT_DELIMITER = "\n\n"
_LINE_ENDINGS = re.compile(r"\r\n?")


def encode_event(event: str, data: Any) -> str:
    """Frame one event for a ``text/event-stream`` body.

    Args:
        event: Event type (``start``, ``text``, ``done``, ``error``).
        data: JSON-serialisable payload.

    Returns:
        The framed event, including the terminating blank line.
    """
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


@dataclass(frozen=True)
class ServerSentEvent:
    """A decoded event.

    Attributes:
        event: Event type, ``"message"`` when the block carries no ``event:``
            field.
        data: The decoded JSON payload, or the raw string when the payload is
            not JSON.  ``None`` when the block has no ``data:`` line.
    """

    event: str
    data: Any = None

    @property
    def is_terminal(self) -> bool:
        return self.event in TERMINAL_EVENTS


def parse_event_block(block: str) -> ServerSentEvent | None:
    """Parse the lines of one event block.

    Returns ``None`` for blocks holding only comments or unknown fields.
    """
    event_type: str | None = None
    data_lines: list[str] = []

    for line in block.split("\n"):
        if not line or line.startswith(":"):
            continue
        field, sep, value = line.partition(":")
        if not sep:
            value = ""
        elif value.startswith(" "):
            value = value[1:]

        if field == "event":
            event_type = value
        elif field == "data":
            data_lines.append(value)

    if event_type is None and not data_lines:
        return None

    data: Any = None
    if data_lines:
        raw = "\n".join(data_lines)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            data = raw

    return ServerSentEvent(event=event_type or "message", data=data)


class SSEDecoder:
    """Incremental decoder for a ``text/event-stream`` body.

    Usage::

        decoder = SSEDecoder()
        for chunk in response.iter_bytes():
            for event in decoder.feed(chunk):
                handle(event)
            if decoder.closed:
                break
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._pending_cr = False
        self._utf8 = codecs.getincrementaldecoder("utf-8")()
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether a terminal event has been decoded."""
        return self._closed

    @property
    def buffered(self) -> str:
        """Text received but not yet terminated by a blank line."""
        return self._buffer

    def feed(self, chunk: bytes | str) -> list[ServerSentEvent]:
        """Append *chunk* and return every event it completes.

        After a terminal event the decoder closes: events behind it in the
        same chunk are dropped and later calls return an empty list.
        """
        if self._closed:
            return []

        text = self._utf8.decode(chunk) if isinstance(chunk, bytes) else chunk
        self._append(text)

        events: list[ServerSentEvent] = []
        while True:
            index = self._buffer.find(_EVENT_DELIMITER)
            if index == -1:
                break
            block = self._buffer[:index]
            self._buffer = self._buffer[index + len(_EVENT_DELIMITER) :]

            event = parse_event_block(block)
            if event is None:
                continue
            events.append(event)
            if event.is_terminal:
                self._close()
                break
        return events

    def _append(self, text: str) -> None:
        # A "\r" at the end of a chunk may be the first half of "\r\n", so it
        # is held back until the next chunk shows what follows it.
        if self._pending_cr:
            text = "\r" + text
            self._pending_cr = False
        if text.endswith("\r"):
            text = text[:-1]
            self._pending_cr = True
        self._buffer += _LINE_ENDINGS.sub("\n", text)

    def _close(self) -> None:
        self._closed = True
        self._buffer = ""
        self._pending_cr = False


class BackstoryAccumulator:
    """Folds backstory events into the text shown to the user.

    Attributes:
        text: Backstory assembled so far.
        started: Whether a ``start`` event has been seen.
        finished: Whether the stream ended with ``done``.
        error: Error message carried by an ``error`` event, if any.
    """

    def __init__(self) -> None:
        self.text = ""
        self.started = False
        self.finished = False
        self.error: str | None = None

    @property
    def terminated(self) -> bool:
        return self.finished or self.error is not None

    def apply(self, event: ServerSentEvent) -> str | None:
        """Update state from *event*.

        Returns:
            The text fragment appended by a ``text`` event, otherwise ``None``.
        """
        if event.event == START:
            self.text = ""
            self.started = True
        elif event.event == TEXT:
            fragment = _fragment(event.data)
            if fragment:
                self.text += fragment
                return fragment
        elif event.event == DONE:
            self.finished = True
        elif event.event == ERROR:
            message = event.data.get("message") if isinstance(event.data, dict) else event.data
            self.error = str(message or "Stream error")
        return None


def _fragment(data: Any) -> str:
    if isinstance(data, dict):
        value = data.get("text")
        return value if isinstance(value, str) else ""
    if isinstance(data, str):
        return data
    return ""
