"""Builders shared by the test modules."""

from __future__ import annotations

import json
from types import SimpleNamespace

RED = (255, 0, 0, 255)
GREEN = (0, 255, 0, 255)
BLUE = (0, 0, 255, 255)
WHITE = (255, 255, 255, 255)
BLACK = (0, 0, 0, 255)
YELLOW = (255, 255, 0, 255)

LONG_BACKSTORY = (
    "Whiskerpaws was found as a kitten in a bakery flour sack. At six months she "
    "chased the baker's mice out for good, and at one year she moved into the "
    "lighthouse where she now keeps watch over the harbor every night."
)


def json_completion(payload) -> SimpleNamespace:
    """Build a chat-completion response whose message content is *payload* as JSON."""
    content = payload if isinstance(payload, str) else json.dumps(payload)
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def stream_chunks(texts: list[str], finish_reason: str | None = "stop") -> list[SimpleNamespace]:
    """Build streamed completion chunks, one per text, ending with *finish_reason*."""
    chunks = [
        SimpleNamespace(
            choices=[SimpleNamespace(delta=SimpleNamespace(content=t), finish_reason=None)]
        )
        for t in texts
    ]
    if finish_reason:
        chunks.append(
            SimpleNamespace(
                choices=[
                    SimpleNamespace(delta=SimpleNamespace(content=None), finish_reason=finish_reason)
                ]
            )
        )
    return chunks


def failing_stream(texts: list[str]):
    """Yield chunks for *texts*, then raise as a dropped connection would."""
    yield from stream_chunks(texts, finish_reason=None)
    raise ConnectionError("upstream closed")


class ClosableStream:
    """Iterable of chunks that records whether ``close()`` was called."""

    def __init__(self, chunks) -> None:
        self._chunks = iter(chunks)
        self.closed = False

    def __iter__(self):
        return self._chunks

    def close(self) -> None:
        self.closed = True
