"""Client-side state machine for generating one cat.

:class:`PageOrchestrator` walks a single cat through the generation steps
by calling the HTTP API, holding the results in a :class:`CatProfile`::

    IDLE -> IMAGE_LOADING -> IMAGE_READY -> NAME_LOADING -> NAME_READY
         -> PERSONALITY_LOADING -> ATTRIBUTES_LOADING
         -> BACKSTORY_STREAMING -> TIMELINE_LOADING -> COMPLETE

Each step is fed by the output of the previous one.  The backstory arrives
as server-sent events and is decoded incrementally with
:class:`~catgen.core.sse.SSEDecoder`; the timeline is requested once, right
after the terminal ``done`` event, with the full accumulated text.

Failure Handling
----------------
- Image: back to ``IDLE`` with :attr:`PageOrchestrator.error` set.
- Name: the name becomes ``"Mystery Cat"``, the failure is recorded, and the
  state still advances to ``NAME_READY``.
- Story steps: the state stays at the failing step, the error is recorded,
  fields filled by earlier steps are kept.  Nothing is retried
  automatically; calling :meth:`PageOrchestrator.request_story` again starts
  the story over, and :meth:`PageOrchestrator.request_name` stays available
  while the image is loaded.

Responses that succeed but carry an ``error`` field (the server used a
fallback) are used as-is and the message is appended to
:attr:`CatProfile.notices`.  Notices from the name step survive a new story
run; a new name clears them.

Usage
-----
::

    import httpx

    with httpx.Client(base_url="http://127.0.0.1:3000") as http:
        page = PageOrchestrator(http)
        page.new_cat()
        page.request_name()
        page.request_story()
        print(page.profile.timeline)

FastAPI's ``TestClient`` is an ``httpx.Client``, so the orchestrator can be
driven against the application in-process.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
from pydantic import ValidationError

from catgen.core.errors import InvalidStateError
from catgen.core.models import DndAttributes, TimelineEvent
from catgen.core.personality import PersonalityType
from catgen.core.sse import BackstoryAccumulator, SSEDecoder

logger = logging.getLogger(__name__)

FALLBACK_NAME = "Mystery Cat"

# Listener event kinds.
STATE_CHANGED = "state"
TEXT_RECEIVED = "text"

ProgressListener = Callable[[str, Any], None]


class PageState(str, Enum):
    IDLE = "idle"
    IMAGE_LOADING = "image_loading"
    IMAGE_READY = "image_ready"
    NAME_LOADING = "name_loading"
    NAME_READY = "name_ready"
    PERSONALITY_LOADING = "personality_loading"
    ATTRIBUTES_LOADING = "attributes_loading"
    BACKSTORY_STREAMING = "backstory_streaming"
    TIMELINE_LOADING = "timeline_loading"
    COMPLETE = "complete"


class StepFailed(Exception):
    """Raised internally when a request fails or returns unusable data."""


@dataclass
class CatProfile:
    """Everything generated for the current cat.

    Attributes:
        name: The cat's name.
        personality: Personality type.
        attributes: Ability scores.
        backstory: Backstory text; grows while streaming.
        timeline: Life events, oldest first.
        notices: Fallback messages reported by the server.
    """

    name: str | None = None
    personality: PersonalityType | None = None
    attributes: DndAttributes | None = None
    backstory: str = ""
    timeline: list[TimelineEvent] = field(default_factory=list)
    notices: list[str] = field(default_factory=list)

    def clear_story(self, keep_notices: int = 0) -> None:
        """Drop every story field, keeping the first *keep_notices* notices."""
        self.personality = None
        self.attributes = None
        self.backstory = ""
        self.timeline = []
        del self.notices[keep_notices:]


class PageOrchestrator:
    """Drives the generation steps for one cat at a time.

    Args:
        http: Client used for every request.  Its ``base_url`` must point
            at the Cat Generator server.
        listener: Optional callback, invoked as ``listener(STATE_CHANGED,
            state)`` on every transition and ``listener(TEXT_RECEIVED,
            fragment)`` for every streamed backstory fragment.
    """

    def __init__(self, http: httpx.Client, listener: ProgressListener | None = None) -> None:
        self._http = http
        self._listener = listener
        self.state = PageState.IDLE
        self.profile = CatProfile()
        self.image: bytes | None = None
        self.error: str | None = None
        self._busy = False
        self._name_notices = 0

    @property
    def image_base64(self) -> str:
        return base64.b64encode(self.image or b"").decode("ascii")

    # -- Plumbing -------------------------------------------------------------

    def _notify(self, kind: str, value: Any) -> None:
        if self._listener is not None:
            self._listener(kind, value)

    def _enter(self, state: PageState) -> None:
        logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state
        self._notify(STATE_CHANGED, state)

    def _fail(self, message: str) -> None:
        logger.warning("Step %s failed: %s", self.state.value, message)
        self.error = message

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return f"HTTP {response.status_code}"

    def _post_json(self, path: str, payload: dict) -> dict:
        try:
            response = self._http.post(path, json=payload)
        except httpx.HTTPError as e:
            raise StepFailed(f"Request to {path} failed: {e}") from e
        if response.is_error:
            raise StepFailed(self._error_message(response))
        try:
            body = response.json()
        except ValueError as e:
            raise StepFailed(f"Invalid JSON from {path}") from e
        if not isinstance(body, dict):
            raise StepFailed(f"Unexpected response from {path}")
        if body.get("error"):
            self.profile.notices.append(str(body["error"]))
        return body

    # -- Image ----------------------------------------------------------------

    def new_cat(self) -> bool:
        """Discard the current cat and fetch a new portrait.

        Returns:
            True when the new image is ready.
        """
        self.profile = CatProfile()
        self.image = None
        self.error = None
        self._name_notices = 0
        self._enter(PageState.IMAGE_LOADING)

        try:
            response = self._http.get("/api/cat-image")
        except httpx.HTTPError as e:
            self._fail(f"Image request failed: {e}")
            self._enter(PageState.IDLE)
            return False
        if response.is_error:
            self._fail(self._error_message(response))
            self._enter(PageState.IDLE)
            return False

        self.image = response.content
        logger.info("Received cat image (%d bytes).", len(self.image))
        self._enter(PageState.IMAGE_READY)
        return True

    # -- Name -----------------------------------------------------------------

    def request_name(self) -> str:
        """Ask the server to suggest a name for the current image.

        Returns:
            The suggested name, or :data:`FALLBACK_NAME` when the request
            failed.

        A new name discards any story generated for the previous one.

        Raises:
            InvalidStateError: If no image has been loaded yet, or another
                request is in flight.
        """
        if self.image is None or self._busy:
            raise InvalidStateError(f"Cannot request a name in state {self.state.value}")

        self.error = None
        self.profile.clear_story()
        self._busy = True
        self._enter(PageState.NAME_LOADING)
        try:
            body = self._post_json(
                "/api/cat-details",
                {"imageData": f"data:image/png;base64,{self.image_base64}", "action": "getName"},
            )
            name = body.get("name")
            if not isinstance(name, str) or not name.strip():
                raise StepFailed("Response has no name")
            self.profile.name = name.strip()
        except StepFailed as e:
            self._fail(str(e))
            self.profile.name = FALLBACK_NAME
        finally:
            self._busy = False

        self._name_notices = len(self.profile.notices)
        self._enter(PageState.NAME_READY)
        return self.profile.name

    # -- Story ----------------------------------------------------------------

    def request_story(self) -> bool:
        """Run personality, attributes, backstory and timeline in order.

        Returns:
            True when every step succeeded and the state is ``COMPLETE``.

        A failed run can be retried with another call; it starts over from
        the personality step.

        Raises:
            InvalidStateError: If the cat has no name yet, or another request
                is in flight.
        """
        if not self.profile.name or self._busy:
            raise InvalidStateError(f"Cannot request a story in state {self.state.value}")

        self.error = None
        self.profile.clear_story(keep_notices=self._name_notices)
        self._busy = True
        try:
            self._load_personality()
            self._load_attributes()
            self._stream_backstory()
            self._load_timeline()
        except StepFailed as e:
            self._fail(str(e))
            return False
        finally:
            self._busy = False

        self._enter(PageState.COMPLETE)
        return True

    def _cat_payload(self) -> dict:
        return {"imageBase64": self.image_base64, "name": self.profile.name}

    def _personality_payload(self) -> dict | None:
        if self.profile.personality is None:
            return None
        return self.profile.personality.model_dump(exclude_none=True)

    def _load_personality(self) -> None:
        self._enter(PageState.PERSONALITY_LOADING)
        body = self._post_json("/api/cat-personality", self._cat_payload())
        try:
            self.profile.personality = PersonalityType.model_validate(body.get("personalityType"))
        except ValidationError as e:
            raise StepFailed(f"Invalid personality type: {e}") from e

    def _load_attributes(self) -> None:
        self._enter(PageState.ATTRIBUTES_LOADING)
        payload = self._cat_payload()
        payload["personalityType"] = self._personality_payload()
        body = self._post_json("/api/cat-dnd-attributes", payload)
        try:
            self.profile.attributes = DndAttributes.model_validate(body.get("dndAttributes"))
        except ValidationError as e:
            raise StepFailed(f"Invalid attributes: {e}") from e

    def _stream_backstory(self) -> None:
        self._enter(PageState.BACKSTORY_STREAMING)
        payload = self._cat_payload()
        payload["personalityType"] = self._personality_payload()

        decoder = SSEDecoder()
        accumulator = BackstoryAccumulator()
        try:
            with self._http.stream("POST", "/api/cat-backstory-stream", json=payload) as response:
                if response.is_error:
                    response.read()
                    raise StepFailed(self._error_message(response))
                for chunk in response.iter_bytes():
                    for event in decoder.feed(chunk):
                        fragment = accumulator.apply(event)
                        if fragment:
                            self.profile.backstory = accumulator.text
                            self._notify(TEXT_RECEIVED, fragment)
                    if accumulator.terminated:
                        break
        except httpx.HTTPError as e:
            raise StepFailed(f"Backstory stream failed: {e}") from e

        self.profile.backstory = accumulator.text
        if accumulator.error is not None:
            raise StepFailed(accumulator.error)
        if not accumulator.finished:
            raise StepFailed("Backstory stream ended before completion")
        logger.info("Backstory complete (%d characters).", len(accumulator.text))

    def _load_timeline(self) -> None:
        self._enter(PageState.TIMELINE_LOADING)
        body = self._post_json(
            "/api/cat-timeline",
            {
                "backstory": self.profile.backstory,
                "name": self.profile.name,
                "personalityType": self._personality_payload(),
            },
        )
        events = body.get("timeline")
        if not isinstance(events, list):
            raise StepFailed("Response has no timeline")
        try:
            self.profile.timeline = [TimelineEvent.model_validate(e) for e in events]
        except ValidationError as e:
            raise StepFailed(f"Invalid timeline: {e}") from e
