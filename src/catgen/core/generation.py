"""Model-backed generation steps for a cat profile.

:class:`CatStoryteller` owns one method per generation concern.  Each JSON
step builds its prompt, calls :class:`~catgen.core.story_model.StoryModel`,
validates the answer with the Pydantic models in :mod:`catgen.core.models`
and runs inside :func:`~catgen.core.fallback.with_fallback`, so callers
always receive a well-formed value.

The streaming backstory is the exception: bytes reach the caller before a
failure can be detected, so :meth:`CatStoryteller.backstory_events` turns a
mid-stream failure into a terminal ``error`` event instead of a fallback.

Fallback Values
---------------
============  ==========================================================
Step          Fallback
============  ==========================================================
name          random prefix + suffix from ``cats.json``
personality   ``ISFP`` / *The Adventurer*
attributes    STR 10, DEX 15, CON 12, INT 14, WIS 13, CHA 11
details       short mysterious backstory + five generic events
timeline      five generic events starting at birth
============  ==========================================================
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from catgen.core import prompts
from catgen.core.backstory_store import BackstoryStore
from catgen.core.errors import ModelResponseError
from catgen.core.fallback import FallbackResult, with_fallback
from catgen.core.models import CatDetails, DndAttributes, TimelineEvent
from catgen.core.personality import MBTI_TYPES, PersonalityType, describe
from catgen.core.prompts import CatData
from catgen.core.sse import DONE, ERROR, START, TEXT, encode_event
from catgen.core.story_model import StoryModel, StreamDelta

logger = logging.getLogger(__name__)

DEFAULT_MIN_BACKSTORY_LENGTH = 100
DEFAULT_MAX_TIMELINE_EVENTS = 7

UNKNOWN_CAT = "Unknown Cat"

# Timeline error messages.  Clients only learn that a fallback was used from
# the presence of these in the response body.
MISSING_BACKSTORY = "Missing or empty backstory"
SHORT_BACKSTORY = "Backstory too short or incomplete"
TIMELINE_FAILED = "Error generating timeline"
NO_TIMELINE_EVENTS = "No valid timeline events could be extracted"


# ---------------------------------------------------------------------------
# Fallback factories.  Factories rather than constants so callers can never
# mutate a shared instance.
# ---------------------------------------------------------------------------


def fallback_personality() -> PersonalityType:
    return MBTI_TYPES["ISFP"].model_copy()


def fallback_attributes() -> DndAttributes:
    return DndAttributes(
        strength=10, dexterity=15, constitution=12, intelligence=14, wisdom=13, charisma=11
    )


def default_timeline(name: str) -> list[TimelineEvent]:
    """The generic timeline used whenever a real one cannot be produced."""
    return [
        TimelineEvent(age="Birth", description=f"{name} was born into the world."),
        TimelineEvent(
            age="3 months",
            description="Started exploring and developing personality traits.",
        ),
        TimelineEvent(
            age="6 months",
            description="Gained independence and learned important survival skills.",
        ),
        TimelineEvent(
            age="1 year",
            description="Grew into a young adult cat with established habits.",
        ),
        TimelineEvent(
            age="Present",
            description="Living the current chapter of life with confidence and character.",
        ),
    ]


def fallback_details(name: str, seed: str | None = None) -> CatDetails:
    backstory = f"{name} is a mysterious cat with an enigmatic past."
    if seed:
        backstory = f"{backstory} {seed}"
    return CatDetails(
        backstory=backstory,
        personality_type=fallback_personality(),
        dnd_attributes=fallback_attributes(),
        timeline=[
            TimelineEvent(age="Birth", description="Born under mysterious circumstances"),
            TimelineEvent(age="6 months", description="Began their journey into the unknown"),
            TimelineEvent(age="1 year", description="Discovered their unique abilities"),
            TimelineEvent(age="2 years", description="Overcame a significant challenge"),
            TimelineEvent(age="Present", description="Continuing their adventures"),
        ],
    )


# ---------------------------------------------------------------------------
# Parsing helpers.
# ---------------------------------------------------------------------------


def _require_mapping(data: Any, key: str | None = None) -> dict:
    if not isinstance(data, dict):
        raise ModelResponseError("Expected a JSON object")
    if key is None:
        return data
    value = data.get(key)
    if not isinstance(value, dict):
        raise ModelResponseError(f"Response is missing '{key}'")
    return value


def parse_personality(data: Any) -> PersonalityType:
    """Validate a ``{"personalityType": {...}}`` answer."""
    try:
        return describe(PersonalityType.model_validate(_require_mapping(data, "personalityType")))
    except ValidationError as e:
        raise ModelResponseError(f"Invalid personality type: {e}") from e


def parse_attributes(data: Any) -> DndAttributes:
    """Validate a ``{"dndAttributes": {...}}`` answer, clamping scores."""
    try:
        return DndAttributes.model_validate(_require_mapping(data, "dndAttributes"))
    except ValidationError as e:
        raise ModelResponseError(f"Invalid attributes: {e}") from e


def parse_timeline(data: Any, max_events: int = DEFAULT_MAX_TIMELINE_EVENTS) -> list[TimelineEvent]:
    """Extract the valid timeline events from a model answer.

    Accepts a bare list or ``{"timeline": [...]}``.  Entries without an age
    or a description are dropped; at most *max_events* are kept.

    Raises:
        ModelResponseError: If the answer has no timeline list.
    """
    if isinstance(data, list):
        raw_events = data
    elif isinstance(data, dict) and isinstance(data.get("timeline"), list):
        raw_events = data["timeline"]
    else:
        raise ModelResponseError("Response has no timeline list")

    events: list[TimelineEvent] = []
    for raw in raw_events:
        if not isinstance(raw, dict) or not raw.get("age") or not raw.get("description"):
            logger.warning("Filtering out invalid timeline event: %r", raw)
            continue
        try:
            events.append(TimelineEvent.model_validate(raw))
        except ValidationError:
            logger.warning("Filtering out invalid timeline event: %r", raw)
    return events[:max_events]


def strip_data_url(image: str) -> str:
    """Drop a ``data:image/...;base64,`` prefix if present."""
    if "base64," in image:
        return image.split("base64,", 1)[1]
    return image


# ---------------------------------------------------------------------------
# Results.
# ---------------------------------------------------------------------------


@dataclass
class TimelineResult:
    """Timeline plus the reason a fallback was used, if any."""

    timeline: list[TimelineEvent] = field(default_factory=list)
    error: str | None = None

    def to_payload(self) -> dict:
        payload: dict[str, Any] = {"timeline": [e.model_dump() for e in self.timeline]}
        if self.error:
            payload["error"] = self.error
        return payload


# ---------------------------------------------------------------------------
# Storyteller.
# ---------------------------------------------------------------------------


class CatStoryteller:
    """Runs every model-backed generation step.

    Args:
        model: The chat-completion wrapper.
        cat_data: Name parts and story seeds.
        rng: Randomness for seed and fallback-name selection.
        min_backstory_length: Shortest backstory the timeline step accepts.
        max_timeline_events: Upper bound on returned timeline events.
    """

    def __init__(
        self,
        model: StoryModel,
        cat_data: CatData,
        *,
        rng: random.Random | None = None,
        min_backstory_length: int = DEFAULT_MIN_BACKSTORY_LENGTH,
        max_timeline_events: int = DEFAULT_MAX_TIMELINE_EVENTS,
    ) -> None:
        self.model = model
        self.cat_data = cat_data
        self._rng = rng or random.Random()
        self.min_backstory_length = min_backstory_length
        self.max_timeline_events = max_timeline_events

    def _seed(self) -> str:
        return self.cat_data.random_backstory_prompt(self._rng)

    # -- Name ---------------------------------------------------------------

    def suggest_name(self, image_base64: str) -> FallbackResult[str]:
        """Ask the model to combine one prefix and one suffix into a name."""
        prefixes = ", ".join(self.cat_data.name_prefixes)
        suffixes = ", ".join(self.cat_data.name_suffixes)

        def operation() -> str:
            data = self.model.complete_json(
                prompts.NAME_SYSTEM.format(prefixes=prefixes, suffixes=suffixes),
                prompts.NAME_USER.format(prefixes=prefixes, suffixes=suffixes),
                image_base64,
            )
            name = _require_mapping(data).get("name")
            if not isinstance(name, str) or not name.strip():
                raise ModelResponseError("Response is missing 'name'")
            return name.strip()

        return with_fallback(
            operation,
            lambda: self.cat_data.random_name(self._rng),
            label="name",
            error_message="Failed to suggest a name",
        )

    # -- Personality and attributes ------------------------------------------

    def infer_personality(self, image_base64: str, name: str) -> FallbackResult[PersonalityType]:
        """Determine the cat's Myers-Briggs type from its portrait."""
        seed = self._seed()

        def operation() -> PersonalityType:
            data = self.model.complete_json(
                prompts.PERSONALITY_SYSTEM.format(name=name),
                prompts.PERSONALITY_USER.format(name=name, seed=seed),
                image_base64,
            )
            return parse_personality(data)

        return with_fallback(
            operation,
            fallback_personality,
            label="personality",
            error_message="Failed to determine personality type",
        )

    def assign_attributes(
        self, image_base64: str, name: str, personality: PersonalityType
    ) -> FallbackResult[DndAttributes]:
        """Assign ability scores matching the portrait and personality."""
        seed = self._seed()
        title = personality.title or "unknown type"

        def operation() -> DndAttributes:
            data = self.model.complete_json(
                prompts.ATTRIBUTES_SYSTEM.format(name=name, code=personality.code, title=title),
                prompts.ATTRIBUTES_USER.format(
                    name=name, code=personality.code, title=title, seed=seed
                ),
                image_base64,
            )
            return parse_attributes(data)

        return with_fallback(
            operation,
            fallback_attributes,
            label="attributes",
            error_message="Failed to assign attributes",
        )

    def infer_basic_info(
        self, image_base64: str, name: str
    ) -> FallbackResult[tuple[PersonalityType, DndAttributes]]:
        """Personality and attributes in a single model call."""
        seed = self._seed()

        def operation() -> tuple[PersonalityType, DndAttributes]:
            data = self.model.complete_json(
                prompts.BASIC_INFO_SYSTEM.format(name=name),
                prompts.BASIC_INFO_USER.format(name=name, seed=seed),
                image_base64,
            )
            return parse_personality(data), parse_attributes(data)

        return with_fallback(
            operation,
            lambda: (fallback_personality(), fallback_attributes()),
            label="basic info",
            error_message="Failed to determine basic info",
        )

    # -- Combined details -----------------------------------------------------

    def write_details(self, image_base64: str, name: str) -> FallbackResult[CatDetails]:
        """Backstory, personality, attributes and timeline in one call."""
        seed = self._seed()

        def operation() -> CatDetails:
            data = _require_mapping(
                self.model.complete_json(
                    prompts.DETAILS_SYSTEM.format(name=name, seed=seed),
                    prompts.DETAILS_USER.format(name=name, seed=seed),
                    image_base64,
                )
            )
            backstory = data.get("backstory")
            if not isinstance(backstory, str) or not backstory.strip():
                raise ModelResponseError("Response is missing 'backstory'")
            try:
                timeline = parse_timeline(data, self.max_timeline_events)
            except ModelResponseError:
                timeline = []
            return CatDetails(
                backstory=backstory.strip(),
                personality_type=parse_personality(data),
                dnd_attributes=parse_attributes(data),
                timeline=timeline,
            )

        return with_fallback(
            operation,
            lambda: fallback_details(name, seed),
            label="details",
            error_message="Failed to generate cat details",
        )

    # -- Streaming backstory --------------------------------------------------

    def open_backstory_stream(
        self, image_base64: str, name: str, personality: PersonalityType | None = None
    ) -> Iterator[StreamDelta]:
        """Open the upstream token stream for a backstory.

        Raises:
            Exception: Whatever the model client raises when the stream
                cannot be opened.  The API answers 500 in that case.
        """
        code = personality.code if personality else "unknown"
        title = (personality.title if personality else "") or "unknown type"
        seed = self._seed()
        return self.model.open_stream(
            prompts.BACKSTORY_SYSTEM.format(name=name, code=code, title=title, seed=seed),
            prompts.BACKSTORY_USER.format(name=name, code=code, title=title, seed=seed),
            image_base64,
        )

    @staticmethod
    def backstory_events(
        deltas: Iterator[StreamDelta], name: str, store: BackstoryStore
    ) -> Iterator[str]:
        """Relay *deltas* as server-sent events.

        Emits ``start``, one ``text`` event per non-empty fragment, and
        ``done`` once a chunk carries a finish reason or the upstream ends.
        The assembled text is saved in *store* before ``done`` is sent.  A
        failure while relaying emits ``error`` and ends the stream.
        """
        yield encode_event(START, {})
        logger.info("Backstory stream started for %s.", name)

        parts: list[str] = []
        try:
            for delta in deltas:
                if delta.text:
                    parts.append(delta.text)
                    yield encode_event(TEXT, {"text": delta.text})
                if delta.finish_reason:
                    break
        except Exception:
            logger.exception("Backstory stream for %s failed.", name)
            yield encode_event(ERROR, {"message": "Stream error"})
            return
        finally:
            close = getattr(deltas, "close", None)
            if close is not None:
                close()

        backstory = "".join(parts)
        logger.info("Backstory stream completed for %s, length: %d", name, len(backstory))
        store.save(name, backstory)
        yield encode_event(DONE, {})

    # -- Timeline -------------------------------------------------------------

    def build_timeline(
        self,
        name: str | None,
        backstory: str | None,
        store: BackstoryStore,
        personality_code: str | None = None,
    ) -> TimelineResult:
        """Extract a timeline from a backstory, never failing.

        The backstory comes from the request when it is a usable string of
        at least ``min_backstory_length`` characters, otherwise from *store*
        by name.  Without a name or any text the generic timeline is
        returned with :data:`MISSING_BACKSTORY`; with only a short text, with
        :data:`SHORT_BACKSTORY`.
        """
        text = backstory.strip() if isinstance(backstory, str) else ""

        if len(text) < self.min_backstory_length and name:
            cached = store.get(name).strip()
            if len(cached) > len(text):
                logger.info("Using stored backstory for %s (length %d).", name, len(cached))
                text = cached

        if not name or not text:
            logger.warning("No usable backstory, using default timeline.")
            return TimelineResult(default_timeline(name or UNKNOWN_CAT), MISSING_BACKSTORY)

        if len(text) < self.min_backstory_length:
            logger.warning("Backstory for %s too short (%d characters).", name, len(text))
            return TimelineResult(default_timeline(name), SHORT_BACKSTORY)

        def operation() -> list[TimelineEvent]:
            data = self.model.complete_json(
                prompts.TIMELINE_SYSTEM,
                prompts.TIMELINE_USER.format(
                    name=name, code=personality_code or "unknown", backstory=text
                ),
                temperature=0.2,
                max_tokens=1500,
                presence_penalty=0.2,
                frequency_penalty=0.5,
            )
            return parse_timeline(data, self.max_timeline_events)

        result = with_fallback(
            operation, lambda: default_timeline(name), label="timeline", error_message=TIMELINE_FAILED
        )
        if result.error:
            return TimelineResult(result.value, result.error)
        if not result.value:
            logger.warning("Model returned no valid timeline events for %s.", name)
            return TimelineResult(default_timeline(name), NO_TIMELINE_EVENTS)
        logger.info("Generated %d timeline events for %s.", len(result.value), name)
        return TimelineResult(result.value)
