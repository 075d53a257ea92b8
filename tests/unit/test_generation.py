"""Tests for catgen.core.generation - the model-backed generation steps.

Every test drives :class:`CatStoryteller` with a mocked OpenAI client and
checks both the happy path and the fallback taken on dependency failures.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from catgen.core.backstory_store import BackstoryStore
from catgen.core.errors import ModelResponseError
from catgen.core.generation import (
    MISSING_BACKSTORY,
    NO_TIMELINE_EVENTS,
    SHORT_BACKSTORY,
    TIMELINE_FAILED,
    CatStoryteller,
    default_timeline,
    fallback_attributes,
    parse_attributes,
    parse_personality,
    parse_timeline,
    strip_data_url,
)
from catgen.core.personality import PersonalityType
from catgen.core.sse import SSEDecoder
from catgen.core.story_model import StreamDelta
from tests.helpers import LONG_BACKSTORY, ClosableStream, json_completion, stream_chunks

ATTRIBUTES = {
    "strength": 8,
    "dexterity": 17,
    "constitution": 11,
    "intelligence": 13,
    "wisdom": 15,
    "charisma": 14,
}


def answer(mock_openai: MagicMock, payload) -> None:
    """Make every completion return *payload*."""
    mock_openai.chat.completions.create.side_effect = None
    mock_openai.chat.completions.create.return_value = json_completion(payload)


# ---------------------------------------------------------------------------
# Parsers.
# ---------------------------------------------------------------------------


class TestParsers:
    """Test validation of model answers."""

    def test_parse_personality(self):
        result = parse_personality({"personalityType": {"code": "intj", "title": "The Architect"}})
        assert result.code == "INTJ"
        assert result.description

    def test_parse_personality_missing(self):
        with pytest.raises(ModelResponseError):
            parse_personality({"something": "else"})

    def test_parse_attributes_clamps(self):
        """Out-of-range and fractional scores are clamped and rounded."""
        data = {"dndAttributes": {**ATTRIBUTES, "strength": 25, "wisdom": 0, "charisma": "12.6"}}
        result = parse_attributes(data)
        assert result.strength == 20
        assert result.wisdom == 1
        assert result.charisma == 13

    def test_parse_attributes_missing_score(self):
        data = {"dndAttributes": {k: v for k, v in ATTRIBUTES.items() if k != "wisdom"}}
        with pytest.raises(ModelResponseError):
            parse_attributes(data)

    def test_parse_attributes_rejects_text(self):
        with pytest.raises(ModelResponseError):
            parse_attributes({"dndAttributes": {**ATTRIBUTES, "strength": "strong"}})

    def test_parse_timeline_wrapped(self):
        events = parse_timeline({"timeline": [{"age": "Birth", "description": "Born."}]})
        assert [e.age for e in events] == ["Birth"]

    def test_parse_timeline_bare_list(self):
        events = parse_timeline([{"age": "1 year", "description": "Grew."}])
        assert events[0].description == "Grew."

    def test_parse_timeline_drops_invalid_events(self):
        data = [
            {"age": "Birth", "description": "Born."},
            {"age": "", "description": "No age."},
            {"description": "Missing age."},
            "not an event",
            {"age": 2, "description": "Numeric age is stringified."},
        ]
        events = parse_timeline(data)
        assert [e.age for e in events] == ["Birth", "2"]

    def test_parse_timeline_caps_length(self):
        data = [{"age": str(i), "description": f"Event {i}"} for i in range(12)]
        assert len(parse_timeline(data, max_events=7)) == 7

    def test_parse_timeline_no_list(self):
        with pytest.raises(ModelResponseError):
            parse_timeline({"events": []})

    def test_strip_data_url(self):
        assert strip_data_url("data:image/png;base64,QUJD") == "QUJD"
        assert strip_data_url("QUJD") == "QUJD"


# ---------------------------------------------------------------------------
# JSON steps.
# ---------------------------------------------------------------------------


class TestNameSuggestion:
    def test_model_name(self, storyteller: CatStoryteller, mock_openai: MagicMock):
        answer(mock_openai, {"name": " Shadowpaws "})
        result = storyteller.suggest_name("QUJD")
        assert result.value == "Shadowpaws"
        assert result.error is None

    def test_prompt_lists_name_parts(self, storyteller: CatStoryteller, mock_openai: MagicMock):
        answer(mock_openai, {"name": "Shadowpaws"})
        storyteller.suggest_name("QUJD")
        system = mock_openai.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert "Whisker, Shadow" in system
        assert "paws, tail" in system

    def test_fallback_is_random_combination(self, storyteller: CatStoryteller):
        """The unconfigured mock raises, so a prefix+suffix name is used."""
        result = storyteller.suggest_name("QUJD")
        assert result.error
        assert result.value in {"Whiskerpaws", "Whiskertail", "Shadowpaws", "Shadowtail"}

    def test_blank_name_falls_back(self, storyteller: CatStoryteller, mock_openai: MagicMock):
        answer(mock_openai, {"name": "   "})
        assert storyteller.suggest_name("QUJD").used_fallback


class TestPersonalityAndAttributes:
    def test_personality(self, storyteller: CatStoryteller, mock_openai: MagicMock):
        answer(mock_openai, {"personalityType": {"code": "ENFP", "title": "The Campaigner"}})
        result = storyteller.infer_personality("QUJD", "Whiskerpaws")
        assert result.value.code == "ENFP"
        assert result.error is None

    def test_personality_fallback(self, storyteller: CatStoryteller, mock_openai: MagicMock):
        answer(mock_openai, "not json at all")
        result = storyteller.infer_personality("QUJD", "Whiskerpaws")
        assert result.value.code == "ISFP"
        assert result.value.title == "The Adventurer"
        assert result.error == "Failed to determine personality type"

    def test_attributes(self, storyteller: CatStoryteller, mock_openai: MagicMock):
        answer(mock_openai, {"dndAttributes": ATTRIBUTES})
        personality = PersonalityType(code="ENFP", title="The Campaigner")
        result = storyteller.assign_attributes("QUJD", "Whiskerpaws", personality)
        assert result.value.model_dump() == ATTRIBUTES
        system = mock_openai.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert "ENFP" in system

    def test_attributes_fallback(self, storyteller: CatStoryteller):
        personality = PersonalityType(code="ENFP", title="The Campaigner")
        result = storyteller.assign_attributes("QUJD", "Whiskerpaws", personality)
        assert result.value == fallback_attributes()
        assert result.value.model_dump() == {
            "strength": 10,
            "dexterity": 15,
            "constitution": 12,
            "intelligence": 14,
            "wisdom": 13,
            "charisma": 11,
        }

    def test_basic_info(self, storyteller: CatStoryteller, mock_openai: MagicMock):
        answer(
            mock_openai,
            {
                "personalityType": {"code": "ISTP", "title": "The Virtuoso"},
                "dndAttributes": ATTRIBUTES,
            },
        )
        result = storyteller.infer_basic_info("QUJD", "Whiskerpaws")
        personality, attributes = result.value
        assert personality.code == "ISTP"
        assert attributes.dexterity == 17
        assert mock_openai.chat.completions.create.call_count == 1

    def test_basic_info_partial_answer_falls_back(
        self, storyteller: CatStoryteller, mock_openai: MagicMock
    ):
        answer(mock_openai, {"personalityType": {"code": "ISTP", "title": "The Virtuoso"}})
        result = storyteller.infer_basic_info("QUJD", "Whiskerpaws")
        assert result.used_fallback
        assert result.value[0].code == "ISFP"


class TestDetails:
    def test_details(self, storyteller: CatStoryteller, mock_openai: MagicMock):
        answer(
            mock_openai,
            {
                "backstory": LONG_BACKSTORY,
                "personalityType": {"code": "ISFJ", "title": "The Defender"},
                "dndAttributes": ATTRIBUTES,
                "timeline": [{"age": "Birth", "description": "Born in a flour sack."}],
            },
        )
        result = storyteller.write_details("QUJD", "Whiskerpaws")
        assert result.error is None
        assert result.value.backstory == LONG_BACKSTORY
        assert result.value.personality_type.code == "ISFJ"
        assert len(result.value.timeline) == 1

    def test_details_fallback(self, storyteller: CatStoryteller):
        result = storyteller.write_details("QUJD", "Whiskerpaws")
        assert result.error == "Failed to generate cat details"
        assert result.value.backstory.startswith("Whiskerpaws is a mysterious cat")
        assert len(result.value.timeline) == 5


# ---------------------------------------------------------------------------
# Streaming backstory.
# ---------------------------------------------------------------------------


def decode(events) -> list:
    decoder = SSEDecoder()
    out = []
    for raw in events:
        out.extend(decoder.feed(raw))
    return out


class TestBackstoryEvents:
    """Test relaying deltas as server-sent events."""

    def test_event_sequence(self):
        store = BackstoryStore()
        deltas = iter(
            [
                StreamDelta(text="Once "),
                StreamDelta(text="upon a time."),
                StreamDelta(finish_reason="stop"),
            ]
        )

        events = decode(CatStoryteller.backstory_events(deltas, "Whiskerpaws", store))

        assert [e.event for e in events] == ["start", "text", "text", "done"]
        assert [e.data for e in events[1:3]] == [{"text": "Once "}, {"text": "upon a time."}]
        assert store.get("Whiskerpaws") == "Once upon a time."

    def test_saved_before_done(self):
        """The store already holds the text when done is emitted."""
        store = BackstoryStore()
        deltas = iter([StreamDelta(text="A tale."), StreamDelta(finish_reason="stop")])

        for raw in CatStoryteller.backstory_events(deltas, "Whiskerpaws", store):
            if raw.startswith("event: done"):
                assert store.get("Whiskerpaws") == "A tale."

    def test_stops_at_finish_reason(self):
        store = BackstoryStore()
        deltas = iter(
            [StreamDelta(text="Kept."), StreamDelta(finish_reason="stop"), StreamDelta("Dropped")]
        )
        events = decode(CatStoryteller.backstory_events(deltas, "Whiskerpaws", store))
        assert store.get("Whiskerpaws") == "Kept."
        assert events[-1].event == "done"

    def test_upstream_end_without_finish_reason(self):
        store = BackstoryStore()
        events = decode(
            CatStoryteller.backstory_events(iter([StreamDelta("Short.")]), "Whiskerpaws", store)
        )
        assert events[-1].event == "done"

    def test_midstream_failure_emits_error(self):
        store = BackstoryStore()

        def deltas():
            yield StreamDelta(text="Partial")
            raise ConnectionError("upstream closed")

        events = decode(CatStoryteller.backstory_events(deltas(), "Whiskerpaws", store))

        assert [e.event for e in events] == ["start", "text", "error"]
        assert events[-1].data == {"message": "Stream error"}
        assert store.get("Whiskerpaws") == ""

    def test_upstream_closed_after_finish_reason(
        self, storyteller: CatStoryteller, mock_openai: MagicMock
    ):
        upstream = ClosableStream(stream_chunks(["Kept."]) + stream_chunks(["Dropped"]))
        mock_openai.chat.completions.create.side_effect = None
        mock_openai.chat.completions.create.return_value = upstream

        deltas = storyteller.open_backstory_stream("QUJD", "Whiskerpaws")
        list(CatStoryteller.backstory_events(deltas, "Whiskerpaws", BackstoryStore()))

        assert upstream.closed

    def test_upstream_closed_when_consumer_stops(
        self, storyteller: CatStoryteller, mock_openai: MagicMock
    ):
        """Closing the relay early, as on a client disconnect, closes the upstream."""
        upstream = ClosableStream(stream_chunks(["Once ", "upon ", "a time."]))
        mock_openai.chat.completions.create.side_effect = None
        mock_openai.chat.completions.create.return_value = upstream
        store = BackstoryStore()

        deltas = storyteller.open_backstory_stream("QUJD", "Whiskerpaws")
        relay = CatStoryteller.backstory_events(deltas, "Whiskerpaws", store)
        next(relay)  # start
        next(relay)  # first fragment
        relay.close()

        assert upstream.closed
        assert store.get("Whiskerpaws") == ""

    def test_open_stream_uses_personality(
        self, storyteller: CatStoryteller, mock_openai: MagicMock
    ):
        mock_openai.chat.completions.create.side_effect = None
        mock_openai.chat.completions.create.return_value = iter([])
        storyteller.open_backstory_stream(
            "QUJD", "Whiskerpaws", PersonalityType(code="INTP", title="The Logician")
        )
        system = mock_openai.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert "INTP (The Logician)" in system


# ---------------------------------------------------------------------------
# Timeline.
# ---------------------------------------------------------------------------


class TestBuildTimeline:
    """Test the timeline step and its fallbacks."""

    TIMELINE = {
        "timeline": [
            {"age": "Kitten", "description": "Found in a flour sack."},
            {"age": "6 months", "description": "Chased out the mice."},
            {"age": "1 year", "description": "Moved into the lighthouse."},
        ]
    }

    def test_generates_timeline(self, storyteller: CatStoryteller, mock_openai: MagicMock):
        answer(mock_openai, self.TIMELINE)
        result = storyteller.build_timeline("Whiskerpaws", LONG_BACKSTORY, BackstoryStore())

        assert result.error is None
        assert [e.age for e in result.timeline] == ["Kitten", "6 months", "1 year"]
        kwargs = mock_openai.chat.completions.create.call_args.kwargs
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 1500
        assert LONG_BACKSTORY in kwargs["messages"][1]["content"]

    def test_short_backstory_without_store(
        self, storyteller: CatStoryteller, mock_openai: MagicMock
    ):
        """A short text and an empty store give the default timeline, no model call."""
        result = storyteller.build_timeline("Whiskerpaws", "Too short.", BackstoryStore())

        assert result.error == SHORT_BACKSTORY
        assert result.timeline == default_timeline("Whiskerpaws")
        assert result.timeline[0].description == "Whiskerpaws was born into the world."
        mock_openai.chat.completions.create.assert_not_called()

    def test_recovers_from_store(self, storyteller: CatStoryteller, mock_openai: MagicMock):
        answer(mock_openai, self.TIMELINE)
        store = BackstoryStore()
        store.save("Whiskerpaws", LONG_BACKSTORY)

        result = storyteller.build_timeline("Whiskerpaws", None, store)

        assert result.error is None
        assert LONG_BACKSTORY in (
            mock_openai.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        )

    def test_missing_backstory(self, storyteller: CatStoryteller):
        result = storyteller.build_timeline("Whiskerpaws", "", BackstoryStore())
        assert result.error == MISSING_BACKSTORY
        assert len(result.timeline) == 5

    def test_missing_name(self, storyteller: CatStoryteller):
        result = storyteller.build_timeline(None, LONG_BACKSTORY, BackstoryStore())
        assert result.error == MISSING_BACKSTORY
        assert result.timeline[0].description == "Unknown Cat was born into the world."

    def test_model_failure(self, storyteller: CatStoryteller):
        result = storyteller.build_timeline("Whiskerpaws", LONG_BACKSTORY, BackstoryStore())
        assert result.error == TIMELINE_FAILED
        assert result.timeline == default_timeline("Whiskerpaws")

    def test_no_valid_events(self, storyteller: CatStoryteller, mock_openai: MagicMock):
        answer(mock_openai, {"timeline": [{"age": "", "description": ""}]})
        result = storyteller.build_timeline("Whiskerpaws", LONG_BACKSTORY, BackstoryStore())
        assert result.error == NO_TIMELINE_EVENTS
        assert len(result.timeline) == 5

    def test_caps_events(self, storyteller: CatStoryteller, mock_openai: MagicMock):
        answer(mock_openai, [{"age": str(i), "description": f"Event {i}"} for i in range(10)])
        result = storyteller.build_timeline("Whiskerpaws", LONG_BACKSTORY, BackstoryStore())
        assert len(result.timeline) == 7

    def test_payload(self, storyteller: CatStoryteller):
        payload = storyteller.build_timeline("Whiskerpaws", "short", BackstoryStore()).to_payload()
        assert payload["error"] == SHORT_BACKSTORY
        assert payload["timeline"][0] == {
            "age": "Birth",
            "description": "Whiskerpaws was born into the world.",
        }
