"""Tests for catgen.core.models - profile data models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from catgen.core.models import CatDetails, DndAttributes, TimelineEvent
from catgen.core.personality import PersonalityType

SCORES = dict(strength=10, dexterity=15, constitution=12, intelligence=14, wisdom=13, charisma=11)


class TestDndAttributes:
    def test_valid(self):
        assert DndAttributes(**SCORES).dexterity == 15

    @pytest.mark.parametrize("value,expected", [(0, 1), (-5, 1), (21, 20), (99, 20), (7.4, 7)])
    def test_clamped(self, value, expected):
        assert DndAttributes(**{**SCORES, "strength": value}).strength == expected

    def test_boolean_rejected(self):
        with pytest.raises(ValidationError):
            DndAttributes(**{**SCORES, "wisdom": True})

    def test_missing_field(self):
        scores = dict(SCORES)
        del scores["charisma"]
        with pytest.raises(ValidationError):
            DndAttributes(**scores)


class TestTimelineEvent:
    def test_strips(self):
        event = TimelineEvent(age=" 1 year ", description=" Grew up. ")
        assert event.model_dump() == {"age": "1 year", "description": "Grew up."}

    def test_empty_rejected(self):
        with pytest.raises(ValidationError):
            TimelineEvent(age="  ", description="x")

    def test_none_rejected(self):
        with pytest.raises(ValidationError):
            TimelineEvent(age=None, description="x")


class TestCatDetails:
    def test_aliases(self):
        details = CatDetails.model_validate(
            {
                "backstory": "A story.",
                "personalityType": {"code": "ISFP", "title": "The Adventurer"},
                "dndAttributes": SCORES,
            }
        )
        assert details.personality_type == PersonalityType(code="ISFP", title="The Adventurer")
        assert details.timeline == []
        assert details.model_dump(by_alias=True)["dndAttributes"] == SCORES
