"""Pydantic models for the generated cat profile.

These are the shapes the parsers in :mod:`catgen.core.generation` validate
model output against, and the shapes returned to the client.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from catgen.core.personality import PersonalityType

ATTRIBUTE_NAMES = ("strength", "dexterity", "constitution", "intelligence", "wisdom", "charisma")

MIN_SCORE = 1
MAX_SCORE = 20


def _clamp_score(value: Any) -> int:
    """Coerce a model-provided score to an int within [1, 20]."""
    if isinstance(value, bool):
        raise ValueError("score must be a number")
    if isinstance(value, str):
        value = value.strip()
    score = int(round(float(value)))
    return max(MIN_SCORE, min(MAX_SCORE, score))


class DndAttributes(BaseModel):
    """Six tabletop-RPG ability scores, each in [1, 20]."""

    strength: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    dexterity: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    constitution: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    intelligence: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    wisdom: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    charisma: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)

    @field_validator(*ATTRIBUTE_NAMES, mode="before")
    @classmethod
    def clamp(cls, value: Any) -> int:
        return _clamp_score(value)


class TimelineEvent(BaseModel):
    """One entry of a cat's life timeline."""

    age: str = Field(..., min_length=1, description="Age label, e.g. '6 months'.")
    description: str = Field(..., min_length=1, description="What happened.")

    @field_validator("age", "description", mode="before")
    @classmethod
    def stringify(cls, value: Any) -> str:
        if value is None:
            raise ValueError("value is required")
        return str(value).strip()


class CatDetails(BaseModel):
    """The combined backstory, personality, attributes and timeline."""

    backstory: str = Field(..., min_length=1)
    personality_type: PersonalityType = Field(..., alias="personalityType")
    dnd_attributes: DndAttributes = Field(..., alias="dndAttributes")
    timeline: list[TimelineEvent] = Field(default_factory=list)

    model_config = {"populate_by_name": True}
