"""Pydantic request models for the Cat Generator API.

These models define the JSON bodies accepted by the generation endpoints.
Field names follow the camelCase keys the client sends (``imageBase64``,
``personalityType``); snake_case names are accepted too.

Every field is optional at the schema level.  Required inputs are checked
by the ``require_*`` helpers instead, so a missing image or name produces a
400 with a readable ``error`` message rather than FastAPI's generic 422.

Models
------
CatRequest
    ``imageBase64`` + ``name``: personality, basic info.
AttributesRequest
    ``CatRequest`` + ``personalityType``: attributes.
BackstoryStreamRequest
    ``CatRequest`` + optional ``personalityType``: streaming backstory.
DetailsRequest
    ``imageData`` + ``action`` + ``name``: name suggestion and combined
    details.
TimelineRequest
    ``backstory`` + ``name`` + optional ``personalityType``: timeline.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from catgen.core.errors import InputValidationError
from catgen.core.personality import PersonalityType

NO_IMAGE = "No image data provided"
NO_NAME = "No name provided"
NO_PERSONALITY = "No personality type provided"
INVALID_ACTION = "Invalid action specified or missing name"

DETAIL_ACTIONS = ("getName", "getBackstory", "getAll")


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class PersonalityInput(BaseModel):
    """Personality type as sent back by the client; both parts optional."""

    model_config = ConfigDict(extra="ignore")

    code: str | None = Field(default=None, description="Four-letter MBTI code.")
    title: str | None = Field(default=None, description="Type title.")

    def to_personality(self) -> PersonalityType | None:
        if not self.code or not self.code.strip():
            return None
        return PersonalityType(code=self.code.strip(), title=(self.title or "").strip())


class CatRequest(BaseModel):
    """Request body carrying the portrait and the cat's name.

    Attributes:
        image_base64: PNG portrait, base64-encoded (``imageBase64``).
        name: The cat's name.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    image_base64: str | None = Field(
        default=None,
        alias="imageBase64",
        description="Base64-encoded PNG portrait.",
    )
    name: str | None = Field(
        default=None,
        description="The cat's name.",
    )

    @field_validator("image_base64", "name", mode="before")
    @classmethod
    def blank_is_missing(cls, value: Any) -> Any:
        return _blank_to_none(value)

    def require_image(self) -> str:
        """Return the image, or raise the 400 for a missing one."""
        if not self.image_base64:
            raise InputValidationError(NO_IMAGE)
        return self.image_base64

    def require_name(self) -> str:
        if not self.name:
            raise InputValidationError(NO_NAME)
        return self.name.strip()


class AttributesRequest(CatRequest):
    """Request body for ``POST /api/cat-dnd-attributes``."""

    personality_type: PersonalityInput | None = Field(
        default=None,
        alias="personalityType",
        description="Personality type from the previous step.",
    )

    def require_personality(self) -> PersonalityType:
        personality = self.personality_type.to_personality() if self.personality_type else None
        if personality is None:
            raise InputValidationError(NO_PERSONALITY)
        return personality


class BackstoryStreamRequest(CatRequest):
    """Request body for ``POST /api/cat-backstory-stream``."""

    personality_type: PersonalityInput | None = Field(
        default=None,
        alias="personalityType",
        description="Optional personality type used as story context.",
    )

    def personality(self) -> PersonalityType | None:
        return self.personality_type.to_personality() if self.personality_type else None


class DetailsRequest(BaseModel):
    """Request body for ``POST /api/cat-details``.

    Attributes:
        image_data: Portrait as base64 or a ``data:image/png;base64,`` URL
            (``imageData``).
        action: ``getName``, ``getBackstory`` or ``getAll`` (default).
        name: Required for ``getBackstory``; suggested when missing for
            ``getAll``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    image_data: str | None = Field(
        default=None,
        alias="imageData",
        description="Portrait as base64 or data URL.",
    )
    action: str | None = Field(
        default=None,
        description="getName, getBackstory or getAll.",
    )
    name: str | None = Field(
        default=None,
        description="The cat's name.",
    )

    @field_validator("image_data", "action", "name", mode="before")
    @classmethod
    def blank_is_missing(cls, value: Any) -> Any:
        return _blank_to_none(value)

    def require_image(self) -> str:
        if not self.image_data:
            raise InputValidationError(NO_IMAGE)
        return self.image_data

    def resolved_action(self) -> str:
        action = self.action or "getAll"
        if action not in DETAIL_ACTIONS or (action == "getBackstory" and not self.name):
            raise InputValidationError(INVALID_ACTION)
        return action


class TimelineRequest(BaseModel):
    """Request body for ``POST /api/cat-timeline``.

    The timeline endpoint never rejects a request: values of the wrong type
    are treated as missing and handled by the fallback timeline.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    backstory: str | None = Field(
        default=None,
        description="Backstory text accumulated by the client.",
    )
    name: str | None = Field(
        default=None,
        description="The cat's name, used to recover a stored backstory.",
    )
    personality_type: PersonalityInput | None = Field(
        default=None,
        alias="personalityType",
        description="Optional personality type.",
    )

    @field_validator("backstory", "name", mode="before")
    @classmethod
    def non_string_is_missing(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return None
        return value

    @field_validator("personality_type", mode="before")
    @classmethod
    def malformed_personality_is_missing(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @property
    def personality_code(self) -> str | None:
        return self.personality_type.code if self.personality_type else None
