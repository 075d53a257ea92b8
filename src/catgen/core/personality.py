"""Myers-Briggs personality types used as flavor text.

The model is asked for a four-letter code and a title; this table supplies
the canonical title and a one-line description for the sixteen known codes.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class PersonalityType(BaseModel):
    """A personality type as exchanged with the client.

    ``description`` is filled in from :data:`MBTI_TYPES` when the code is
    known.
    """

    code: str = Field(..., min_length=1, description="Four-letter MBTI code, e.g. 'INFJ'.")
    title: str = Field(default="", description="Type title, e.g. 'The Advocate'.")
    description: str | None = Field(default=None, description="Short description of the type.")


_TYPES: list[tuple[str, str, str]] = [
    ("INFJ", "The Advocate", "Quiet, mystical and insightful. Thoughtful idealists deeply committed to their values and to those they care about."),
    ("INFP", "The Mediator", "Imaginative, open-minded and caring. Creative idealists seeking inner harmony and meaningful connections."),
    ("INTJ", "The Architect", "Independent, innovative and strategic. Analytical problem-solvers who value knowledge and competence."),
    ("INTP", "The Logician", "Inventive, curious and theoretical. Logical thinkers who enjoy exploring ideas and untangling hard problems."),
    ("ISFJ", "The Defender", "Warm, considerate and dedicated. Practical helpers committed to meeting others' needs with care."),
    ("ISFP", "The Adventurer", "Gentle, artistic and sensitive. Spontaneous creators who live in the moment and value personal freedom."),
    ("ISTJ", "The Logistician", "Reliable, precise and organized. Practical planners who value tradition, order and follow-through."),
    ("ISTP", "The Virtuoso", "Adaptable, observant and practical. Skilled troubleshooters who like to find out how things work."),
    ("ENFJ", "The Protagonist", "Charismatic, inspiring and empathetic. Natural leaders who help others reach their potential."),
    ("ENFP", "The Campaigner", "Enthusiastic, creative and sociable. Energetic idea-generators who see possibilities everywhere."),
    ("ENTJ", "The Commander", "Decisive, strategic and assertive. Leaders who organize people and resources to reach a goal."),
    ("ENTP", "The Debater", "Quick, clever and argumentative. Intellectual explorers who enjoy challenging assumptions."),
    ("ESFJ", "The Consul", "Warm, social and supportive. Attentive caregivers who value harmony and welcoming surroundings."),
    ("ESFP", "The Entertainer", "Spontaneous, energetic and playful. Vivacious performers who make life fun for everyone nearby."),
    ("ESTJ", "The Executive", "Efficient, organized and direct. Practical implementers who value order and stability."),
    ("ESTP", "The Entrepreneur", "Energetic, action-oriented and perceptive. Risk-takers who love excitement and immediate problems."),
]

MBTI_TYPES: dict[str, PersonalityType] = {
    code: PersonalityType(code=code, title=title, description=description)
    for code, title, description in _TYPES
}


def get_personality_type(code: str | None) -> PersonalityType | None:
    """Look up a personality type by code, case-insensitively."""
    if not code:
        return None
    return MBTI_TYPES.get(code.strip().upper())


def describe(personality: PersonalityType) -> PersonalityType:
    """Normalise the code and attach the known description.

    The model's title is kept when it gave one; unknown codes are returned
    unchanged apart from upper-casing.
    """
    code = personality.code.strip().upper()
    known = MBTI_TYPES.get(code)
    if known is None:
        return personality.model_copy(update={"code": code})
    return PersonalityType(
        code=code,
        title=personality.title.strip() or known.title,
        description=known.description,
    )
