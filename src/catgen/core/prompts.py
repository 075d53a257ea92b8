"""Prompt templates and story seeds for the generation steps.

Each generation step sends a fixed system instruction and a user message
(plus the cat portrait) to the chat model.  The templates are constants
rather than configuration because they define the shape of the JSON the
parsers in :mod:`catgen.core.generation` expect back.

The variable material, the name parts and the one-line "backstory prompts"
used as inspiration, lives in ``cats.json`` under ``config.data_dir`` so it
can be extended without code changes.
"""

from __future__ import annotations

import json
import logging
import random
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Story seeds.
# ---------------------------------------------------------------------------

_DEFAULT_SEED = "A cat with a mysterious past and a great deal of opinions."


@dataclass
class CatData:
    """Name parts and story seeds loaded from ``cats.json``."""

    name_prefixes: list[str] = field(default_factory=lambda: ["Whisker"])
    name_suffixes: list[str] = field(default_factory=lambda: ["paws"])
    backstory_prompts: list[str] = field(default_factory=lambda: [_DEFAULT_SEED])

    def random_name(self, rng: random.Random | None = None) -> str:
        """Combine one random prefix with one random suffix."""
        rng = rng or random
        return f"{rng.choice(self.name_prefixes)}{rng.choice(self.name_suffixes)}"

    def random_backstory_prompt(self, rng: random.Random | None = None) -> str:
        rng = rng or random
        return rng.choice(self.backstory_prompts)


def load_cat_data(data_dir: Path) -> CatData:
    """Load ``cats.json`` from *data_dir*.

    Missing or malformed files fall back to the built-in minimal lists so
    the application can still start.
    """
    path = data_dir / "cats.json"
    try:
        with open(path, encoding="utf-8") as handle:
            raw = json.load(handle)
    except (OSError, json.JSONDecodeError):
        logger.warning("Could not read %s, using built-in name lists.", path)
        return CatData()
    if not isinstance(raw, dict):
        logger.warning("%s does not hold a JSON object, using built-in name lists.", path)
        return CatData()

    defaults = CatData()
    return CatData(
        name_prefixes=list(raw.get("name_prefixes") or defaults.name_prefixes),
        name_suffixes=list(raw.get("name_suffixes") or defaults.name_suffixes),
        backstory_prompts=list(raw.get("backstory_prompts") or defaults.backstory_prompts),
    )


# ---------------------------------------------------------------------------
# Shared JSON shapes.
# ---------------------------------------------------------------------------

_PERSONALITY_SHAPE = """"personalityType": {
    "code": "The 4-letter Myers-Briggs personality type code (e.g., INFJ, ESTP)",
    "title": "The title of this personality type (e.g., 'The Advocate', 'The Entrepreneur')"
  }"""

_ATTRIBUTES_SHAPE = """"dndAttributes": {
    "strength": (integer between 1-20),
    "dexterity": (integer between 1-20),
    "constitution": (integer between 1-20),
    "intelligence": (integer between 1-20),
    "wisdom": (integer between 1-20),
    "charisma": (integer between 1-20)
  }"""

_TIMELINE_SHAPE = """"timeline": [
    {
      "age": "The age of the cat when the event occurred (e.g., '2 months', '1 year')",
      "description": "Description of a significant event in the cat's life"
    }
  ]"""

# ---------------------------------------------------------------------------
# Name.
# ---------------------------------------------------------------------------

NAME_SYSTEM = (
    "You are a cat naming expert. Based on the image of a cat, suggest which name from "
    "the following options fits best. Combine ONE prefix with ONE suffix. "
    "Prefixes: {prefixes}. Suffixes: {suffixes}. "
    "Return a JSON object with a single 'name' field containing the selected name."
)

NAME_USER = (
    "Please select the best name for this cat. Combine ONE prefix with ONE suffix:\n\n"
    "Prefixes: {prefixes}\nSuffixes: {suffixes}\n\nWhat name best suits this cat?"
)

# ---------------------------------------------------------------------------
# Personality and attributes.
# ---------------------------------------------------------------------------

PERSONALITY_SYSTEM = (
    "You are a cat personality expert. Based on the image of the cat named {name}, "
    "determine its Myers-Briggs personality type.\n\n"
    "Return a JSON object with ONLY the following structure:\n{{\n  "
    + _PERSONALITY_SHAPE.replace("{", "{{").replace("}", "}}")
    + "\n}}"
)

PERSONALITY_USER = (
    "This is an image of a cat named {name}. Using this prompt as inspiration: "
    '"{seed}", determine the cat\'s Myers-Briggs personality type (with both the '
    "4-letter code and the personality title)."
)

ATTRIBUTES_SYSTEM = (
    "You are a cat personality expert who specializes in translating feline traits into "
    "RPG attributes. Based on the image of the cat named {name} with personality type "
    "{code} ({title}), determine its D&D attributes.\n\n"
    "Return a JSON object with ONLY the following structure:\n{{\n  "
    + _ATTRIBUTES_SHAPE.replace("{", "{{").replace("}", "}}")
    + "\n}}"
)

ATTRIBUTES_USER = (
    "This is an image of a cat named {name} with personality type {code} ({title}). "
    'Using this prompt as inspiration: "{seed}", assign Dungeons & Dragons attributes '
    "(strength, dexterity, constitution, intelligence, wisdom, charisma) on a scale of "
    "1-20 that would match this cat's appearance and personality type."
)

BASIC_INFO_SYSTEM = (
    "You are a cat personality expert. Based on the image of the cat named {name}, "
    "determine its personality type and attributes.\n\n"
    "Return a JSON object with ONLY the following structure:\n{{\n  "
    + _PERSONALITY_SHAPE.replace("{", "{{").replace("}", "}}")
    + ",\n  "
    + _ATTRIBUTES_SHAPE.replace("{", "{{").replace("}", "}}")
    + "\n}}"
)

BASIC_INFO_USER = (
    "This is an image of a cat named {name}. Using this prompt as inspiration: "
    '"{seed}", determine the cat\'s Myers-Briggs personality type (with both the '
    "4-letter code and the personality title), and assign Dungeons & Dragons attributes "
    "(strength, dexterity, constitution, intelligence, wisdom, charisma) on a scale of 1-20."
)

# ---------------------------------------------------------------------------
# Combined details (backstory + personality + attributes + timeline).
# ---------------------------------------------------------------------------

DETAILS_SYSTEM = (
    "You are a creative writer and cat personality expert. Based on the image of the cat "
    "named {name}, create an engaging backstory and assign personality traits. Use this "
    'backstory prompt as a starting point and elaborate on it: "{seed}"\n\n'
    "Return a JSON object with the following structure:\n{{\n  "
    '"backstory": "A compelling 2-3 paragraph backstory that expands on the provided '
    "prompt and explains the cat's personality and notable quirks\",\n  "
    + _PERSONALITY_SHAPE.replace("{", "{{").replace("}", "}}")
    + ",\n  "
    + _ATTRIBUTES_SHAPE.replace("{", "{{").replace("}", "}}")
    + ",\n  "
    + _TIMELINE_SHAPE.replace("{", "{{").replace("}", "}}")
    + "\n}}\n\nInclude 5-7 key timeline events, from birth to present."
)

DETAILS_USER = (
    'This is an image of a cat named {name}. Starting with this prompt: "{seed}", create '
    "a compelling backstory that fits the cat's appearance. Also determine its "
    "Myers-Briggs personality type (with both the 4-letter code and the personality "
    "title), and assign Dungeons & Dragons attributes (strength, dexterity, constitution, "
    "intelligence, wisdom, charisma) on a scale of 1-20.\n\n"
    "Additionally, create a timeline of 5-7 key events in the cat's life from birth to "
    "present. Each event should include the cat's age when it happened and a brief "
    "description. These should align with the backstory you create."
)

# ---------------------------------------------------------------------------
# Streaming backstory.
# ---------------------------------------------------------------------------

BACKSTORY_SYSTEM = (
    "You are a creative writer specializing in cat storytelling. Based on the image of "
    "the cat named {name} with personality type {code} ({title}), create an engaging "
    'backstory.\n\nUse this backstory prompt as inspiration: "{seed}"\n\n'
    "IMPORTANT: DO NOT use any markdown formatting like ### or ## in your response. "
    "Just write plain text paragraphs.\n\n"
    "Write a compelling 2-3 paragraph backstory that explains the cat's personality, "
    "notable quirks, and key life events. Make it evocative and detailed. The timeline "
    "will be generated separately, so focus only on creating a cohesive narrative."
)

BACKSTORY_USER = (
    "This is an image of {name}, a cat with personality type {code} ({title}). "
    'Please create a compelling backstory based on this prompt: "{seed}".'
)

# ---------------------------------------------------------------------------
# Timeline from backstory.
# ---------------------------------------------------------------------------

TIMELINE_SYSTEM = """You extract storyline events from a cat's backstory and arrange them as a timeline.

You MUST create SPECIFIC timeline events that actually appear in the provided story.
You MUST NOT return generic cat development milestones.

For example, if the story mentions "a violent storm that separated the cat from its family",
include that as an event with an appropriate estimated age.

Your output MUST:
1. Include 5 distinct events that are EXPLICITLY mentioned or strongly implied in the backstory text
2. Assign plausible ages to each event based on context clues
3. Progress logically from birth to present
4. Include specific details from the backstory with direct references to story elements
5. Highlight character-defining moments that shaped the cat's personality

Your response MUST be valid JSON exactly matching this structure:
{ "timeline": [ { "age": "...", "description": "..." }, ... ] } with exactly 5 events."""

TIMELINE_USER = (
    "Here is the backstory for a cat named {name} (personality type: {code}):\n\n"
    "{backstory}\n\n"
    "Create a timeline of 5 SPECIFIC life events from this backstory. DO NOT use generic "
    'milestones like "Started exploring" or "Gained independence" unless these exact '
    "activities are explicitly mentioned.\n\n"
    "Each event must include:\n"
    "1. An estimated age when it occurred\n"
    "2. A detailed description referencing the actual content in the backstory\n\n"
    "Your response must be properly formatted JSON."
)
