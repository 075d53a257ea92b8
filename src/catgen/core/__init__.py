"""Core functionality for portrait compositing and story generation.

This module provides the core components for the Cat Generator:

- **AssetCompositor**: Random layer selection and alpha compositing
- **CatStoryteller**: Model-backed name, personality, attribute, backstory
  and timeline generation, each with a fallback value
- **StoryModel**: Thin wrapper around the hosted chat-completion API
- **BackstoryStore**: Time-limited in-memory hand-off of finished backstories
- **CatgenConfig**: Configuration management using Pydantic Settings
- **config**: Global configuration instance (loads from environment variables)

Architecture Overview
---------------------
1. **Configuration Layer** (config.py):
   - Environment-based configuration using Pydantic Settings
   - All settings prefixed with CATGEN_ in .env files

2. **Portrait Layer** (compositor.py):
   - Scans the asset tree on every call
   - Stacks base, pattern, eyes, mouth, lines and accessory layers

3. **Story Layer** (story_model.py, prompts.py, generation.py, models.py):
   - Prompt templates and story seeds
   - JSON parsing and validation of model answers
   - Fallback policy (fallback.py) so every step returns a usable value

4. **Support Utilities**:
   - sse.py: Server-sent event encoding and incremental decoding
   - backstory_store.py: TTL key-value store
   - personality.py: The sixteen Myers-Briggs types

Usage Example
-------------
    from catgen.core import AssetCompositor, config

    compositor = AssetCompositor.from_config(config)
    png_bytes = compositor.render_png()

See Also
--------
- CatgenConfig: Configuration options and environment variables
- catgen.api.main: HTTP endpoints built on these components
"""

from catgen.core.backstory_store import BackstoryStore
from catgen.core.compositor import AssetCompositor
from catgen.core.config import CatgenConfig, config
from catgen.core.generation import CatStoryteller
from catgen.core.story_model import StoryModel

__all__ = [
    "AssetCompositor",
    "BackstoryStore",
    "CatStoryteller",
    "CatgenConfig",
    "StoryModel",
    "config",
]
