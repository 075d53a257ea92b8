"""Configuration management for the Cat Generator.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the CATGEN_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (CATGEN_* prefix)
2. .env file in the project root
3. Default values defined in CatgenConfig

The model provider credential is the one exception to the prefix rule: it is
read from ``CATGEN_OPENAI_API_KEY`` or, more commonly, the standard
``OPENAI_API_KEY`` variable.

Example .env file:
    OPENAI_API_KEY=sk-...
    CATGEN_OPENAI_MODEL=gpt-4o
    CATGEN_ASSETS_DIR=assets
    CATGEN_DEBUG_SNAPSHOTS=true

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
This ensures a single source of truth for all configuration values across
the application.

Usage Example
-------------
    from catgen.core.config import config

    print(config.openai_model)
    print(config.assets_dir)

Asset Layout
------------
``assets_dir`` must contain the layer directories read by
:mod:`catgen.core.compositor`::

    assets/
        base/            fur base colours (mandatory)
        eyes/            (mandatory)
        mouth/           (mandatory)
        lines/           line art (mandatory)
        patterns/<category>/   fur patterns (optional)
        accessories/<kind>/    head accessories (optional)

See Also
--------
- CatgenConfig: Full configuration class documentation
"""

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Bundled data files (name lists, backstory prompts) ship inside the package.
_PACKAGE_DATA_DIR = Path(__file__).resolve().parent.parent / "data"


class CatgenConfig(BaseSettings):
    """Main configuration for the Cat Generator.

    Attributes
    ----------
    Model Settings:
        openai_api_key : str | None
            Credential for the hosted chat-completion API.  When absent,
            every model-backed call fails and the endpoints answer with
            their fallback payloads.
        openai_model : str
            Multimodal chat model used for every generation step.

    Compositor Settings:
        assets_dir : Path
            Root of the layered PNG asset tree.
        head_accessory_probability : float
            Chance that a portrait receives a head accessory.
        debug_snapshots : bool
            Write intermediate compositing snapshots to ``debug_dir``.
        debug_dir : Path
            Scratch directory for debug snapshots.

    Story Settings:
        data_dir : Path
            Directory holding ``cats.json`` (name parts and story seeds).
        backstory_ttl_seconds : int
            Lifetime of a backstory in the in-memory store.
        min_backstory_length : int
            Shortest backstory the timeline step will work from.
        max_timeline_events : int
            Upper bound on timeline entries returned to the client.

    Server Settings:
        server_host : str
            Bind address for uvicorn.
        server_port : int
            Bind port for uvicorn (1024-65535).
        client_base_url : str
            Server URL used by the terminal client.

    Examples
    --------
        >>> custom_config = CatgenConfig(
        ...     openai_model="gpt-4o-mini",
        ...     head_accessory_probability=0.5,
        ... )
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CATGEN_",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Model settings
    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("openai_api_key", "CATGEN_OPENAI_API_KEY", "OPENAI_API_KEY"),
        description="API key for the model provider",
    )
    openai_model: str = Field(
        default="gpt-4o",
        description="Multimodal chat-completion model",
    )

    # Compositor settings
    assets_dir: Path = Field(
        default=Path("assets"),
        description="Root directory of the layered PNG assets",
    )
    head_accessory_probability: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Probability that a head accessory layer is added",
    )
    debug_snapshots: bool = Field(
        default=False,
        description="Write intermediate compositing images to debug_dir",
    )
    debug_dir: Path = Field(
        default=Path("debug-images"),
        description="Directory for debug snapshots",
    )

    # Story settings
    data_dir: Path = Field(
        default=_PACKAGE_DATA_DIR,
        description="Directory containing cats.json",
    )
    backstory_ttl_seconds: int = Field(
        default=30 * 60,
        ge=1,
        description="Seconds a backstory stays in the in-memory store",
    )
    min_backstory_length: int = Field(
        default=100,
        ge=0,
        description="Minimum backstory length accepted by the timeline step",
    )
    max_timeline_events: int = Field(
        default=7,
        ge=1,
        description="Maximum number of timeline events returned",
    )

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    server_port: int = Field(
        default=3000,
        description="Server port",
        ge=1024,
        le=65535,
    )
    client_base_url: str = Field(
        default="http://127.0.0.1:3000",
        description="Base URL the terminal client talks to",
    )


# Global configuration instance
# Loads values from environment variables (CATGEN_* prefix, plus OPENAI_API_KEY)
# and the .env file.
config = CatgenConfig()
