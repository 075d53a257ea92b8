"""Cat Generator - layered cat portraits with generated personalities and backstories."""

__version__ = "0.1.0"

from catgen.core.config import CatgenConfig, config

__all__ = [
    "CatgenConfig",
    "config",
]
