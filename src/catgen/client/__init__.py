"""Cat Generator - client side.

Modules
-------
orchestrator
    State machine that drives one cat from image to timeline over HTTP.
cli
    Terminal front end (``catgen-client`` console script).
"""

from catgen.client.orchestrator import CatProfile, PageOrchestrator, PageState

__all__ = [
    "CatProfile",
    "PageOrchestrator",
    "PageState",
]
