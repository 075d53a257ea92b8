"""Cat Generator - FastAPI Application.

This module is the single entry point for the web application.  It defines
the FastAPI ``app`` instance, all REST API routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
- **Portraits** are composed by :class:`~catgen.core.compositor.AssetCompositor`
  from the layered PNG tree under ``config.assets_dir``.
- **Flavor text** is generated by :class:`~catgen.core.generation.CatStoryteller`,
  which wraps every model call in the fallback policy: dependency failures
  come back as HTTP 200 with canned data and an ``error`` field.
- **Backstories** are handed from the streaming endpoint to the timeline
  endpoint through a :class:`~catgen.core.backstory_store.BackstoryStore`.
- All three components live on ``app.state`` and are reached through
  dependency functions, so tests (or a deployment with a shared cache) can
  swap them.

Endpoints
---------
========  ============================  ====================================
Method    Path                          Purpose
========  ============================  ====================================
GET       ``/api/health``               Liveness and version
GET       ``/api/personality-types``    MBTI lookup table
GET       ``/api/cat-image``            New random portrait (PNG)
POST      ``/api/cat-details``          Name suggestion / combined details
POST      ``/api/cat-personality``      Personality type
POST      ``/api/cat-dnd-attributes``   Ability scores
POST      ``/api/cat-basic-info``       Personality + ability scores
POST      ``/api/cat-backstory-stream`` Streamed backstory (SSE)
POST      ``/api/cat-timeline``         Timeline from a backstory
========  ============================  ====================================

Usage
-----
CLI (installed entry point)::

    catgen

Direct invocation::

    python -m catgen.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse

from catgen import __version__
from catgen.api.models import (
    AttributesRequest,
    BackstoryStreamRequest,
    CatRequest,
    DetailsRequest,
    TimelineRequest,
)
from catgen.core.backstory_store import BackstoryStore
from catgen.core.compositor import AssetCompositor
from catgen.core.config import CatgenConfig, config
from catgen.core.errors import AssetMissingError, InputValidationError
from catgen.core.fallback import FallbackResult
from catgen.core.generation import CatStoryteller, strip_data_url
from catgen.core.personality import MBTI_TYPES
from catgen.core.prompts import load_cat_data
from catgen.core.story_model import StoryModel

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Application lifecycle.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Log startup and release the model client on shutdown.

    The OpenAI client is created lazily by :class:`StoryModel`, so startup
    does not need a credential.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    logger.info(
        "Cat Generator %s starting (model=%s, assets=%s).",
        __version__,
        app.state.storyteller.model.model_name,
        app.state.compositor.assets_dir,
    )

    yield  # Application runs here.

    app.state.storyteller.model.close()


# ---------------------------------------------------------------------------
# Dependencies.
# ---------------------------------------------------------------------------


def get_storyteller(request: Request) -> CatStoryteller:
    return request.app.state.storyteller


def get_compositor(request: Request) -> AssetCompositor:
    return request.app.state.compositor


def get_backstory_store(request: Request) -> BackstoryStore:
    return request.app.state.backstory_store


# ---------------------------------------------------------------------------
# Error handlers.
# ---------------------------------------------------------------------------


async def _input_validation_handler(request: Request, exc: InputValidationError) -> JSONResponse:
    logger.info("Rejected %s: %s", request.url.path, exc.message)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.info("Malformed body for %s: %s", request.url.path, exc.errors())
    return JSONResponse({"error": "Invalid request body"}, status_code=400)


def _with_error(payload: dict, result: FallbackResult) -> dict:
    """Attach the fallback reason, if any, to a response payload."""
    if result.error:
        payload["error"] = result.error
    return payload


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(
    settings: CatgenConfig | None = None,
    *,
    storyteller: CatStoryteller | None = None,
    compositor: AssetCompositor | None = None,
    backstory_store: BackstoryStore | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Components not supplied are built from *settings* (the global
    :data:`~catgen.core.config.config` by default).
    """
    settings = settings or config

    application = FastAPI(
        title="Cat Generator",
        description="Layered cat portraits with model-generated personalities and backstories.",
        version=__version__,
        lifespan=lifespan,
    )

    application.state.settings = settings

    # Compare against None: an empty BackstoryStore is falsy.
    if storyteller is None:
        storyteller = CatStoryteller(
            StoryModel(settings),
            load_cat_data(settings.data_dir),
            min_backstory_length=settings.min_backstory_length,
            max_timeline_events=settings.max_timeline_events,
        )
    if compositor is None:
        compositor = AssetCompositor.from_config(settings)
    if backstory_store is None:
        backstory_store = BackstoryStore(ttl_seconds=settings.backstory_ttl_seconds)

    application.state.storyteller = storyteller
    application.state.compositor = compositor
    application.state.backstory_store = backstory_store

    # Allow cross-origin requests so a front end can be served from a
    # different port during development.
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(InputValidationError, _input_validation_handler)
    application.add_exception_handler(RequestValidationError, _request_validation_handler)

    _register_routes(application)
    return application


def _register_routes(application: FastAPI) -> None:
    """Attach every route to *application*."""

    @application.get("/api/health")
    async def health(request: Request) -> dict:
        """Return liveness, version and the configured model name."""
        return {
            "ok": True,
            "version": __version__,
            "model": request.app.state.storyteller.model.model_name,
        }

    @application.get("/api/personality-types")
    async def personality_types() -> dict:
        """Return the MBTI lookup table keyed by code."""
        return {code: p.model_dump() for code, p in MBTI_TYPES.items()}

    @application.get("/api/cat-image")
    def cat_image(compositor: AssetCompositor = Depends(get_compositor)) -> Response:
        """Compose a new random portrait.

        Returns:
            ``image/png`` bytes with ``Cache-Control: no-store``.  A missing
            or unreadable asset answers 500 with ``error`` and ``message``.
        """
        logger.info("Starting new cat image generation.")
        try:
            png = compositor.render_png()
        except AssetMissingError as e:
            logger.exception("Error generating cat image.")
            return JSONResponse(
                {"error": "Failed to generate cat image", "message": str(e)},
                status_code=500,
            )
        return Response(content=png, media_type="image/png", headers={"Cache-Control": "no-store"})

    @application.post("/api/cat-details")
    def cat_details(
        req: DetailsRequest,
        storyteller: CatStoryteller = Depends(get_storyteller),
        store: BackstoryStore = Depends(get_backstory_store),
    ) -> dict:
        """Suggest a name, or generate the combined details.

        Actions:

        - ``getName``: name suggestion plus the prefix and suffix lists.
        - ``getBackstory``: backstory, personality and attributes for
          ``name``.
        - ``getAll`` (default): as ``getBackstory`` plus a timeline,
          suggesting a name first when none is given.

        The generated backstory is saved in the backstory store.
        """
        image = strip_data_url(req.require_image())
        action = req.resolved_action()
        logger.info("cat-details action '%s' (name provided: %s).", action, bool(req.name))

        if action == "getName":
            name_result = storyteller.suggest_name(image)
            return _with_error(
                {
                    "success": True,
                    "name": name_result.value,
                    "prefixes": storyteller.cat_data.name_prefixes,
                    "suffixes": storyteller.cat_data.name_suffixes,
                },
                name_result,
            )

        name = req.name.strip() if req.name else storyteller.suggest_name(image).value
        details_result = storyteller.write_details(image, name)
        details = details_result.value
        store.save(name, details.backstory)

        payload = {
            "success": True,
            "name": name,
            "backstory": details.backstory,
            "personalityType": details.personality_type.model_dump(exclude_none=True),
            "dndAttributes": details.dnd_attributes.model_dump(),
        }
        if action == "getAll":
            payload["timeline"] = [event.model_dump() for event in details.timeline]
        return _with_error(payload, details_result)

    @application.post("/api/cat-personality")
    def cat_personality(
        req: CatRequest, storyteller: CatStoryteller = Depends(get_storyteller)
    ) -> dict:
        """Determine the cat's personality type."""
        image = req.require_image()
        name = req.require_name()
        result = storyteller.infer_personality(image, name)
        return _with_error({"personalityType": result.value.model_dump(exclude_none=True)}, result)

    @application.post("/api/cat-dnd-attributes")
    def cat_dnd_attributes(
        req: AttributesRequest, storyteller: CatStoryteller = Depends(get_storyteller)
    ) -> dict:
        """Assign ability scores conditioned on the personality type."""
        image = req.require_image()
        name = req.require_name()
        personality = req.require_personality()
        result = storyteller.assign_attributes(image, name, personality)
        return _with_error({"dndAttributes": result.value.model_dump()}, result)

    @application.post("/api/cat-basic-info")
    def cat_basic_info(
        req: CatRequest, storyteller: CatStoryteller = Depends(get_storyteller)
    ) -> dict:
        """Personality type and ability scores from a single model call."""
        image = req.require_image()
        name = req.require_name()
        result = storyteller.infer_basic_info(image, name)
        personality, attributes = result.value
        return _with_error(
            {
                "personalityType": personality.model_dump(exclude_none=True),
                "dndAttributes": attributes.model_dump(),
            },
            result,
        )

    @application.post("/api/cat-backstory-stream")
    def cat_backstory_stream(
        req: BackstoryStreamRequest,
        storyteller: CatStoryteller = Depends(get_storyteller),
        store: BackstoryStore = Depends(get_backstory_store),
    ) -> Response:
        """Stream a backstory as server-sent events.

        The upstream completion is opened before the response starts; if
        that fails the endpoint answers 500.  Once streaming has begun,
        failures become a terminal ``error`` event.
        """
        image = req.require_image()
        name = req.require_name()

        try:
            deltas = storyteller.open_backstory_stream(image, name, req.personality())
        except Exception:
            logger.exception("Could not open backstory stream for %s.", name)
            return JSONResponse({"error": "An error occurred"}, status_code=500)

        return StreamingResponse(
            storyteller.backstory_events(deltas, name, store),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    @application.post("/api/cat-timeline")
    def cat_timeline(
        req: TimelineRequest,
        storyteller: CatStoryteller = Depends(get_storyteller),
        store: BackstoryStore = Depends(get_backstory_store),
    ) -> dict:
        """Extract a timeline from a backstory.

        Always answers 200.  When neither the body nor the backstory store
        yields a usable backstory, the generic timeline is returned with an
        ``error`` field.
        """
        logger.info(
            "Timeline requested for %s (backstory length: %d).",
            req.name,
            len(req.backstory or ""),
        )
        result = storyteller.build_timeline(req.name, req.backstory, store, req.personality_code)
        return result.to_payload()


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~catgen.core.config.config` (which
    loads from ``CATGEN_SERVER_HOST`` and ``CATGEN_SERVER_PORT``
    environment variables).  Defaults to ``0.0.0.0:3000``.

    This function is registered as the ``catgen`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    uvicorn.run(
        "catgen.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
