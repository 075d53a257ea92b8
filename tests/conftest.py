"""Shared pytest fixtures for Cat Generator tests."""

from __future__ import annotations

import base64
import io
import random
import shutil
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from catgen.api.main import create_app
from catgen.core.backstory_store import BackstoryStore
from catgen.core.compositor import AssetCompositor
from catgen.core.config import CatgenConfig
from catgen.core.generation import CatStoryteller
from catgen.core.prompts import CatData
from catgen.core.story_model import StoryModel
from tests.helpers import BLACK, BLUE, GREEN, RED, WHITE, YELLOW

LAYER_SIZE = (8, 8)


# ---------------------------------------------------------------------------
# File system fixtures.
# ---------------------------------------------------------------------------


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


def write_layer(
    path: Path,
    boxes: list[tuple[tuple[int, int, int, int], tuple[int, int, int, int]]] = (),
    size: tuple[int, int] = LAYER_SIZE,
    fill: tuple[int, int, int, int] | None = None,
) -> Path:
    """Write a transparent PNG with optional full fill and opaque boxes.

    Args:
        path: Destination file; parent directories are created.
        boxes: ``((x0, y0, x1, y1), colour)`` pairs, bounds inclusive.
        size: Image size.
        fill: Colour for the whole image, transparent when ``None``.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    image = Image.new("RGBA", size, fill or (0, 0, 0, 0))
    for (x0, y0, x1, y1), colour in boxes:
        for x in range(x0, x1 + 1):
            for y in range(y0, y1 + 1):
                image.putpixel((x, y), colour)
    image.save(path, format="PNG")
    return path


@pytest.fixture
def make_layer() -> Callable[..., Path]:
    """Return the :func:`write_layer` helper."""
    return write_layer


@pytest.fixture
def asset_tree(temp_dir: Path) -> Path:
    """Create a complete asset tree with one file per layer.

    Layout (8x8 pixels):

    - base: solid red
    - patterns/stripes: green top half
    - eyes: blue square at (0..1, 0..1)
    - mouth: white square at (6..7, 6..7)
    - lines: black pixel at (0, 0)
    - accessories/hats: yellow pixel at (7, 0)

    Returns:
        The assets root.
    """
    root = temp_dir / "assets"
    write_layer(root / "base" / "red.png", fill=RED)
    write_layer(root / "patterns" / "stripes" / "top.png", boxes=[((0, 0, 7, 3), GREEN)])
    write_layer(root / "eyes" / "round.png", boxes=[((0, 0, 1, 1), BLUE)])
    write_layer(root / "mouth" / "smile.png", boxes=[((6, 6, 7, 7), WHITE)])
    write_layer(root / "lines" / "outline.png", boxes=[((0, 0, 0, 0), BLACK)])
    write_layer(root / "accessories" / "hats" / "crown.png", boxes=[((7, 0, 7, 0), YELLOW)])
    return root


@pytest.fixture
def png_base64() -> str:
    """A tiny PNG portrait, base64-encoded."""
    buffer = io.BytesIO()
    Image.new("RGBA", (2, 2), RED).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


# ---------------------------------------------------------------------------
# Configuration and components.
# ---------------------------------------------------------------------------


@pytest.fixture
def test_config(temp_dir: Path, asset_tree: Path) -> CatgenConfig:
    """Create a test configuration pointing at the temporary asset tree.

    Args:
        temp_dir: Temporary directory from fixture
        asset_tree: Asset root from fixture

    Returns:
        CatgenConfig instance for testing
    """
    return CatgenConfig(
        openai_api_key="test-key",  # Never used, the client is mocked
        openai_model="test-model",
        assets_dir=asset_tree,
        debug_dir=temp_dir / "debug",
        debug_snapshots=False,
        head_accessory_probability=0.8,
    )


@pytest.fixture
def cat_data() -> CatData:
    return CatData(
        name_prefixes=["Whisker", "Shadow"],
        name_suffixes=["paws", "tail"],
        backstory_prompts=["A cat who was once a ship's mascot."],
    )


@pytest.fixture
def mock_openai() -> MagicMock:
    """A stand-in for ``openai.OpenAI``.

    Tests configure ``mock_openai.chat.completions.create`` with a
    ``return_value`` or ``side_effect`` built from :func:`json_completion`
    and :func:`stream_chunks`.
    """
    client = MagicMock()
    client.chat.completions.create.side_effect = RuntimeError("No response configured")
    return client


@pytest.fixture
def story_model(test_config: CatgenConfig, mock_openai: MagicMock) -> StoryModel:
    return StoryModel(test_config, client=mock_openai)


@pytest.fixture
def storyteller(story_model: StoryModel, cat_data: CatData) -> CatStoryteller:
    return CatStoryteller(story_model, cat_data, rng=random.Random(0))


@pytest.fixture
def backstory_store() -> BackstoryStore:
    return BackstoryStore()


@pytest.fixture
def app(
    test_config: CatgenConfig,
    storyteller: CatStoryteller,
    backstory_store: BackstoryStore,
):
    """FastAPI application wired to the mocked model and temp assets."""
    return create_app(
        test_config,
        storyteller=storyteller,
        compositor=AssetCompositor.from_config(test_config),
        backstory_store=backstory_store,
    )


@pytest.fixture
def test_client(app) -> Generator[TestClient, None, None]:
    """FastAPI TestClient; runs the application lifespan."""
    with TestClient(app) as client:
        yield client
