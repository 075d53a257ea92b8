"""Layered cat portrait compositing.

A portrait is stacked from transparent PNG layers, one per category, in a
fixed order::

    base colour -> [fur pattern] -> eyes -> mouth -> line art -> [head accessory]

Every layer above the base is blended with standard alpha-over compositing.

Asset Layout
------------
::

    <assets_dir>/
        base/                  one PNG per fur base colour
        eyes/
        mouth/
        lines/
        patterns/<category>/   fur patterns grouped by category
        accessories/<kind>/    head accessories grouped by kind

The four flat directories are mandatory; an empty or missing one raises
:class:`~catgen.core.errors.AssetMissingError`.  The two grouped
directories are optional: a category (or kind) is chosen uniformly among the
non-empty sub-directories, then one file within it.  The fur pattern is
always added when any pattern exists; the head accessory is added with
probability ``head_accessory_probability`` (0.8 by default).

Nothing is cached.  Each call rescans the directories and renders from
scratch, so new assets are picked up without a restart.
"""

from __future__ import annotations

import io
import logging
import random
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from catgen.core.config import CatgenConfig
from catgen.core.errors import AssetMissingError

logger = logging.getLogger(__name__)

BASE_DIR = "base"
EYES_DIR = "eyes"
MOUTH_DIR = "mouth"
LINES_DIR = "lines"
PATTERNS_DIR = "patterns"
ACCESSORIES_DIR = "accessories"

DEFAULT_HEAD_ACCESSORY_PROBABILITY = 0.8


def list_pngs(directory: Path) -> list[Path]:
    """Return the visible ``.png`` files in *directory*, sorted by name.

    Sorting keeps selection reproducible for a seeded RNG regardless of the
    order the file system lists entries in.
    """
    if not directory.is_dir():
        return []
    return sorted(
        p
        for p in directory.iterdir()
        if p.is_file() and p.suffix.lower() == ".png" and not p.name.startswith(".")
    )


def list_groups(directory: Path) -> list[Path]:
    """Return the sub-directories of *directory* that hold at least one PNG."""
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.is_dir() and list_pngs(p))


@dataclass(frozen=True)
class LayerSelection:
    """One file per layer category.

    Attributes:
        base: Fur base colour (mandatory).
        eyes: Eyes (mandatory).
        mouth: Mouth (mandatory).
        lines: Line art (mandatory).
        pattern: Fur pattern, or ``None``.
        accessory: Head accessory, or ``None``.
    """

    base: Path
    eyes: Path
    mouth: Path
    lines: Path
    pattern: Path | None = None
    accessory: Path | None = None

    def layers(self) -> list[tuple[str, Path]]:
        """Return ``(category, path)`` pairs in compositing order."""
        ordered: list[tuple[str, Path | None]] = [
            ("base", self.base),
            ("pattern", self.pattern),
            ("eyes", self.eyes),
            ("mouth", self.mouth),
            ("lines", self.lines),
            ("accessory", self.accessory),
        ]
        return [(name, path) for name, path in ordered if path is not None]


class AssetCompositor:
    """Selects and flattens cat portrait layers.

    Args:
        assets_dir: Root of the asset tree.
        head_accessory_probability: Chance of adding a head accessory.
        debug_dir: When set, intermediate snapshots are written here.
    """

    def __init__(
        self,
        assets_dir: Path,
        head_accessory_probability: float = DEFAULT_HEAD_ACCESSORY_PROBABILITY,
        debug_dir: Path | None = None,
    ) -> None:
        self._assets_dir = Path(assets_dir)
        self._accessory_probability = head_accessory_probability
        self._debug_dir = Path(debug_dir) if debug_dir else None

    @classmethod
    def from_config(cls, config: CatgenConfig) -> AssetCompositor:
        return cls(
            assets_dir=config.assets_dir,
            head_accessory_probability=config.head_accessory_probability,
            debug_dir=config.debug_dir if config.debug_snapshots else None,
        )

    @property
    def assets_dir(self) -> Path:
        return self._assets_dir

    # -- Selection ----------------------------------------------------------

    def _pick_required(self, category: str, rng: random.Random) -> Path:
        files = list_pngs(self._assets_dir / category)
        if not files:
            raise AssetMissingError(f"No PNG files found in {self._assets_dir / category}")
        return rng.choice(files)

    def _pick_grouped(self, category: str, rng: random.Random) -> Path | None:
        groups = list_groups(self._assets_dir / category)
        if not groups:
            logger.info("No %s groups available.", category)
            return None
        group = rng.choice(groups)
        candidates = [p for p in list_pngs(group) if p.stat().st_size > 0]
        if not candidates:
            logger.warning("All %s files in '%s' are empty.", category, group.name)
            return None
        return rng.choice(candidates)

    def select_layers(self, rng: random.Random | None = None) -> LayerSelection:
        """Draw a fresh random selection.

        Args:
            rng: Source of randomness.  Defaults to a freshly seeded
                :class:`random.Random`.

        Raises:
            AssetMissingError: If a mandatory directory has no PNG files.
        """
        rng = rng or random.Random()

        base = self._pick_required(BASE_DIR, rng)
        eyes = self._pick_required(EYES_DIR, rng)
        mouth = self._pick_required(MOUTH_DIR, rng)
        lines = self._pick_required(LINES_DIR, rng)

        pattern = self._pick_grouped(PATTERNS_DIR, rng)

        # The accessory roll happens before the directory scan so the
        # probability holds regardless of how many kinds exist.
        accessory = None
        if rng.random() < self._accessory_probability:
            accessory = self._pick_grouped(ACCESSORIES_DIR, rng)

        selection = LayerSelection(
            base=base,
            eyes=eyes,
            mouth=mouth,
            lines=lines,
            pattern=pattern,
            accessory=accessory,
        )
        logger.info(
            "Selected layers: %s",
            ", ".join(f"{name}={path.name}" for name, path in selection.layers()),
        )
        return selection

    # -- Compositing --------------------------------------------------------

    @staticmethod
    def _open_layer(path: Path) -> Image.Image:
        try:
            with Image.open(path) as img:
                return img.convert("RGBA")
        except (OSError, UnidentifiedImageError) as e:
            raise AssetMissingError(f"Cannot read layer {path}: {e}") from e

    def compose(self, selection: LayerSelection) -> Image.Image:
        """Flatten *selection* into a single RGBA image.

        Layers whose size differs from the base are resized to the base
        size before blending.

        Raises:
            AssetMissingError: If any selected file cannot be read.
        """
        layers = selection.layers()
        _, base_path = layers[0]
        canvas = self._open_layer(base_path)
        self._snapshot(canvas, "1-base-color.png")

        for name, path in layers[1:]:
            layer = self._open_layer(path)
            if layer.size != canvas.size:
                logger.warning(
                    "Layer '%s' is %s, resizing to %s.", path.name, layer.size, canvas.size
                )
                layer = layer.resize(canvas.size)
            if name == "pattern":
                self._snapshot(layer, "debug-fur-pattern.png")
            canvas = Image.alpha_composite(canvas, layer)

        self._snapshot(canvas, "final-composite.png")
        return canvas

    def render_png(self, rng: random.Random | None = None) -> bytes:
        """Select, compose and encode a new portrait as PNG bytes."""
        image = self.compose(self.select_layers(rng))
        buffer = io.BytesIO()
        image.save(buffer, format="PNG", optimize=True)
        data = buffer.getvalue()
        logger.info("Rendered cat portrait (%d bytes).", len(data))
        return data

    def _snapshot(self, image: Image.Image, filename: str) -> None:
        """Write a diagnostic copy of *image*; failures are only logged."""
        if self._debug_dir is None:
            return
        try:
            self._debug_dir.mkdir(parents=True, exist_ok=True)
            image.save(self._debug_dir / filename, format="PNG")
        except OSError:
            logger.exception("Failed to save debug image '%s'.", filename)
