"""
Coloring algorithms and palette management for fractal rendering.

Escape iterations are log-normalized into [0, 1] and then mapped to RGBA
either through HSL (eased or linear hue progression) or through a
piecewise-linear palette. Points that never escape get the inside color.
"""

import math
import numpy as np
from typing import Dict, List, Tuple, Union, Optional
from dataclasses import dataclass
from abc import ABC, abstractmethod
import logging
from pathlib import Path

from ..core.math_functions import EscapeResult, IterationResult
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

RGBA = Tuple[int, int, int, int]

DEFAULT_INSIDE_COLOR: RGBA = (0, 0, 0, 255)


def compute_log_base(max_iterations: int) -> float:
    """
    Get the log10 normalization base for a render.

    The base is log10(max_iterations - 1); for max_iterations <= 2 that is
    not positive, so log10(2) is used instead.
    """
    if max_iterations > 2:
        return math.log10(max_iterations - 1)
    return math.log10(2)


def log_normalize(iterations: np.ndarray, base: float) -> np.ndarray:
    """Map escape iterations onto [0, 1] as log10(i + 1) / base."""
    iterations = np.maximum(np.asarray(iterations, dtype=np.float64), 0.0)
    return np.clip(np.log10(iterations + 1.0) / base, 0.0, 1.0)


def ease_in_out_cubic(t: np.ndarray) -> np.ndarray:
    t = np.asarray(t, dtype=np.float64)
    return np.where(t < 0.5, 4.0 * t ** 3, 1.0 - (-2.0 * t + 2.0) ** 3 / 2.0)


def ease_out_sine(t: np.ndarray) -> np.ndarray:
    return np.sin(np.asarray(t, dtype=np.float64) * np.pi / 2.0)


def hsl_to_rgb(hue: np.ndarray, saturation: np.ndarray,
               lightness: np.ndarray) -> np.ndarray:
    """
    Convert HSL to RGB.

    Args:
        hue: Hue in degrees, [0, 360)
        saturation: Saturation in [0, 1]
        lightness: Lightness in [0, 1]

    Returns:
        Array with a trailing axis of 3 channels in [0, 1]
    """
    h = np.asarray(hue, dtype=np.float64)
    s = np.asarray(saturation, dtype=np.float64)
    l = np.asarray(lightness, dtype=np.float64)
    h, s, l = np.broadcast_arrays(h, s, l)

    a = s * np.minimum(l, 1.0 - l)

    def channel(n):
        k = (n + h / 30.0) % 12.0
        return l - a * np.maximum(-1.0, np.minimum(np.minimum(k - 3.0, 9.0 - k), 1.0))

    return np.stack([channel(0.0), channel(8.0), channel(4.0)], axis=-1)


def to_uint8(rgb: np.ndarray) -> np.ndarray:
    """Convert [0, 1] channel values to bytes."""
    return np.rint(np.clip(rgb, 0.0, 1.0) * 255.0).astype(np.uint8)


@dataclass
class ColorRGB:
    """RGB color representation."""
    r: float
    g: float
    b: float

    def __post_init__(self):
        """Validate RGB values."""
        for component in [self.r, self.g, self.b]:
            if not 0 <= component <= 1:
                raise ValueError("RGB components must be between 0 and 1")

    def to_tuple(self) -> Tuple[float, float, float]:
        """Convert to RGB tuple."""
        return (self.r, self.g, self.b)

    def to_uint8_tuple(self) -> Tuple[int, int, int]:
        """Convert to 8-bit RGB tuple."""
        return (int(round(self.r * 255)), int(round(self.g * 255)), int(round(self.b * 255)))


@dataclass(frozen=True)
class ColorSettings:
    """Per-render inputs shared by every coloring algorithm."""

    max_iterations: int
    hue_shift: float = 0.0
    saturation: float = 1.0
    inside_color: RGBA = DEFAULT_INSIDE_COLOR
    palette: str = 'hot'
    palette_file: Optional[str] = None

    @property
    def base(self) -> float:
        return compute_log_base(self.max_iterations)


class Palette:
    """Color palette management and interpolation."""

    def __init__(self, colors: List[Union[ColorRGB, Tuple[float, float, float]]],
                 name: str = "Custom"):
        """
        Initialize color palette.

        Args:
            colors: List of colors in the palette, evenly spaced over [0, 1]
            name: Human-readable name for the palette
        """
        self.name = name
        self.colors = []

        for color in colors:
            if isinstance(color, ColorRGB):
                self.colors.append(color)
            elif isinstance(color, (tuple, list)) and len(color) == 3:
                self.colors.append(ColorRGB(*color))
            else:
                raise ValueError(f"Invalid color format: {color}")

        if len(self.colors) < 2:
            raise ValueError("Palette must contain at least 2 colors")

    def interpolate(self, t: Union[float, np.ndarray]) -> np.ndarray:
        """
        Interpolate colors at positions t in [0, 1].

        Returns:
            Array of shape t.shape + (3,) with values in [0, 1]
        """
        t = np.clip(np.asarray(t, dtype=np.float64), 0.0, 1.0)
        stops = np.linspace(0.0, 1.0, len(self.colors))
        table = np.array([c.to_tuple() for c in self.colors])

        return np.stack([np.interp(t, stops, table[:, ch]) for ch in range(3)], axis=-1)

    def save_to_file(self, filepath: Path) -> None:
        """Save palette to file in GPL format."""
        with open(filepath, 'w') as f:
            f.write("GIMP Palette\n")
            f.write(f"Name: {self.name}\n")
            f.write("#\n")

            for i, color in enumerate(self.colors):
                r, g, b = color.to_uint8_tuple()
                f.write(f"{r:3d} {g:3d} {b:3d} Color_{i}\n")

    @classmethod
    def load_from_file(cls, filepath: Path) -> 'Palette':
        """Load palette from GPL file."""
        colors = []
        name = Path(filepath).stem

        with open(filepath, 'r') as f:
            for line in f:
                line = line.strip()
                if line.startswith("Name:"):
                    name = line.split(":", 1)[1].strip()
                elif line and not line.startswith("#") and not line.startswith("GIMP"):
                    parts = line.split()
                    if len(parts) >= 3:
                        try:
                            r, g, b = int(parts[0]), int(parts[1]), int(parts[2])
                        except ValueError:
                            continue
                        colors.append(ColorRGB(r / 255.0, g / 255.0, b / 255.0))

        if len(colors) < 2:
            raise ConfigurationError(f"Palette file {filepath} needs at least 2 colors")

        return cls(colors, name)


class ColoringAlgorithm(ABC):
    """Abstract base class for coloring algorithms."""

    def apply(self, result: IterationResult, settings: ColorSettings,
              palette: Optional[Palette] = None) -> np.ndarray:
        """
        Color an iteration result.

        Args:
            result: Fractal iteration result
            settings: Per-render color settings
            palette: Palette for palette-driven algorithms

        Returns:
            RGBA byte array of shape result.shape + (4,)
        """
        normalized = log_normalize(result.iterations, settings.base)
        rgba = np.empty(result.shape + (4,), dtype=np.uint8)
        rgba[..., :3] = to_uint8(self.colorize(normalized, settings, palette))
        rgba[..., 3] = 255

        inside = ~result.escaped
        if np.any(inside):
            rgba[inside] = np.asarray(settings.inside_color, dtype=np.uint8)

        return rgba

    @abstractmethod
    def colorize(self, normalized: np.ndarray, settings: ColorSettings,
                 palette: Optional[Palette]) -> np.ndarray:
        """Map normalized values to RGB in [0, 1]."""

    def color_for(self, escape: EscapeResult, settings: ColorSettings,
                  palette: Optional[Palette] = None) -> RGBA:
        """Color a single escape result."""
        if not escape.escaped:
            return tuple(int(v) for v in settings.inside_color)
        result = IterationResult(np.array([[escape.iteration]], dtype=np.int32),
                                 np.array([[True]]))
        return tuple(int(v) for v in self.apply(result, settings, palette)[0, 0])


class HSLColoring(ColoringAlgorithm):
    """Base for algorithms that pick a color in HSL space."""

    @abstractmethod
    def hsl_components(self, normalized: np.ndarray,
                       settings: ColorSettings) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return (hue in degrees, saturation, lightness)."""

    def colorize(self, normalized, settings, palette):
        return hsl_to_rgb(*self.hsl_components(normalized, settings))


class EasedHSLColoring(HSLColoring):
    """
    Eased hue and lightness progression.

    Hue follows a cubic in/out curve and lightness a sine-out curve of the
    log-normalized iteration, so that color density concentrates near the
    set boundary instead of banding.
    """

    def hsl_components(self, normalized, settings):
        hue = np.mod(360.0 * (ease_in_out_cubic(normalized) + settings.hue_shift), 360.0)
        saturation = np.full_like(normalized, settings.saturation, dtype=np.float64)
        lightness = ease_out_sine(normalized)
        return hue, saturation, lightness


class LinearHSLColoring(HSLColoring):
    """Hue proportional to the log-normalized iteration at half lightness."""

    def hsl_components(self, normalized, settings):
        hue = np.mod(360.0 * (normalized + settings.hue_shift), 360.0)
        saturation = np.full_like(normalized, settings.saturation, dtype=np.float64)
        lightness = np.full_like(normalized, 0.5, dtype=np.float64)
        return hue, saturation, lightness


class PaletteColoring(ColoringAlgorithm):
    """Log-normalized iteration looked up in a color palette."""

    def colorize(self, normalized, settings, palette):
        if palette is None:
            raise ConfigurationError("Palette coloring requires a palette")
        return palette.interpolate(normalized)


class ColoringEngine:
    """Main engine for applying coloring algorithms."""

    def __init__(self):
        """Initialize coloring engine with built-in algorithms."""
        self.algorithms: Dict[str, ColoringAlgorithm] = {
            'eased': EasedHSLColoring(),
            'linear': LinearHSLColoring(),
            'palette': PaletteColoring(),
        }

        # Built-in palettes
        self.palettes = self._create_builtin_palettes()

    def _create_builtin_palettes(self) -> Dict[str, Palette]:
        """Create built-in color palettes."""
        palettes = {}

        palettes['hot'] = Palette([
            ColorRGB(0, 0, 0),      # Black
            ColorRGB(1, 0, 0),      # Red
            ColorRGB(1, 1, 0),      # Yellow
            ColorRGB(1, 1, 1),      # White
        ], name="Hot")

        palettes['cool'] = Palette([
            ColorRGB(0, 0, 0),      # Black
            ColorRGB(0, 0, 1),      # Blue
            ColorRGB(0, 1, 1),      # Cyan
            ColorRGB(1, 1, 1),      # White
        ], name="Cool")

        palettes['gray'] = Palette([
            ColorRGB(0, 0, 0),
            ColorRGB(1, 1, 1),
        ], name="Grayscale")

        palettes['fire'] = Palette([
            ColorRGB(0, 0, 0),          # Black
            ColorRGB(0.5, 0, 0),        # Dark red
            ColorRGB(1, 0, 0),          # Red
            ColorRGB(1, 0.5, 0),        # Orange
            ColorRGB(1, 1, 0),          # Yellow
            ColorRGB(1, 1, 1),          # White
        ], name="Fire")

        palettes['ocean'] = Palette([
            ColorRGB(0, 0, 0.2),        # Deep blue
            ColorRGB(0, 0, 0.8),
            ColorRGB(0, 0.5, 1),
            ColorRGB(0, 1, 1),          # Cyan
            ColorRGB(0.5, 1, 1),
            ColorRGB(1, 1, 1),
        ], name="Ocean")

        palettes['rainbow'] = Palette([
            ColorRGB(1, 0, 0),      # Red
            ColorRGB(1, 0.5, 0),    # Orange
            ColorRGB(1, 1, 0),      # Yellow
            ColorRGB(0, 1, 0),      # Green
            ColorRGB(0, 1, 1),      # Cyan
            ColorRGB(0, 0, 1),      # Blue
            ColorRGB(0.5, 0, 1),    # Purple
        ], name="Rainbow")

        return palettes

    def add_algorithm(self, name: str, algorithm: ColoringAlgorithm) -> None:
        """Add a custom coloring algorithm."""
        self.algorithms[name] = algorithm
        logger.info(f"Added coloring algorithm: {name}")

    def add_palette(self, name: str, palette: Palette) -> None:
        """Add a custom color palette."""
        self.palettes[name] = palette
        logger.info(f"Added color palette: {name}")

    def get_algorithm(self, name: str) -> ColoringAlgorithm:
        """Get coloring algorithm by name."""
        if name not in self.algorithms:
            available = ', '.join(self.algorithms.keys())
            raise ConfigurationError(f"Unknown coloring algorithm '{name}'. Available: {available}")
        return self.algorithms[name]

    def get_palette(self, name: str) -> Palette:
        """Get color palette by name."""
        if name not in self.palettes:
            available = ', '.join(self.palettes.keys())
            raise ConfigurationError(f"Unknown color palette '{name}'. Available: {available}")
        return self.palettes[name]

    def resolve_palette(self, settings: ColorSettings) -> Palette:
        """Get the palette named by the settings, loading it from disk if needed."""
        if settings.palette_file:
            try:
                return Palette.load_from_file(Path(settings.palette_file))
            except OSError as e:
                raise ConfigurationError(f"Cannot read palette file {settings.palette_file}: {e}") from e
        return self.get_palette(settings.palette)

    def render_color_block(self, result: IterationResult, algorithm: str,
                           settings: ColorSettings,
                           palette: Optional[Palette] = None) -> np.ndarray:
        """
        Color an iteration result with a named algorithm.

        Returns:
            RGBA byte array of shape result.shape + (4,)
        """
        coloring_alg = self.get_algorithm(algorithm)
        if palette is None and isinstance(coloring_alg, PaletteColoring):
            palette = self.resolve_palette(settings)
        return coloring_alg.apply(result, settings, palette)

    def list_algorithms(self) -> List[str]:
        """Get list of available coloring algorithms."""
        return list(self.algorithms.keys())

    def list_palettes(self) -> List[str]:
        """Get list of available color palettes."""
        return list(self.palettes.keys())
