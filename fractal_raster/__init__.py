"""
Escape-time fractal rendering library.

This library renders generalized Mandelbrot sets (z -> z^power + c) over a
rectangular viewport of the complex plane into RGBA rasters, coloring
escape times through log-normalized, eased HSL curves or palettes, with
optional row-parallel rendering across worker processes.

Example usage:
    >>> from fractal_raster import FractalRenderer, RenderConfig, Viewport
    >>> config = RenderConfig(width=800, height=800, viewport=Viewport(-2, 1, -1.5, 1.5))
    >>> raster = FractalRenderer(config).render_to_file("mandelbrot.png")
"""

__version__ = "1.0.0"
__author__ = "Fractal Raster Team"

from fractal_raster.core.math_functions import (
    ComplexPlane,
    EscapeResult,
    FractalIterator,
    Viewport,
    escape_time,
)
from fractal_raster.rendering.coloring import ColoringEngine, Palette
from fractal_raster.rendering.image_output import ImageExporter, RenderMetadata
from fractal_raster.rendering.raster import Raster
from fractal_raster.config import ConfigManager, RenderConfig
from fractal_raster.exceptions import (
    ConfigurationError,
    ExportError,
    FractalRasterError,
    RenderError,
)

# Main API classes
from fractal_raster.api import FractalRenderer, render

__all__ = [
    "FractalRenderer",
    "RenderConfig",
    "Viewport",
    "ComplexPlane",
    "EscapeResult",
    "FractalIterator",
    "escape_time",
    "ColoringEngine",
    "Palette",
    "ImageExporter",
    "RenderMetadata",
    "Raster",
    "ConfigManager",
    "ConfigurationError",
    "ExportError",
    "FractalRasterError",
    "RenderError",
    "render",
]
