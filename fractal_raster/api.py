"""
Main API classes for fractal generation.

This module provides the high-level interface for fractal generation,
combining coordinate mapping, escape-time iteration, coloring and row-group
scheduling into a single renderer.
"""

import numpy as np
from typing import Callable, Optional, Union
from pathlib import Path
import logging
import time

from .config import RenderConfig
from .core.math_functions import ComplexPlane
from .core.precision import PrecisionConfig, check_precision
from .rendering.coloring import ColoringEngine, PaletteColoring
from .rendering.image_output import ImageExporter, RenderMetadata
from .rendering.raster import Raster
from .acceleration.multiprocessing import (
    MultiprocessingAccelerator,
    RowGroupResult,
    RowGroupTask,
    create_row_groups,
    render_sequential,
)
from .exceptions import ExportError, RenderError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class FractalRenderer:
    """Main fractal rendering engine."""

    def __init__(self, config: Optional[RenderConfig] = None,
                 coloring_engine: Optional[ColoringEngine] = None,
                 image_exporter: Optional[ImageExporter] = None):
        """
        Initialize fractal renderer.

        Args:
            config: Rendering configuration (uses defaults if None)
            coloring_engine: Registry of coloring algorithms and palettes
            image_exporter: Sink used by save()

        Raises:
            ConfigurationError: if the configuration is rejected
        """
        self.config = (config or RenderConfig()).validate()

        self.coloring_engine = coloring_engine or ColoringEngine()
        self.image_exporter = image_exporter or ImageExporter()
        self.precision_config = PrecisionConfig(self.config.precision)

        # Resolve by name now so an unknown algorithm fails before rendering
        self.coloring = self.coloring_engine.get_algorithm(self.config.coloring)
        self.palette = None
        if isinstance(self.coloring, PaletteColoring):
            self.palette = self.coloring_engine.resolve_palette(self.config.color_settings())

        self.last_render_time: Optional[float] = None

        logger.info(f"FractalRenderer initialized: {self.config.width}x{self.config.height}, "
                    f"max_iterations={self.config.max_iterations}, power={self.config.power}")

    def render(self, progress_callback: Optional[ProgressCallback] = None) -> Raster:
        """
        Render the configured view.

        Args:
            progress_callback: Called with (completed_groups, total_groups)

        Returns:
            Frozen RGBA raster
        """
        config = self.config
        start_time = time.time()

        plane = ComplexPlane(config.viewport, config.width, config.height)
        check_precision(plane, self.precision_config)

        raster = Raster.allocate(config.width, config.height)
        groups = create_row_groups(config.height, config.rows_per_group)
        tasks = [RowGroupTask(config, group, self.coloring, self.palette) for group in groups]

        if config.parallel and len(tasks) > 1:
            results = MultiprocessingAccelerator(config.num_workers).render_parallel(tasks)
        else:
            logger.info(f"Processing {len(tasks)} row groups sequentially")
            results = render_sequential(tasks)

        written = np.zeros(config.height, dtype=bool)
        processing_time = 0.0
        for completed, result in enumerate(results, start=1):
            self._write_row_group(raster, written, result)
            processing_time += result.processing_time
            if progress_callback:
                progress_callback(completed, len(tasks))

        if not written.all():
            missing = np.flatnonzero(~written)
            raise RenderError(f"{len(missing)} rows were never rendered (first: {missing[0]})")

        raster.freeze()
        self.last_render_time = time.time() - start_time
        logger.info(f"Render complete: {self.last_render_time:.2f}s total, "
                    f"{processing_time:.2f}s processing time, "
                    f"efficiency: {processing_time / max(self.last_render_time, 1e-9):.2f}")
        return raster

    @staticmethod
    def _write_row_group(raster: Raster, written: np.ndarray, result: RowGroupResult) -> None:
        """Copy a finished block into its rows; each row may be written once."""
        group = result.group
        if written[group.y_start:group.y_end].any():
            raise RenderError(f"Row group {group.group_id} overlaps rows already rendered")

        raster.rows(group.y_start, group.y_end)[...] = result.pixels
        written[group.y_start:group.y_end] = True

    def build_metadata(self, render_time: Optional[float] = None) -> RenderMetadata:
        """Describe the configured render."""
        config = self.config
        return RenderMetadata(
            viewport=config.viewport.as_tuple(),
            resolution=(config.width, config.height),
            max_iterations=config.max_iterations,
            power=config.power,
            coloring=config.coloring,
            hue_shift=config.hue_shift,
            saturation=config.saturation,
            precision=config.precision,
            render_time_seconds=render_time if render_time is not None else (self.last_render_time or 0.0),
            parallel=config.parallel,
            extra={'palette': config.palette} if config.coloring == 'palette' else {},
        )

    def save(self, raster: Raster, output_path: Union[str, Path],
             save_metadata: bool = True, compression: Optional[str] = None) -> Path:
        """
        Persist a rendered raster.

        Can be called again with the same raster after an ExportError.
        """
        metadata = self.build_metadata() if save_metadata else None
        return self.image_exporter.save_image(raster, Path(output_path), metadata, compression)

    def render_to_file(self, output_path: Union[str, Path],
                       progress_callback: Optional[ProgressCallback] = None,
                       save_metadata: bool = True) -> Raster:
        """
        Render and save in one step.

        Raises:
            ExportError: with the finished raster attached as ``raster``
        """
        raster = self.render(progress_callback)
        try:
            self.save(raster, output_path, save_metadata)
        except ExportError as e:
            e.raster = raster
            raise
        return raster


def render(config: Optional[RenderConfig] = None) -> Raster:
    """Render a configuration with the default coloring engine."""
    return FractalRenderer(config).render()
