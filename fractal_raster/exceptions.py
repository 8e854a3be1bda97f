"""
Exception hierarchy for fractal rendering.

Rendering and persistence fail with different exception types so that a
caller holding a finished raster can retry the save without re-rendering.
"""


class FractalRasterError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(FractalRasterError, ValueError):
    """Rejected render configuration; raised before anything is allocated."""


class RenderError(FractalRasterError, RuntimeError):
    """A row group failed while the raster was being computed."""


class ExportError(FractalRasterError, RuntimeError):
    """
    The raster could not be written to its destination.

    When raised from FractalRenderer.render_to_file, ``raster`` holds the
    finished raster so the save can be retried.
    """

    def __init__(self, message: str, raster=None):
        super().__init__(message)
        self.raster = raster
