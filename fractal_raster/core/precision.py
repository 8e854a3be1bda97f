"""
Floating-point precision levels for escape-time evaluation.

Rendering runs in either single (complex64) or double (complex128)
precision. Arbitrary precision is not supported; detect_precision_need only
reports when a viewport is too narrow for double precision to resolve.
"""

import math
import logging

import numpy as np

from ..exceptions import ConfigurationError
from .math_functions import ComplexPlane

logger = logging.getLogger(__name__)

PRECISION_LEVELS = ('single', 'double')


class PrecisionConfig:
    """Complex dtype selected by a precision level."""

    def __init__(self, precision: str = 'double'):
        """
        Initialize precision configuration.

        Args:
            precision: Either 'single' or 'double'
        """
        self.precision = precision
        self._setup_precision()

    def _setup_precision(self):
        """Setup precision parameters based on configuration."""
        if self.precision == 'single':
            self.dtype = np.complex64
        elif self.precision == 'double':
            self.dtype = np.complex128
        else:
            available = ', '.join(PRECISION_LEVELS)
            raise ConfigurationError(
                f"Unknown precision '{self.precision}'. Available: {available}")


def detect_precision_need(plane: ComplexPlane) -> str:
    """
    Recommend a precision level for a plane.

    Compares the pixel spacing against the magnitude of the coordinates it
    has to be added to.

    Returns:
        'single', 'double', or 'beyond' when even double precision cannot
        separate neighbouring pixels
    """
    scales = [abs(s) for s in (plane.x_scale, plane.y_scale) if s != 0]
    if not scales:
        # Fully degenerate viewport: every pixel is the same point
        return 'single'
    spacing = min(scales)

    vp = plane.viewport
    magnitude = max(1.0, abs(vp.left), abs(vp.right), abs(vp.top), abs(vp.bottom))
    digits_needed = math.log10(magnitude / spacing) + 2

    if digits_needed <= 6:
        return 'single'
    elif digits_needed <= 15:
        return 'double'
    return 'beyond'


def check_precision(plane: ComplexPlane, config: PrecisionConfig) -> None:
    """Log a warning when the plane needs more precision than configured."""
    needed = detect_precision_need(plane)
    if needed == 'beyond':
        logger.warning("Viewport is narrower than double precision can resolve; "
                       "neighbouring pixels will render identically")
    elif needed == 'double' and config.precision == 'single':
        logger.warning("Viewport needs double precision; single precision will band")
