"""
Core mathematical functions for fractal iteration.

This module provides the coordinate mapping between raster pixels and the
complex plane, and the escape-time iteration of z -> z^power + c in both a
scalar form (one point) and a vectorized NumPy form (a block of rows).
"""

import cmath
import math
from dataclasses import dataclass
from typing import Optional, Tuple
import logging

import numpy as np

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ESCAPE_RADIUS = 2.0
ESCAPE_RADIUS_SQ = ESCAPE_RADIUS ** 2


@dataclass(frozen=True)
class Viewport:
    """Rectangular region of the complex plane mapped onto the raster."""

    left: float = -2.0
    right: float = 1.0
    top: float = -1.5
    bottom: float = 1.5

    @classmethod
    def from_sequence(cls, values) -> 'Viewport':
        """Create a viewport from (left, right, top, bottom)."""
        values = tuple(values)
        if len(values) != 4:
            raise ConfigurationError("viewport must be (left, right, top, bottom)")
        return cls(*(float(v) for v in values))

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.left, self.right, self.top, self.bottom)


class ComplexPlane:
    """Maps raster pixel coordinates onto a viewport of the complex plane."""

    def __init__(self, viewport: Viewport, width: int, height: int):
        """
        Initialize the mapping for a raster of the given size.

        Args:
            viewport: Region of the complex plane to cover
            width, height: Raster resolution in pixels

        The pixel grid is half-open: pixel 0 sits on the left/top edge and
        the last pixel stops one scale step short of the right/bottom edge.
        A viewport with zero extent on an axis is accepted and maps every
        pixel on that axis to the same coordinate.
        """
        if width <= 0 or height <= 0:
            raise ConfigurationError(
                f"Width and height must be positive, got {width}x{height}")

        self.viewport = viewport
        self.width = width
        self.height = height

        self.x_scale = (viewport.right - viewport.left) / width
        self.y_scale = (viewport.bottom - viewport.top) / height

    def pixel_to_complex(self, px: int, py: int) -> complex:
        """Convert pixel coordinates to complex number."""
        real = self.viewport.left + px * self.x_scale
        imag = self.viewport.top + py * self.y_scale
        return complex(real, imag)

    def complex_to_pixel(self, c: complex) -> Tuple[int, int]:
        """Convert complex number to pixel coordinates."""
        if self.x_scale == 0 or self.y_scale == 0:
            raise ValueError("Cannot invert a degenerate (zero-extent) viewport")
        px = int(math.floor((c.real - self.viewport.left) / self.x_scale))
        py = int(math.floor((c.imag - self.viewport.top) / self.y_scale))
        return px, py

    def row_coordinates(self, y_start: int, y_end: int,
                        dtype: np.dtype = np.complex128) -> np.ndarray:
        """
        Create the complex coordinates for rows [y_start, y_end).

        Args:
            y_start: First row (inclusive)
            y_end: Last row (exclusive)
            dtype: Complex data type of the result

        Returns:
            Array of shape (y_end - y_start, width)
        """
        xs = np.arange(self.width, dtype=np.float64)
        ys = np.arange(y_start, y_end, dtype=np.float64)

        # Same arithmetic as pixel_to_complex so both paths agree exactly
        real = self.viewport.left + xs * self.x_scale
        imag = self.viewport.top + ys * self.y_scale

        c = np.empty((len(ys), self.width), dtype=dtype)
        c.real = real[np.newaxis, :]
        c.imag = imag[:, np.newaxis]
        return c

    def create_complex_array(self, dtype: np.dtype = np.complex128) -> np.ndarray:
        """Create a complex coordinate array for the entire raster."""
        return self.row_coordinates(0, self.height, dtype)


@dataclass(frozen=True)
class EscapeResult:
    """Outcome of iterating a single point."""

    escaped: bool
    iteration: Optional[int] = None

    @classmethod
    def escaped_at(cls, iteration: int) -> 'EscapeResult':
        return cls(True, iteration)

    @classmethod
    def bounded(cls) -> 'EscapeResult':
        return cls(False, None)


BOUNDED = EscapeResult.bounded()


def complex_power(z: complex, power: float) -> complex:
    """
    Raise z to a real power.

    Squares and small integral powers use plain multiplication; anything else
    goes through the polar form, where 0 ** p is 0 for p > 0.
    """
    if power == 2.0:
        return z * z
    if power == 3.0:
        return z * z * z
    if power == 4.0:
        z2 = z * z
        return z2 * z2
    r = abs(z)
    if r == 0.0:
        if power > 0:
            return 0j
        return 1 + 0j if power == 0 else complex(math.inf, 0.0)
    try:
        return cmath.rect(r ** power, power * cmath.phase(z))
    except (OverflowError, ValueError):
        return complex(math.inf, 0.0)


def escape_time(c: complex, max_iter: int, power: float = 2.0) -> EscapeResult:
    """
    Compute the escape time of a single point.

    Args:
        c: Point of the complex plane
        max_iter: Iteration bound (0 means no iterations are performed)
        power: Exponent of the update z -> z^power + c

    Returns:
        EscapeResult carrying the index of the update that left the
        radius; an update on the last iteration is never checked, so an
        escaped iteration is always <= max_iter - 2 unless it overflowed
    """
    z = 0j
    for t in range(max_iter):
        if z.real * z.real + z.imag * z.imag > ESCAPE_RADIUS_SQ:
            return EscapeResult.escaped_at(t - 1)
        z = complex_power(z, power) + c
        if not (math.isfinite(z.real) and math.isfinite(z.imag)):
            return EscapeResult.escaped_at(t)
    return BOUNDED


class IterationResult:
    """Container for vectorized iteration results."""

    def __init__(self, iterations: np.ndarray, escaped: np.ndarray):
        """
        Initialize iteration result.

        Args:
            iterations: Escape iteration per point, -1 where bounded
            escaped: Boolean array indicating which points escaped
        """
        self.iterations = iterations
        self.escaped = escaped
        self.shape = iterations.shape

    def at(self, row: int, col: int) -> EscapeResult:
        """Get the scalar result for one point."""
        if self.escaped[row, col]:
            return EscapeResult.escaped_at(int(self.iterations[row, col]))
        return BOUNDED


class FractalIterator:
    """Vectorized escape-time iteration of z -> z^power + c."""

    def __init__(self, max_iter: int = 1000, power: float = 2.0,
                 dtype: np.dtype = np.complex128):
        """
        Initialize fractal iterator.

        Args:
            max_iter: Maximum number of iterations
            power: Exponent for the iteration formula
            dtype: Complex data type for calculations
        """
        if max_iter < 0:
            raise ValueError("max_iter must be non-negative")

        self.max_iter = max_iter
        self.power = float(power)
        self.dtype = dtype

    def _power(self, z: np.ndarray) -> np.ndarray:
        """Raise an array to self.power, mirroring complex_power."""
        if self.power == 2.0:
            return z * z
        if self.power == 3.0:
            return z * z * z
        if self.power == 4.0:
            z2 = z * z
            return z2 * z2

        p = z.real.dtype.type(self.power)
        r = np.abs(z)
        theta = np.angle(z) * p
        magnitude = np.power(r, p)

        result = np.empty_like(z)
        result.real = magnitude * np.cos(theta)
        result.imag = magnitude * np.sin(theta)
        if self.power > 0:
            result[r == 0] = 0
        return result

    def iterate(self, c: np.ndarray) -> IterationResult:
        """
        Compute escape times for an array of points.

        Args:
            c: Complex parameter array

        Returns:
            IterationResult with iteration counts and escape information
        """
        c = np.asarray(c, dtype=self.dtype)
        z = np.zeros_like(c)

        iterations = np.full(c.shape, -1, dtype=np.int32)
        escaped = np.zeros(c.shape, dtype=bool)
        active = np.ones(c.shape, dtype=bool)

        with np.errstate(all='ignore'):
            for i in range(self.max_iter):
                zs = z[active]
                outside = (zs.real * zs.real + zs.imag * zs.imag) > ESCAPE_RADIUS_SQ

                # The check at step i sees the update made at step i - 1
                if np.any(outside):
                    idx = np.flatnonzero(active)[outside]
                    flat_iter = iterations.reshape(-1)
                    flat_escaped = escaped.reshape(-1)
                    flat_iter[idx] = i - 1
                    flat_escaped[idx] = True
                    active.reshape(-1)[idx] = False
                    zs = zs[~outside]

                if not np.any(active):
                    break

                zs = self._power(zs) + c[active]

                # Non-finite updates escape at the iteration that produced them
                bad = ~np.isfinite(zs)
                if np.any(bad):
                    idx = np.flatnonzero(active)[bad]
                    iterations.reshape(-1)[idx] = i
                    escaped.reshape(-1)[idx] = True
                    active.reshape(-1)[idx] = False
                    zs = zs[~bad]

                z[active] = zs

        return IterationResult(iterations, escaped)
