"""RGBA raster produced by a render."""

from dataclasses import dataclass
import numpy as np

CHANNELS = 4


@dataclass
class Raster:
    """
    Row-major RGBA pixel buffer, top row first.

    pixels has shape (height, width, 4) and dtype uint8. The renderer owns
    it while rows are being written and freezes it before handing it out.
    """

    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self):
        expected = (self.height, self.width, CHANNELS)
        if self.pixels.shape != expected or self.pixels.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels of shape {expected}, "
                             f"got {self.pixels.dtype} {self.pixels.shape}")

    @classmethod
    def allocate(cls, width: int, height: int) -> 'Raster':
        """Create a zero-filled, writeable raster."""
        return cls(width, height, np.zeros((height, width, CHANNELS), dtype=np.uint8))

    @classmethod
    def from_bytes(cls, width: int, height: int, data: bytes) -> 'Raster':
        """Wrap a width*height*4 byte buffer."""
        if len(data) != width * height * CHANNELS:
            raise ValueError(f"Expected {width * height * CHANNELS} bytes, got {len(data)}")
        pixels = np.frombuffer(data, dtype=np.uint8).reshape(height, width, CHANNELS)
        return cls(width, height, pixels)

    @property
    def frozen(self) -> bool:
        return not self.pixels.flags.writeable

    def freeze(self) -> 'Raster':
        self.pixels.flags.writeable = False
        return self

    def rows(self, start: int, end: int) -> np.ndarray:
        """View of rows [start, end)."""
        return self.pixels[start:end]

    def tobytes(self) -> bytes:
        return self.pixels.tobytes()

    def __len__(self) -> int:
        return self.pixels.size
