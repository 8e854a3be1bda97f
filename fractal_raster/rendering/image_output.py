"""
Image export for rendered rasters.

Rasters are written losslessly (PNG or TIFF) through Pillow, with the render
parameters embedded as JSON. Export is separate from rendering: a failed
save raises ExportError and leaves the raster untouched, so the caller can
retry without re-rendering.
"""

import numpy as np
from typing import Dict, Any, Optional, Tuple
from pathlib import Path
from dataclasses import dataclass, asdict, field
import json
import logging
from datetime import datetime

from PIL import Image, PngImagePlugin

from .. import __version__
from ..exceptions import ExportError
from .raster import Raster

logger = logging.getLogger(__name__)

METADATA_KEY = "FractalMetadata"
TIFF_IMAGE_DESCRIPTION = 270
TIFF_SOFTWARE = 305


@dataclass
class RenderMetadata:
    """Metadata for fractal renders."""

    viewport: Tuple[float, float, float, float]  # left, right, top, bottom
    resolution: Tuple[int, int]  # width, height
    max_iterations: int
    power: float

    coloring: str
    hue_shift: float
    saturation: float
    precision: str

    render_time_seconds: float
    parallel: bool = False

    timestamp: str = ""
    software_version: str = __version__

    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Set default timestamp if not provided."""
        if not self.timestamp:
            self.timestamp = datetime.now().isoformat()
        self.viewport = tuple(self.viewport)
        self.resolution = tuple(self.resolution)

    def to_dict(self) -> Dict[str, Any]:
        """Convert metadata to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RenderMetadata':
        """Create metadata from dictionary."""
        return cls(**data)

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'RenderMetadata':
        """Create metadata from JSON string."""
        return cls.from_dict(json.loads(json_str))


class ImageExporter:
    """Lossless image export with metadata support."""

    def __init__(self):
        """Initialize image exporter."""
        self.supported_formats = {
            '.png': self._save_png,
            '.tiff': self._save_tiff,
            '.tif': self._save_tiff,
        }

    def save_image(self, raster: Raster, filepath: Path,
                   metadata: Optional[RenderMetadata] = None,
                   compression: Optional[str] = None) -> Path:
        """
        Save a raster to file with metadata.

        Args:
            raster: Rendered RGBA raster
            filepath: Output file path (.png, .tif or .tiff)
            metadata: Render metadata to embed
            compression: 'none', 'fast' or 'max'

        Returns:
            The path written
        """
        filepath = Path(filepath)
        suffix = filepath.suffix.lower()

        if suffix not in self.supported_formats:
            supported = ', '.join(self.supported_formats.keys())
            raise ExportError(f"Unsupported format '{suffix}'. Supported: {supported}")

        # (H, W, 4) uint8 is read as RGBA
        pil_image = Image.fromarray(np.ascontiguousarray(raster.pixels))

        try:
            self.supported_formats[suffix](pil_image, filepath, metadata, compression)
        except OSError as e:
            raise ExportError(f"Could not write {filepath}: {e}") from e

        logger.info(f"Saved image: {filepath} ({raster.width}x{raster.height})")
        return filepath

    def _save_png(self, pil_image: Image.Image, filepath: Path,
                  metadata: Optional[RenderMetadata], compression: Optional[str]) -> None:
        """Save as PNG with metadata."""
        pnginfo = PngImagePlugin.PngInfo()

        if metadata:
            pnginfo.add_text("Title", "Escape-time fractal")
            pnginfo.add_text("Software", f"fractal-raster v{metadata.software_version}")
            pnginfo.add_text("Creation Time", metadata.timestamp)
            pnginfo.add_text(METADATA_KEY, metadata.to_json())

        # PNG compression levels: 0 (no compression) to 9 (max compression)
        compress_level = 6
        if compression:
            if compression.lower() in ['none', '0']:
                compress_level = 0
            elif compression.lower() in ['fast', 'low']:
                compress_level = 1
            elif compression.lower() in ['high', 'max']:
                compress_level = 9

        pil_image.save(filepath, "PNG", pnginfo=pnginfo, compress_level=compress_level)

    def _save_tiff(self, pil_image: Image.Image, filepath: Path,
                   metadata: Optional[RenderMetadata], compression: Optional[str]) -> None:
        """Save as TIFF with metadata in the ImageDescription tag."""
        compression_map = {
            'none': None,
            'fast': 'tiff_lzw',
            'lzw': 'tiff_lzw',
            'max': 'tiff_adobe_deflate',
            'deflate': 'tiff_adobe_deflate',
        }
        tiff_compression = compression_map.get((compression or 'lzw').lower(), 'tiff_lzw')

        save_kwargs = {'format': 'TIFF'}
        if tiff_compression:
            save_kwargs['compression'] = tiff_compression

        if metadata:
            save_kwargs['tiffinfo'] = {
                TIFF_IMAGE_DESCRIPTION: metadata.to_json(indent=None),
                TIFF_SOFTWARE: f"fractal-raster v{metadata.software_version}",
            }

        pil_image.save(filepath, **save_kwargs)

    def load_image(self, filepath: Path) -> Raster:
        """Read an image file back into a raster."""
        with Image.open(filepath) as img:
            rgba = np.array(img.convert('RGBA'), dtype=np.uint8)
        return Raster(rgba.shape[1], rgba.shape[0], rgba)

    def save_raw_data(self, raster: Raster, filepath: Path,
                      metadata: Optional[RenderMetadata] = None) -> Path:
        """
        Save the raw pixel buffer as a NumPy array.

        Args:
            raster: Raster to save
            filepath: Output file path (.npy)
            metadata: Metadata to save alongside as JSON
        """
        filepath = Path(filepath)
        if filepath.suffix.lower() != '.npy':
            filepath = filepath.with_suffix('.npy')

        try:
            np.save(filepath, raster.pixels)
            if metadata:
                filepath.with_suffix('.json').write_text(metadata.to_json(), encoding='utf-8')
        except OSError as e:
            raise ExportError(f"Could not write {filepath}: {e}") from e

        logger.info(f"Saved raw data: {filepath}")
        return filepath

    def load_raw_data(self, filepath: Path) -> Tuple[Raster, Optional[RenderMetadata]]:
        """
        Load raw pixel data and metadata.

        Args:
            filepath: Input file path (.npy)

        Returns:
            Tuple of (raster, metadata)
        """
        filepath = Path(filepath)
        pixels = np.load(filepath)
        raster = Raster(pixels.shape[1], pixels.shape[0], pixels.astype(np.uint8, copy=False))

        metadata = None
        metadata_path = filepath.with_suffix('.json')
        if metadata_path.exists():
            metadata = RenderMetadata.from_json(metadata_path.read_text(encoding='utf-8'))

        return raster, metadata

    def extract_metadata_from_image(self, filepath: Path) -> Optional[RenderMetadata]:
        """
        Extract fractal metadata from saved image.

        Returns:
            Extracted metadata, or None if the image carries none
        """
        with Image.open(filepath) as img:
            text = getattr(img, 'text', None) or {}
            if METADATA_KEY in text:
                return self._parse_metadata(text[METADATA_KEY], filepath, METADATA_KEY)

            tags = getattr(img, 'tag_v2', None)
            if tags is not None and TIFF_IMAGE_DESCRIPTION in tags:
                return self._parse_metadata(tags[TIFF_IMAGE_DESCRIPTION], filepath, "ImageDescription")

        return None

    @staticmethod
    def _parse_metadata(raw: str, filepath: Path, source: str) -> Optional[RenderMetadata]:
        try:
            return RenderMetadata.from_json(raw)
        except (ValueError, TypeError):
            logger.warning(f"Ignoring unreadable {source} in {filepath}")
            return None

    def get_image_info(self, filepath: Path) -> Dict[str, Any]:
        """
        Get information about an image file.

        Args:
            filepath: Path to image file

        Returns:
            Dictionary with image information
        """
        filepath = Path(filepath)

        if not filepath.exists():
            raise FileNotFoundError(f"Image file not found: {filepath}")

        with Image.open(filepath) as img:
            info = {
                'filepath': str(filepath),
                'size_bytes': filepath.stat().st_size,
                'format': img.format,
                'dimensions': img.size,
                'mode': img.mode,
            }

        metadata = self.extract_metadata_from_image(filepath)
        info['has_fractal_metadata'] = metadata is not None
        info['fractal_metadata'] = metadata.to_dict() if metadata else None
        return info
