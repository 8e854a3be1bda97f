"""
Render configuration, presets and configuration file handling.

A RenderConfig is an immutable value: every render reads it and nothing
mutates it. Configurations are assembled from defaults, an optional named
preset, an optional JSON file and FRACTAL_RASTER_* environment variables,
in that order of increasing priority.
"""

import json
import math
import os
from dataclasses import dataclass, field, fields, asdict, replace as dc_replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple
import logging

from .core.math_functions import Viewport
from .core.precision import PRECISION_LEVELS
from .exceptions import ConfigurationError
from .rendering.coloring import ColorSettings, DEFAULT_INSIDE_COLOR

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderConfig:
    """Configuration for fractal rendering."""

    # Region and raster size
    viewport: Viewport = field(default_factory=Viewport)
    width: int = 1024
    height: int = 1024

    # Iteration
    max_iterations: int = 1000
    power: float = 2.0
    precision: str = 'double'

    # Coloring
    coloring: str = 'eased'
    hue_shift: float = 0.0
    saturation: float = 1.0
    palette: str = 'hot'
    palette_file: Optional[str] = None
    inside_color: Tuple[int, int, int, int] = DEFAULT_INSIDE_COLOR

    # Scheduling
    parallel: bool = True
    num_workers: Optional[int] = None
    rows_per_group: int = 16

    def validate(self) -> 'RenderConfig':
        """Validate configuration parameters."""
        for name in ('width', 'height', 'max_iterations'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")

        if not isinstance(self.viewport, Viewport):
            raise ConfigurationError("viewport must be a Viewport")
        if not all(math.isfinite(v) for v in self.viewport.as_tuple()):
            raise ConfigurationError(f"viewport must be finite, got {self.viewport.as_tuple()}")

        if not math.isfinite(self.power):
            raise ConfigurationError(f"power must be finite, got {self.power}")

        for name in ('hue_shift', 'saturation'):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be between 0 and 1, got {value}")

        if self.precision not in PRECISION_LEVELS:
            available = ', '.join(PRECISION_LEVELS)
            raise ConfigurationError(f"Unknown precision '{self.precision}'. Available: {available}")

        try:
            inside_ok = (len(self.inside_color) == 4
                         and all(0 <= int(v) <= 255 for v in self.inside_color))
        except (TypeError, ValueError):
            inside_ok = False
        if not inside_ok:
            raise ConfigurationError("inside_color must be four values in 0-255 (RGBA)")

        if self.num_workers is not None:
            if isinstance(self.num_workers, bool) or not isinstance(self.num_workers, int):
                raise ConfigurationError(f"num_workers must be an integer, got {self.num_workers!r}")
            if self.num_workers < 1:
                raise ConfigurationError("num_workers must be >= 1")

        if self.rows_per_group < 1:
            raise ConfigurationError("rows_per_group must be >= 1")

        return self

    def replace(self, **changes) -> 'RenderConfig':
        """Return a validated copy with some fields changed."""
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigurationError(f"Unknown configuration parameter(s): {', '.join(sorted(unknown))}")
        return dc_replace(self, **changes).validate()

    def color_settings(self) -> ColorSettings:
        """Get the subset of the configuration the coloring step needs."""
        return ColorSettings(
            max_iterations=self.max_iterations,
            hue_shift=self.hue_shift,
            saturation=self.saturation,
            inside_color=tuple(int(v) for v in self.inside_color),
            palette=self.palette,
            palette_file=self.palette_file,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a JSON-compatible dictionary."""
        data = asdict(self)
        data['viewport'] = list(self.viewport.as_tuple())
        data['inside_color'] = list(self.inside_color)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any],
                  base: Optional['RenderConfig'] = None) -> 'RenderConfig':
        """
        Create a configuration from a dictionary.

        Args:
            data: Field values; viewport may be a 4-sequence or a mapping
            base: Configuration supplying values for missing fields
        """
        base = base or cls()
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration parameter(s): {', '.join(sorted(unknown))}")

        values = dict(data)
        if 'viewport' in values:
            values['viewport'] = _coerce_viewport(values['viewport'])
        if 'inside_color' in values:
            try:
                values['inside_color'] = tuple(int(v) for v in values['inside_color'])
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid inside_color {values['inside_color']!r}: {e}") from e
        for name in ('power', 'hue_shift', 'saturation'):
            if name in values:
                values[name] = _coerce_float(name, values[name])

        try:
            return dc_replace(base, **values).validate()
        except TypeError as e:
            raise ConfigurationError(str(e)) from e


def _coerce_viewport(value: Any) -> Viewport:
    if isinstance(value, Viewport):
        return value
    if isinstance(value, Mapping):
        try:
            return Viewport(*(float(value[k]) for k in ('left', 'right', 'top', 'bottom')))
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid viewport {value!r}: {e}") from e
    if isinstance(value, str):
        value = value.split(',')
    try:
        return Viewport.from_sequence(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid viewport {value!r}: {e}") from e


def _coerce_float(name: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from e


# Named starting points; 'classic' is the view and size the renderer was first built for
PRESETS: Dict[str, Dict[str, Any]] = {
    'classic': {
        'viewport': (-2.0, 1.0, -1.5, 1.5),
        'width': 4096,
        'height': 4096,
        'max_iterations': 4096,
        'coloring': 'linear',
    },
    'seahorse': {
        'viewport': (-0.7600, -0.7350, 0.0900, 0.1150),
        'width': 1024,
        'height': 1024,
        'max_iterations': 2000,
        'hue_shift': 0.55,
    },
    'multibrot3': {
        'viewport': (-1.5, 1.5, -1.5, 1.5),
        'power': 3.0,
        'max_iterations': 500,
    },
    'thumbnail': {
        'width': 256,
        'height': 256,
        'max_iterations': 256,
        'parallel': False,
    },
}


class ConfigManager:
    """Loads, saves and resolves render configurations."""

    def __init__(self, presets: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self.presets = dict(PRESETS if presets is None else presets)

    def list_presets(self) -> Dict[str, Dict[str, Any]]:
        return {name: dict(values) for name, values in self.presets.items()}

    def get_preset(self, name: str) -> RenderConfig:
        """Get a preset applied over the defaults."""
        if name not in self.presets:
            available = ', '.join(self.presets)
            raise ConfigurationError(f"Unknown preset '{name}'. Available: {available}")
        return RenderConfig.from_dict(self.presets[name])

    def load_config(self, filepath: Path) -> Dict[str, Any]:
        """Read a JSON configuration file."""
        filepath = Path(filepath)
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file {filepath}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {filepath}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {filepath} must contain a JSON object")

        logger.debug(f"Loaded configuration from {filepath}")
        return data

    def create_render_config(self, data: Mapping[str, Any],
                             base: Optional[RenderConfig] = None) -> RenderConfig:
        """Build a configuration from file data, honouring a 'preset' key."""
        data = dict(data)
        preset = data.pop('preset', None)
        if preset is not None:
            base = self.get_preset(preset)
        return RenderConfig.from_dict(data, base)

    def save_config(self, config: RenderConfig, filepath: Path) -> None:
        """Write a configuration as JSON."""
        filepath = Path(filepath)
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(config.to_dict(), f, indent=2)
        logger.info(f"Saved configuration: {filepath}")


class EnvironmentConfig:
    """Configuration overrides read from FRACTAL_RASTER_* environment variables."""

    PREFIX = 'FRACTAL_RASTER_'

    _PARSERS = {
        'NUM_WORKERS': ('num_workers', int),
        'PARALLEL': ('parallel', lambda v: v.strip().lower() in ('1', 'true', 'yes', 'on')),
        'PRECISION': ('precision', str),
        'ROWS_PER_GROUP': ('rows_per_group', int),
    }

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environ = os.environ if environ is None else environ

    def overrides(self) -> Dict[str, Any]:
        result = {}
        for suffix, (name, parse) in self._PARSERS.items():
            raw = self.environ.get(self.PREFIX + suffix)
            if raw is None or raw == '':
                continue
            try:
                result[name] = parse(raw)
            except ValueError as e:
                raise ConfigurationError(f"Invalid {self.PREFIX}{suffix}={raw!r}: {e}") from e
        return result

    def apply(self, config: RenderConfig) -> RenderConfig:
        overrides = self.overrides()
        if overrides:
            logger.debug(f"Environment overrides: {overrides}")
            return config.replace(**overrides)
        return config


def load_config_from_args(config_file: Optional[str] = None,
                          preset: Optional[str] = None,
                          environ: Optional[Mapping[str, str]] = None) -> RenderConfig:
    """
    Resolve a configuration from a preset, a file and the environment.

    Args:
        config_file: Optional JSON configuration file
        preset: Optional preset name
        environ: Environment mapping (defaults to os.environ)
    """
    manager = ConfigManager()
    config = manager.get_preset(preset) if preset else RenderConfig()

    if config_file:
        config = manager.create_render_config(manager.load_config(Path(config_file)), config)

    return EnvironmentConfig(environ).apply(config)
