"""
Command-line interface for fractal rendering.

Configuration is resolved from defaults, --preset, --config and the
environment, then overridden by the options given to each command.
"""

import click
import sys
import json
from pathlib import Path
import logging
import time

from .. import __version__
from ..api import FractalRenderer
from ..config import ConfigManager, load_config_from_args
from ..core.precision import PRECISION_LEVELS
from ..exceptions import FractalRasterError
from ..rendering.image_output import ImageExporter

logger = logging.getLogger(__name__)


def _fail(ctx, error: Exception) -> None:
    click.echo(f"Error: {error}", err=True)
    if ctx.obj.get('verbose'):
        import traceback
        traceback.print_exc()
    sys.exit(1)


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--config', type=click.Path(exists=True, dir_okay=False), help='JSON configuration file')
@click.option('--preset', help='Configuration preset to start from')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--quiet', '-q', is_flag=True, help='Suppress most output')
@click.pass_context
def main(ctx, version, config, preset, verbose, quiet):
    """
    Fractal Raster - escape-time fractal renderer.

    Renders generalized Mandelbrot sets into lossless RGBA images.
    """
    if quiet:
        logging.basicConfig(level=logging.ERROR)
    elif verbose:
        logging.basicConfig(level=logging.DEBUG,
                            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    else:
        logging.basicConfig(level=logging.INFO,
                            format='%(levelname)s: %(message)s')

    if version:
        click.echo(f"Fractal Raster v{__version__}")
        click.echo(f"Python: {sys.version}")
        if ctx.invoked_subcommand is None:
            ctx.exit(0)
    elif ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)

    ctx.ensure_object(dict)
    ctx.obj['config_file'] = config
    ctx.obj['preset'] = preset
    ctx.obj['verbose'] = verbose
    ctx.obj['quiet'] = quiet


@main.command()
@click.argument('output', type=click.Path(dir_okay=False))
@click.option('--width', '-w', type=int, help='Image width')
@click.option('--height', '-h', type=int, help='Image height')
@click.option('--viewport', type=str, help='Complex plane region: "left,right,top,bottom"')
@click.option('--max-iter', 'max_iterations', type=int, help='Maximum iterations')
@click.option('--power', type=float, help='Exponent of z -> z^power + c')
@click.option('--coloring', type=click.Choice(['eased', 'linear', 'palette']), help='Coloring algorithm')
@click.option('--hue-shift', type=float, help='Hue offset in turns (0-1)')
@click.option('--saturation', type=float, help='HSL saturation (0-1)')
@click.option('--palette', help='Palette name for palette coloring')
@click.option('--palette-file', type=click.Path(exists=True, dir_okay=False),
              help='GIMP palette (.gpl) for palette coloring')
@click.option('--precision', type=click.Choice(PRECISION_LEVELS), help='Numerical precision')
@click.option('--parallel/--sequential', default=None, help='Render row groups in worker processes')
@click.option('--workers', 'num_workers', type=int, help='Number of worker processes')
@click.option('--rows-per-group', type=int, help='Rows rendered per task')
@click.option('--raw', is_flag=True, help='Also save the raw pixel buffer as .npy')
@click.option('--no-metadata', is_flag=True, help='Do not embed render metadata')
@click.pass_context
def render(ctx, output, raw, no_metadata, **kwargs):
    """
    Render a single fractal image.

    OUTPUT: Output image file path (.png, .tif or .tiff)
    """
    try:
        config = load_config_from_args(ctx.obj.get('config_file'), ctx.obj.get('preset'))

        overrides = {k: v for k, v in kwargs.items() if v is not None}
        if 'palette_file' in overrides or 'palette' in overrides:
            overrides.setdefault('coloring', 'palette')
        if overrides:
            config = ConfigManager().create_render_config(overrides, config)

        renderer = FractalRenderer(config)

        def progress_callback(completed, total):
            if ctx.obj.get('verbose'):
                click.echo(f"Progress: {completed}/{total} row groups")

        if not ctx.obj.get('quiet'):
            click.echo(f"Rendering {config.width}x{config.height}, "
                       f"max_iterations={config.max_iterations}...")
        start_time = time.time()

        raster = renderer.render(progress_callback)
        render_time = time.time() - start_time

        if raw:
            renderer.image_exporter.save_raw_data(raster, Path(output).with_suffix('.npy'),
                                                  renderer.build_metadata(render_time))
        renderer.save(raster, output, save_metadata=not no_metadata)

        if not ctx.obj.get('quiet'):
            click.echo(f"Render complete: {render_time:.2f}s")
            click.echo(f"Saved: {output}")

    except FractalRasterError as e:
        _fail(ctx, e)


@main.command()
def presets():
    """List the built-in configuration presets."""
    for name, values in ConfigManager().list_presets().items():
        settings = ', '.join(f"{k}={v}" for k, v in values.items())
        click.echo(f"{name}: {settings}")


@main.command()
@click.argument('image', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def info(ctx, image):
    """
    Show image information and embedded render metadata.

    IMAGE: A previously rendered image
    """
    try:
        details = ImageExporter().get_image_info(Path(image))
    except (OSError, ValueError) as e:
        _fail(ctx, e)
    click.echo(json.dumps(details, indent=2, default=str))


if __name__ == '__main__':
    main()
