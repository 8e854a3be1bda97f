import pytest

from fractal_raster import RenderConfig, Viewport


@pytest.fixture
def classic_viewport():
    return Viewport(-2.0, 1.0, -1.5, 1.5)


@pytest.fixture
def small_config(classic_viewport):
    """A render small enough to run in milliseconds."""
    return RenderConfig(
        viewport=classic_viewport,
        width=24,
        height=18,
        max_iterations=40,
        parallel=False,
        rows_per_group=4,
    )
