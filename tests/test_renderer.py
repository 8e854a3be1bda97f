import logging

import numpy as np
import pytest

from fractal_raster import FractalRenderer, RenderConfig, Viewport, render
from fractal_raster.acceleration.multiprocessing import (
    RowGroup,
    RowGroupTask,
    create_row_groups,
    render_row_group,
    render_sequential,
)
from fractal_raster.core.math_functions import ComplexPlane, EscapeResult, escape_time
from fractal_raster.exceptions import ConfigurationError, RenderError
from fractal_raster.rendering.coloring import ColoringEngine, LinearHSLColoring, Palette


class BrokenColoring(LinearHSLColoring):
    def colorize(self, normalized, settings, palette):
        raise RuntimeError("colour table exploded")


class TestRowGroups:

    def test_partition_covers_every_row_once(self):
        groups = create_row_groups(37, 8)
        rows = [y for g in groups for y in range(g.y_start, g.y_end)]
        assert rows == list(range(37))
        assert groups[-1].rows == 5

    def test_single_group_when_short(self):
        assert create_row_groups(3, 16) == [RowGroup(0, 0, 3)]

    def test_rows_per_group_must_be_positive(self):
        with pytest.raises(ValueError):
            create_row_groups(10, 0)

    def test_render_row_group_block_shape(self, small_config):
        task = RowGroupTask(small_config, RowGroup(0, 4, 8), LinearHSLColoring())
        result = render_row_group(task)
        assert result.pixels.shape == (4, small_config.width, 4)
        assert result.pixels.dtype == np.uint8

    def test_sequential_wraps_failures(self, small_config):
        task = RowGroupTask(small_config, RowGroup(2, 8, 12), BrokenColoring())
        with pytest.raises(RenderError, match="Row group 2"):
            list(render_sequential([task]))


class TestFractalRenderer:

    def test_two_by_two_matches_scalar_escape_time(self):
        config = RenderConfig(width=2, height=2, max_iterations=100,
                              coloring='linear', parallel=False)
        raster = FractalRenderer(config).render()

        plane = ComplexPlane(config.viewport, 2, 2)
        algorithm = LinearHSLColoring()
        settings = config.color_settings()
        for y in range(2):
            for x in range(2):
                expected = algorithm.color_for(
                    escape_time(plane.pixel_to_complex(x, y), 100), settings)
                assert tuple(raster.pixels[y, x]) == expected

    def test_two_by_two_classic_view(self):
        config = RenderConfig(width=2, height=2, max_iterations=10,
                              viewport=Viewport(-2.0, 1.0, -1.5, 1.5), power=2.0,
                              parallel=False)
        raster = FractalRenderer(config).render()

        assert len(raster.tobytes()) == 16
        assert np.all(raster.pixels[..., 3] == 255)
        # -2 and -0.5 on the real axis never escape
        assert tuple(raster.pixels[1, 0]) == (0, 0, 0, 255)
        assert tuple(raster.pixels[1, 1]) == (0, 0, 0, 255)
        # -2 - 1.5i leaves on the first update, which eases to black
        assert escape_time(complex(-2.0, -1.5), 10) == EscapeResult.escaped_at(0)
        assert tuple(raster.pixels[0, 0]) == (0, 0, 0, 255)
        assert escape_time(complex(-0.5, -1.5), 10) == EscapeResult.escaped_at(1)
        assert tuple(raster.pixels[0, 1]) != (0, 0, 0, 255)

    def test_raster_layout(self, small_config):
        raster = FractalRenderer(small_config).render()
        assert raster.pixels.shape == (small_config.height, small_config.width, 4)
        assert len(raster.tobytes()) == small_config.width * small_config.height * 4
        assert np.all(raster.pixels[..., 3] == 255)

    def test_raster_is_frozen(self, small_config):
        raster = FractalRenderer(small_config).render()
        assert raster.frozen
        with pytest.raises(ValueError):
            raster.pixels[0, 0, 0] = 1

    def test_parallel_matches_sequential(self, small_config):
        sequential = FractalRenderer(small_config).render()
        parallel = FractalRenderer(small_config.replace(parallel=True, num_workers=2)).render()
        assert parallel.tobytes() == sequential.tobytes()

    def test_group_size_does_not_change_output(self, small_config):
        a = FractalRenderer(small_config.replace(rows_per_group=1)).render()
        b = FractalRenderer(small_config.replace(rows_per_group=100)).render()
        assert a.tobytes() == b.tobytes()

    def test_single_iteration_is_all_inside(self, small_config):
        config = small_config.replace(max_iterations=1, inside_color=(1, 2, 3, 255))
        raster = FractalRenderer(config).render()
        assert np.all(raster.pixels == np.array([1, 2, 3, 255], dtype=np.uint8))

    def test_degenerate_viewport_is_uniform(self):
        config = RenderConfig(width=6, height=4, viewport=Viewport(0.3, 0.3, 0.4, 0.4),
                              max_iterations=50, parallel=False)
        raster = FractalRenderer(config).render()
        assert np.all(raster.pixels == raster.pixels[0, 0])

    def test_invalid_config_rejected_before_rendering(self):
        with pytest.raises(ConfigurationError):
            FractalRenderer(RenderConfig(width=0))

    def test_unknown_coloring_rejected(self):
        with pytest.raises(ConfigurationError):
            FractalRenderer(RenderConfig(coloring='plasma'))

    def test_progress_callback(self, small_config):
        calls = []
        FractalRenderer(small_config).render(lambda done, total: calls.append((done, total)))
        total = len(create_row_groups(small_config.height, small_config.rows_per_group))
        assert calls == [(i, total) for i in range(1, total + 1)]

    def test_failing_group_raises_render_error(self, small_config):
        engine = ColoringEngine()
        engine.add_algorithm('broken', BrokenColoring())
        renderer = FractalRenderer(small_config.replace(coloring='broken'), coloring_engine=engine)
        with pytest.raises(RenderError):
            renderer.render()

    def test_palette_coloring(self, small_config):
        config = small_config.replace(coloring='palette', palette='gray')
        raster = FractalRenderer(config).render()
        escaped = raster.pixels[..., 0] != 0
        # grayscale palette keeps the three channels equal
        assert np.all(raster.pixels[..., 0] == raster.pixels[..., 1])
        assert escaped.any()

    def test_single_precision_renders(self, small_config):
        raster = FractalRenderer(small_config.replace(precision='single')).render()
        assert raster.pixels.shape == (small_config.height, small_config.width, 4)

    def test_last_render_time(self, small_config):
        renderer = FractalRenderer(small_config)
        assert renderer.last_render_time is None
        renderer.render()
        assert renderer.last_render_time >= 0.0

    def test_module_level_render(self, small_config):
        assert render(small_config).tobytes() == FractalRenderer(small_config).render().tobytes()

    def test_metadata_describes_config(self, small_config):
        metadata = FractalRenderer(small_config).build_metadata(1.5)
        assert metadata.resolution == (small_config.width, small_config.height)
        assert metadata.viewport == small_config.viewport.as_tuple()
        assert metadata.render_time_seconds == 1.5

    def test_registered_palette(self, small_config):
        engine = ColoringEngine()
        engine.add_palette('mono', Palette([(0, 0, 0), (0, 1, 0)], name="Mono"))
        config = small_config.replace(coloring='palette', palette='mono')
        raster = FractalRenderer(config, coloring_engine=engine).render()
        # only the green channel varies
        assert np.all(raster.pixels[..., 0] == 0)
        assert np.all(raster.pixels[..., 2] == 0)
        assert raster.pixels[..., 1].any()

    def test_render_logs_processing_time(self, small_config, caplog):
        with caplog.at_level(logging.INFO, logger="fractal_raster.api"):
            FractalRenderer(small_config).render()
        assert "processing time" in caplog.text
