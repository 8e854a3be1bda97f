import math

import numpy as np
import pytest

from fractal_raster.core.math_functions import (
    BOUNDED,
    ComplexPlane,
    EscapeResult,
    FractalIterator,
    Viewport,
    complex_power,
    escape_time,
)
from fractal_raster.exceptions import ConfigurationError


class TestEscapeTime:

    def test_origin_is_bounded(self):
        assert escape_time(0j, 100) == BOUNDED

    def test_far_point_escapes_on_first_update(self):
        # the very first update takes z from 0 to 5
        assert escape_time(5 + 0j, 100) == EscapeResult.escaped_at(0)

    @pytest.mark.parametrize("c, expected", [
        (1 + 0j, EscapeResult.escaped_at(2)),
        (2 + 0j, EscapeResult.escaped_at(1)),
        (0.5 + 0j, EscapeResult.escaped_at(4)),
        (-2 + 0j, BOUNDED),
        (-1 + 0j, BOUNDED),
        (1j, BOUNDED),
    ])
    def test_known_points(self, c, expected):
        assert escape_time(c, 100) == expected

    def test_escape_on_final_update_is_not_reported(self):
        # c = 2 leaves the radius on update 1, which N = 2 never checks
        assert escape_time(2 + 0j, 2) == BOUNDED
        assert escape_time(2 + 0j, 3) == EscapeResult.escaped_at(1)

    def test_finite_and_overflowing_first_updates_agree(self):
        assert escape_time(5 + 0j, 100).iteration == 0
        assert escape_time(0.5 + 0.5j, 100, power=-2.0).iteration == 0

    def test_zero_iterations_is_bounded(self):
        assert escape_time(100 + 100j, 0) == BOUNDED

    def test_single_iteration_never_reports_later_escape(self):
        for c in (0j, 5 + 0j, -1.5 + 0.5j, 3j):
            result = escape_time(c, 1)
            assert not result.escaped or result.iteration == 0

    def test_deterministic(self):
        c = -0.743643887 + 0.131825904j
        assert escape_time(c, 500) == escape_time(c, 500)

    def test_escape_iteration_below_bound(self):
        for c in np.linspace(-2.5, 1.5, 41):
            result = escape_time(complex(c, 0.3), 20)
            if result.escaped:
                assert 0 <= result.iteration < 20

    def test_cubic_power(self):
        # 0 -> 1 -> 2 -> 9, the third update leaves the radius
        assert escape_time(1 + 0j, 100, power=3.0) == EscapeResult.escaped_at(2)

    def test_negative_power_escapes_instead_of_producing_nan(self):
        assert escape_time(0.5 + 0.5j, 50, power=-2.0) == EscapeResult.escaped_at(0)

    def test_fractional_power_is_stable_at_origin(self):
        assert complex_power(0j, 2.5) == 0j
        assert escape_time(0j, 50, power=2.5) == BOUNDED


class TestComplexPower:

    def test_square_is_plain_multiplication(self):
        z = 0.3 - 1.7j
        assert complex_power(z, 2.0) == z * z

    def test_general_power_matches_builtin(self):
        z = 0.8 + 0.6j
        result = complex_power(z, 2.5)
        expected = z ** 2.5
        assert result.real == pytest.approx(expected.real)
        assert result.imag == pytest.approx(expected.imag)

    def test_zero_to_the_zero(self):
        assert complex_power(0j, 0.0) == 1 + 0j

    def test_zero_to_negative_power_is_infinite(self):
        assert math.isinf(complex_power(0j, -1.0).real)


class TestComplexPlane:

    def test_origin_pixel_is_left_top(self, classic_viewport):
        plane = ComplexPlane(classic_viewport, 300, 200)
        assert plane.pixel_to_complex(0, 0) == complex(-2.0, -1.5)

    def test_last_pixel_stops_one_step_short(self, classic_viewport):
        plane = ComplexPlane(classic_viewport, 300, 200)
        c = plane.pixel_to_complex(299, 199)
        assert c.real == pytest.approx(1.0 - plane.x_scale)
        assert c.imag == pytest.approx(1.5 - plane.y_scale)

    def test_scales_computed_once(self, classic_viewport):
        plane = ComplexPlane(classic_viewport, 300, 200)
        assert plane.x_scale == pytest.approx(0.01)
        assert plane.y_scale == pytest.approx(0.015)

    @pytest.mark.parametrize("width, height", [(0, 10), (10, 0), (-5, 10)])
    def test_non_positive_size_rejected(self, classic_viewport, width, height):
        with pytest.raises(ConfigurationError):
            ComplexPlane(classic_viewport, width, height)

    def test_degenerate_viewport_maps_to_single_point(self):
        plane = ComplexPlane(Viewport(0.25, 0.25, -0.5, -0.5), 8, 6)
        coords = plane.create_complex_array()
        assert np.all(coords == complex(0.25, -0.5))

    def test_row_coordinates_match_pixel_mapping(self, classic_viewport):
        plane = ComplexPlane(classic_viewport, 13, 11)
        rows = plane.row_coordinates(4, 7)
        assert rows.shape == (3, 13)
        for y in range(4, 7):
            for x in range(13):
                assert rows[y - 4, x] == plane.pixel_to_complex(x, y)

    def test_row_coordinates_single_precision(self, classic_viewport):
        plane = ComplexPlane(classic_viewport, 8, 8)
        assert plane.row_coordinates(0, 2, np.complex64).dtype == np.complex64

    def test_complex_to_pixel_inverts_mapping(self, classic_viewport):
        plane = ComplexPlane(classic_viewport, 300, 200)
        c = plane.pixel_to_complex(120, 45) + complex(plane.x_scale / 2, plane.y_scale / 2)
        assert plane.complex_to_pixel(c) == (120, 45)

    def test_complex_to_pixel_rejects_degenerate_viewport(self):
        plane = ComplexPlane(Viewport(0.0, 0.0, -1.0, 1.0), 4, 4)
        with pytest.raises(ValueError):
            plane.complex_to_pixel(0j)


class TestFractalIterator:

    POINTS = np.array([[0j, 5 + 0j, 1 + 0j, 2 + 0j],
                       [0.5 + 0j, -2 + 0j, -1 + 0j, 1j]])

    def test_agrees_with_scalar_escape_time(self):
        result = FractalIterator(max_iter=100).iterate(self.POINTS)
        for row in range(self.POINTS.shape[0]):
            for col in range(self.POINTS.shape[1]):
                assert result.at(row, col) == escape_time(self.POINTS[row, col], 100)

    def test_bounded_points_carry_minus_one(self):
        result = FractalIterator(max_iter=100).iterate(self.POINTS)
        assert np.all(result.iterations[~result.escaped] == -1)

    def test_escaped_iterations_below_bound(self, classic_viewport):
        plane = ComplexPlane(classic_viewport, 40, 30)
        result = FractalIterator(max_iter=25).iterate(plane.create_complex_array())
        assert result.escaped.any() and (~result.escaped).any()
        assert np.all(result.iterations[result.escaped] <= 23)
        assert np.all(result.iterations[result.escaped] >= 0)

    def test_zero_iterations(self):
        result = FractalIterator(max_iter=0).iterate(self.POINTS)
        assert not result.escaped.any()

    def test_single_iteration_bound(self, classic_viewport):
        plane = ComplexPlane(classic_viewport, 20, 20)
        result = FractalIterator(max_iter=1).iterate(plane.create_complex_array())
        assert np.all(result.iterations[result.escaped] == 0)

    def test_cubic_power_agrees_with_scalar(self):
        result = FractalIterator(max_iter=100, power=3.0).iterate(self.POINTS)
        for row in range(self.POINTS.shape[0]):
            for col in range(self.POINTS.shape[1]):
                assert result.at(row, col) == escape_time(self.POINTS[row, col], 100, 3.0)

    def test_negative_power_escapes_everywhere(self, classic_viewport):
        plane = ComplexPlane(classic_viewport, 10, 10)
        result = FractalIterator(max_iter=30, power=-1.5).iterate(plane.create_complex_array())
        assert result.escaped.all()
        assert np.all(result.iterations == 0)

    def test_fractional_power_origin(self):
        result = FractalIterator(max_iter=30, power=2.5).iterate(np.array([[0j]]))
        assert result.at(0, 0) == BOUNDED

    def test_negative_iteration_bound_rejected(self):
        with pytest.raises(ValueError):
            FractalIterator(max_iter=-1)


def test_log_normalization_stays_in_range_without_clipping(classic_viewport):
    max_iter = 10
    plane = ComplexPlane(classic_viewport, 80, 80)
    result = FractalIterator(max_iter=max_iter).iterate(plane.create_complex_array())
    iterations = result.iterations[result.escaped]
    unclipped = np.log10(iterations + 1.0) / math.log10(max_iter - 1)
    assert iterations.max() <= max_iter - 2
    assert unclipped.max() <= 1.0 + 1e-12
