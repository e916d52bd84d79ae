import math

import numpy as np
import pytest

from horizon_capture.angles import (
    angular_distance, arithmetic_mean, bucket_azimuth, bucket_count, circular_mean,
    clamp_altitude, forward_gap, is_valid_resolution, normalize_azimuth, round_half_up,
    to_sexagesimal,
)


@pytest.mark.parametrize("value", [-725.5, -360.0, -0.1, 0.0, 12.3, 359.999, 360.0, 1e6])
def test_normalize_azimuth_range_and_period(value):
    result = normalize_azimuth(value)
    assert 0.0 <= result < 360.0
    assert result == pytest.approx(normalize_azimuth(value + 360.0), abs=1e-9)


def test_normalize_azimuth_non_finite():
    assert normalize_azimuth(math.nan) == 0.0
    assert normalize_azimuth(math.inf) == 0.0
    assert normalize_azimuth(-math.inf) == 0.0


def test_clamp_altitude():
    rng = np.random.default_rng(0)
    for value in rng.uniform(-1000, 1000, size=50):
        assert -90.0 <= clamp_altitude(value) <= 90.0
    assert clamp_altitude(math.nan) == 0
    assert clamp_altitude(math.inf) == 90.0
    assert clamp_altitude(-math.inf) == -90.0
    assert clamp_altitude(45.5) == 45.5


def test_circular_mean_wraps():
    assert angular_distance(circular_mean([10, 350]), 0.0) < 1e-6
    assert circular_mean([80, 100]) == pytest.approx(90.0)
    assert circular_mean([]) == 0.0


def test_arithmetic_mean_ignores_non_finite():
    assert arithmetic_mean([1.0, 2.0, 3.0]) == pytest.approx(2.0)
    assert arithmetic_mean([]) == 0.0
    assert arithmetic_mean([math.nan, 4.0]) == pytest.approx(2.0)


def test_angular_distance_and_forward_gap():
    assert angular_distance(350, 10) == pytest.approx(20.0)
    assert angular_distance(0, 180) == pytest.approx(180.0)
    assert forward_gap(350, 10) == pytest.approx(20.0)
    assert forward_gap(10, 350) == pytest.approx(340.0)


def test_round_half_up():
    assert round_half_up(0.5) == 1
    assert round_half_up(1.5) == 2
    assert round_half_up(2.5) == 3
    assert round_half_up(-0.5) == 0
    assert round_half_up(math.nan) == 0


def test_bucket_azimuth():
    assert bucket_azimuth(2.5, 5) == 5.0
    assert bucket_azimuth(2.4, 5) == 0.0
    assert bucket_azimuth(358.0, 5) == 0.0
    assert bucket_azimuth(-3.0, 5) == 355.0


def test_resolution_helpers():
    assert bucket_count(5) == 72
    assert bucket_count(1) == 360
    assert is_valid_resolution(5)
    assert is_valid_resolution(0.5)
    assert not is_valid_resolution(7)
    assert not is_valid_resolution(0)
    assert not is_valid_resolution(-5)


def test_to_sexagesimal():
    assert to_sexagesimal(12.5) == "12°30'00.0\""
    assert to_sexagesimal(0.0) == "0°00'00.0\""
    assert to_sexagesimal(-1.25) == "-1°15'00.0\""
