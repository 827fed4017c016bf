import math

import pytest

from src.analysis.quantizer import RoundingMode, quantize_to_step
from tests.conftest import is_step_multiple


def test_floor_ceil_round():
    assert quantize_to_step(50_000.3, 0.5, RoundingMode.FLOOR) == 50_000.0
    assert quantize_to_step(50_000.3, 0.5, RoundingMode.CEIL) == 50_000.5
    assert quantize_to_step(50_000.3, 0.5, RoundingMode.ROUND) == 50_000.5
    assert quantize_to_step(50_000.2, 0.5, "round") == 50_000.0


def test_exact_multiple_survives_float_noise():
    # 0.12 / 0.001 is 119.99999999999999 in binary floating point
    assert quantize_to_step(0.12, 0.001, RoundingMode.FLOOR) == 0.12
    assert quantize_to_step(6000 / 50000, 0.001) == 0.12


def test_floor_drops_partial_step():
    assert quantize_to_step(0.1239, 0.001) == 0.123
    assert quantize_to_step(0.0002, 0.001) == 0.0


def test_non_finite_value_returns_zero():
    assert quantize_to_step(float("nan"), 0.5) == 0.0
    assert quantize_to_step(float("inf"), 0.5) == 0.0


@pytest.mark.parametrize("step", [0, -1, float("nan")])
def test_invalid_step_returns_value_unchanged(step):
    assert quantize_to_step(123.456, step) == 123.456


def test_unknown_mode_falls_back_to_floor():
    assert quantize_to_step(1.75, 0.5, "sideways") == 1.5


def test_result_limited_to_eight_decimals():
    value = quantize_to_step(0.123456789123, 0.000000001, RoundingMode.ROUND)
    assert value == round(value, 8)


@pytest.mark.parametrize("mode", list(RoundingMode))
@pytest.mark.parametrize("value,step", [
    (50_123.37, 0.5),
    (0.987654, 0.001),
    (3.14159, 0.01),
    (1234.5678, 0.1),
    (0.00037, 0.0001),
])
def test_step_alignment_and_idempotence(value, step, mode):
    once = quantize_to_step(value, step, mode)
    assert is_step_multiple(once, step)
    assert quantize_to_step(once, step, mode) == once
    assert math.isfinite(once)
