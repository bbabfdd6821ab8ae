"""Small numeric helpers used by metrics and convergence checks."""
import pytest

from allocation_engine.utils.numeric import clamp, mean, pct, variance


def test_pct_of_positive_whole():
    assert pct(25.0, 200.0) == pytest.approx(12.5)
    assert pct(-10.0, 40.0) == pytest.approx(-25.0)


@pytest.mark.parametrize("whole", [0.0, -5.0])
def test_pct_of_non_positive_whole_is_zero(whole):
    assert pct(3.0, whole) == 0.0


def test_clamp_mean_variance():
    assert clamp(None, 0.0, 1.0) == 0.0
    assert clamp(1.7, 0.0, 1.0) == 1.0
    assert mean([]) == 0.0
    assert mean([1.0, 2.0, 3.0]) == pytest.approx(2.0)
    assert variance([4.0]) == 0.0
    assert variance([1.0, 3.0]) == pytest.approx(1.0)
