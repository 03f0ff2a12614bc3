import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import pytest
import numpy as np
from garch.backtest import (backtest, binomial_bounds, exception_flags,
                            exception_records, kupiec_lr, christoffersen_test)
from garch.errors import DimensionMismatch, InvalidParameter, InsufficientData


def returns_with_exceptions(total, exceptions):
    """Realized returns with exactly ``exceptions`` values below a zero threshold"""
    realized = np.full(total, 0.01)
    realized[:exceptions] = -0.01
    return realized, np.zeros(total)


def test_reference_bounds():
    """Binomial(500, 0.05) at 95% coverage"""
    assert binomial_bounds(500, 0.05, 0.95) == (16, 35)


@pytest.mark.parametrize("exceptions,verdict", [
    (14, 'reject'),
    (15, 'reject'),
    (16, 'accept'),
    (23, 'accept'),
    (35, 'accept'),
    (36, 'reject'),
])
def test_reference_verdicts(exceptions, verdict):
    realized, thresholds = returns_with_exceptions(500, exceptions)
    result = backtest(realized, thresholds, 0.05)

    assert result.exceptions == exceptions
    assert result.total == 500
    assert (result.lower_bound, result.upper_bound) == (16, 35)
    assert result.verdict == verdict


@pytest.mark.parametrize("total,level,confidence", [
    (250, 0.01, 0.95),
    (500, 0.05, 0.95),
    (1000, 0.05, 0.99),
    (750, 0.025, 0.90),
])
def test_binomial_mean_is_accepted(total, level, confidence):
    realized, thresholds = returns_with_exceptions(total, int(round(total * level)))
    assert backtest(realized, thresholds, level, confidence).accepted


def test_equal_to_threshold_is_not_an_exception():
    realized = np.array([-0.02, -0.01, -0.01, 0.0])
    thresholds = np.array([-0.01, -0.01, -0.011, -0.01])
    np.testing.assert_array_equal(exception_flags(realized, thresholds),
                                  [True, False, False, False])


def test_exception_records():
    realized = np.array([-0.03, 0.01])
    thresholds = np.array([-0.02, -0.02])
    records = exception_records(realized, thresholds, time_indices=[500, 501])

    assert [r.time_index for r in records] == [500, 501]
    assert records[0].is_exception
    assert not records[1].is_exception
    assert records[0].threshold == -0.02


def test_dimension_mismatch():
    with pytest.raises(DimensionMismatch):
        backtest(np.zeros(10), np.zeros(9), 0.05)
    with pytest.raises(DimensionMismatch):
        backtest([], [], 0.05)
    with pytest.raises(DimensionMismatch):
        exception_records(np.zeros(3), np.zeros(3), time_indices=[1, 2])


def test_invalid_level():
    with pytest.raises(InvalidParameter):
        backtest(np.zeros(10), np.zeros(10), 1.5)
    with pytest.raises(InvalidParameter):
        binomial_bounds(100, 0.05, confidence=1.0)


def test_kupiec_statistic():
    lr, pvalue = kupiec_lr(25, 500, 0.05)
    assert lr == pytest.approx(0.0, abs=1e-10)
    assert pvalue == pytest.approx(1.0)

    lr_low, p_low = kupiec_lr(5, 500, 0.05)
    assert lr_low > 3.84
    assert p_low < 0.05

    # No exceptions at all is finite
    lr_zero, _ = kupiec_lr(0, 500, 0.05)
    assert np.isfinite(lr_zero)
    assert lr_zero == pytest.approx(-2 * 500 * np.log(0.95))


def test_backtest_result_fields():
    realized, thresholds = returns_with_exceptions(500, 23)
    result = backtest(realized, thresholds, 0.05)
    record = result.to_dict()

    assert record['verdict'] == 'accept'
    assert result.exception_rate == pytest.approx(23 / 500)
    assert 0 <= result.kupiec_pvalue <= 1


def test_christoffersen_independent_hits():
    hits = np.zeros(400, dtype=bool)
    hits[::20] = True
    result = christoffersen_test(hits)

    assert result['n11'] == 0
    assert result['n01'] + result['n00'] + result['n10'] == 399
    assert result['p_value'] > 0.05


def test_christoffersen_clustered_hits():
    hits = np.zeros(400, dtype=bool)
    hits[100:120] = True
    result = christoffersen_test(hits)

    assert result['n11'] == 19
    assert result['p_value'] < 0.01


def test_christoffersen_requires_two_observations():
    with pytest.raises(InsufficientData):
        christoffersen_test([True])


def test_missing_values_are_rejected():
    """NaN returns or thresholds never count as non-exceptions"""
    realized = np.full(500, 0.01)
    realized[:10] = np.nan
    thresholds = np.full(500, -0.02)

    with pytest.raises(InvalidParameter):
        backtest(realized, thresholds, 0.05)
    with pytest.raises(InvalidParameter):
        exception_flags(realized, thresholds)
    with pytest.raises(InvalidParameter):
        exception_records(realized, thresholds)

    with pytest.raises(InvalidParameter):
        backtest(np.full(500, 0.01), np.full(500, np.nan), 0.05)
    with pytest.raises(InvalidParameter):
        backtest(np.full(500, 0.01), np.full(500, -np.inf), 0.05)

if __name__ == '__main__':
    pytest.main([__file__])
