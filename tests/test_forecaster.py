import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import pytest
import logging
import numpy as np
import pandas as pd
from garch.config import GarchConfig
from garch.estimator import GARCHEstimator
from garch.forecaster import RollingForecaster
from garch.models import GarchParameters
from garch.distributions import NormalDistribution
from utils.progress import ProgressMonitor
from garch.errors import (FitFailed, RollAborted, DimensionMismatch,
                          InsufficientData, InvalidParameter)

WINDOW = 250
REFIT_EVERY = 10
N_OBS = 320


@pytest.fixture(scope='module')
def sample_data():
    """Residuals and returns with volatility clustering"""
    params = GarchParameters(omega=0.05, alpha=0.1, beta=0.85)
    residuals = GARCHEstimator.simulate(params, N_OBS, 'normal', seed=11)['data'].values
    returns = residuals + 0.02
    return residuals, returns


@pytest.fixture
def config():
    return GarchConfig(window_size=WINDOW, refit_every=REFIT_EVERY,
                       window_mode='moving', distribution_kind='normal',
                       fit_timeout=None)


@pytest.fixture
def forecaster(config):
    """Create forecaster instance with test configuration"""
    return RollingForecaster(config)


class FailingEstimator(GARCHEstimator):
    """Estimator whose n-th fit raises FitFailed"""

    def __init__(self, config, fail_on):
        super().__init__(config)
        self.fail_on = set(fail_on)
        self.calls = 0

    def fit(self, residuals, distribution_kind=None, initial_guess=None):
        self.calls += 1
        if self.calls in self.fail_on:
            raise FitFailed(f"forced failure on call {self.calls}")
        return super().fit(residuals, distribution_kind, initial_guess)


def test_initialization(forecaster, config):
    assert forecaster.config is config
    assert isinstance(forecaster.estimator, GARCHEstimator)
    assert forecaster.estimator.config is config


def test_forecast_count_and_order(forecaster, sample_data):
    residuals, returns = sample_data
    series = forecaster.roll(residuals, returns)

    assert len(series) == N_OBS - WINDOW
    np.testing.assert_array_equal(series.time_indices, np.arange(WINDOW, N_OBS))
    assert np.all(np.diff(series.time_indices) > 0)
    assert np.all(series.sigma > 0)
    assert series.complete


def test_refit_count(forecaster, sample_data):
    residuals, returns = sample_data
    series = forecaster.roll(residuals, returns)

    expected = RollingForecaster.expected_refits(N_OBS, WINDOW, REFIT_EVERY)
    assert expected == 7
    assert len(series.refits) == expected
    assert [r.time_index for r in series.refits] == list(range(WINDOW, N_OBS, REFIT_EVERY))


def test_refit_count_uneven(sample_data, config):
    residuals, returns = sample_data
    series = RollingForecaster(config).roll(residuals, returns, refit_every=30)
    assert len(series.refits) == 3  # ceil(70 / 30)


def test_moving_window_bounds(forecaster, sample_data):
    residuals, returns = sample_data
    series = forecaster.roll(residuals, returns)

    for refit in series.refits:
        assert refit.window_end == refit.time_index
        assert refit.window_end - refit.window_start == WINDOW


def test_expanding_window_bounds(forecaster, sample_data):
    residuals, returns = sample_data
    series = forecaster.roll(residuals, returns, window_mode='expanding')

    for refit in series.refits:
        assert refit.window_start == 0
        assert refit.window_end == refit.time_index


def test_window_bounds_first_target():
    """The first window ends strictly before the first forecast target"""
    assert RollingForecaster.window_bounds(WINDOW, WINDOW, 'moving') == (0, WINDOW)
    assert RollingForecaster.window_bounds(WINDOW + 5, WINDOW, 'moving') == (5, WINDOW + 5)
    assert RollingForecaster.window_bounds(WINDOW + 5, WINDOW, 'expanding') == (0, WINDOW + 5)
    with pytest.raises(InvalidParameter):
        RollingForecaster.window_bounds(WINDOW, WINDOW, 'sliding')


def test_no_lookahead(forecaster, sample_data):
    """Changing data from index k on leaves every forecast up to k unchanged"""
    residuals, returns = sample_data
    base = forecaster.roll(residuals, returns)

    cutoff = 285
    perturbed = residuals.copy()
    perturbed[cutoff:] *= 5.0
    shifted = RollingForecaster(forecaster.config).roll(perturbed, returns)

    for a, b in zip(base, shifted):
        if a.time_index <= cutoff:
            assert a.sigma_forecast == b.sigma_forecast
    assert base.points[-1].sigma_forecast != shifted.points[-1].sigma_forecast


def test_forecast_recursion(forecaster, sample_data):
    """Refit steps use the fitted path, later steps filter forward"""
    residuals, returns = sample_data
    series = forecaster.roll(residuals, returns)

    fit = GARCHEstimator(forecaster.config).fit(residuals[:WINDOW], 'normal')
    first = series.points[0]
    expected = fit.params.omega + fit.params.alpha * residuals[WINDOW - 1] ** 2 \
        + fit.params.beta * fit.variance_path[-1]
    assert first.params == fit.params
    assert first.sigma_forecast == pytest.approx(np.sqrt(expected))

    for prev, point in zip(series.points[:REFIT_EVERY - 1], series.points[1:REFIT_EVERY]):
        p = point.params
        variance = p.omega + p.alpha * residuals[point.time_index - 1] ** 2 \
            + p.beta * prev.sigma_forecast ** 2
        assert point.sigma_forecast == pytest.approx(np.sqrt(variance))


def test_forecasts_keep_their_parameters(forecaster, sample_data):
    residuals, returns = sample_data
    series = forecaster.roll(residuals, returns)

    for i, point in enumerate(series):
        refit = series.refits[i // REFIT_EVERY]
        assert point.params is refit.params
        assert point.distribution == NormalDistribution()


def test_strict_policy_aborts_with_partial_results(sample_data, config):
    residuals, returns = sample_data
    forecaster = RollingForecaster(config, FailingEstimator(config, fail_on=[3]))

    with pytest.raises(RollAborted) as excinfo:
        forecaster.roll(residuals, returns)

    partial = excinfo.value.partial
    assert excinfo.value.time_index == WINDOW + 2 * REFIT_EVERY
    assert len(partial) == 2 * REFIT_EVERY
    assert not partial.complete
    assert len(partial.failed_refits) == 1
    assert isinstance(excinfo.value, FitFailed)


def test_lenient_policy_carries_forward(sample_data):
    residuals, returns = sample_data
    config = GarchConfig(window_size=WINDOW, refit_every=REFIT_EVERY,
                         distribution_kind='normal', refit_failure_policy='lenient',
                         fit_timeout=None)
    forecaster = RollingForecaster(config, FailingEstimator(config, fail_on=[2]))
    series = forecaster.roll(residuals, returns)

    assert len(series) == N_OBS - WINDOW
    assert series.complete
    failed = series.failed_refits
    assert len(failed) == 1
    assert failed[0].time_index == WINDOW + REFIT_EVERY

    # Forecasts after the failed refit reuse the first parameters
    stale = [p for p in series if WINDOW + REFIT_EVERY <= p.time_index < WINDOW + 2 * REFIT_EVERY]
    assert all(p.params is series.points[0].params for p in stale)


def test_lenient_policy_without_previous_fit_aborts(sample_data):
    residuals, returns = sample_data
    config = GarchConfig(window_size=WINDOW, refit_every=REFIT_EVERY,
                         distribution_kind='normal', refit_failure_policy='lenient')
    forecaster = RollingForecaster(config, FailingEstimator(config, fail_on=[1]))

    with pytest.raises(RollAborted) as excinfo:
        forecaster.roll(residuals, returns)
    assert len(excinfo.value.partial) == 0


def test_error_handling(forecaster, sample_data):
    """Test error handling"""
    residuals, returns = sample_data

    with pytest.raises(DimensionMismatch):
        forecaster.roll(residuals, returns[:-1])

    with pytest.raises(InsufficientData):
        forecaster.roll(residuals[:WINDOW], returns[:WINDOW])

    # Window too small for a GARCH fit
    with pytest.raises(InsufficientData):
        forecaster.roll(residuals, returns, window_size=20)

    with_nan = residuals.copy()
    with_nan[10] = np.nan
    with pytest.raises(InvalidParameter):
        forecaster.roll(with_nan, returns)


def test_dataframe_conversion(forecaster, sample_data):
    residuals, returns = sample_data
    series = forecaster.roll(residuals, returns)
    df = series.to_dataframe()

    assert isinstance(df, pd.DataFrame)
    assert len(df) == len(series)
    assert all(col in df.columns for col in ['sigma_forecast', 'realized_return',
                                             'omega', 'alpha', 'beta'])
    assert df.index[0] == WINDOW
    assert df.loc[WINDOW, 'realized_return'] == returns[WINDOW]


def test_student_t_roll(sample_data):
    residuals, returns = sample_data
    config = GarchConfig(window_size=WINDOW, refit_every=35,
                         distribution_kind='student_t', fit_timeout=None)
    series = RollingForecaster(config).roll(residuals, returns)

    assert len(series) == N_OBS - WINDOW
    assert all(p.distribution.shape == p.params.shape for p in series)


def test_progress_logging_follows_show_progress(sample_data, caplog):
    residuals, returns = sample_data

    quiet = GarchConfig(window_size=WINDOW, refit_every=REFIT_EVERY,
                        distribution_kind='normal', fit_timeout=None)
    with caplog.at_level(logging.INFO, logger='garch.forecaster'):
        RollingForecaster(quiet).roll(residuals, returns)
    assert not any(r.getMessage().startswith("Progress:") for r in caplog.records)

    caplog.clear()
    monitor = ProgressMonitor(total=10, logger=logging.getLogger('garch.forecaster'),
                              disable=False, log_every=5)
    with caplog.at_level(logging.INFO, logger='garch.forecaster'):
        with monitor:
            for _ in range(10):
                monitor.update()
    progress = [r for r in caplog.records if r.getMessage().startswith("Progress:")]
    assert len(progress) == 2

if __name__ == '__main__':
    pytest.main([__file__])
