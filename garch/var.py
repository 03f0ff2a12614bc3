"""
Value-at-Risk thresholds from volatility forecasts.

VaR here is a signed return threshold: a realized return below it is an
exception. For a tail probability ``level`` (e.g. 0.05) the threshold is
mean + sigma * q(level), which is negative for typical inputs.
"""

from typing import Callable, Iterable, List

import numpy as np
from scipy import stats

from .errors import InvalidParameter, InsufficientData
from .models import ForecastPoint, ForecastSeries, VaRThreshold


def _check_level(level: float):
    if not 0 < level < 1:
        raise InvalidParameter(f"VaR level must lie in (0, 1), got {level}")


def garch_var(mean: float, forecast: ForecastPoint, distribution, level: float) -> float:
    """Conditional VaR: mean + sigma_forecast * quantile(level)"""
    _check_level(level)
    if not forecast.sigma_forecast > 0:
        raise InvalidParameter(f"sigma_forecast must be positive, got {forecast.sigma_forecast}")
    return float(mean + forecast.sigma_forecast * distribution.quantile(level))


def delta_normal_var(mean: float, sigma_constant: float, level: float) -> float:
    """Unconditional VaR with a constant, normally distributed volatility"""
    _check_level(level)
    if not sigma_constant > 0:
        raise InvalidParameter(f"sigma_constant must be positive, got {sigma_constant}")
    return float(mean + sigma_constant * stats.norm.ppf(level))


def sample_sigma(in_sample_returns) -> float:
    """Sample standard deviation (ddof=1) over a fixed in-sample window"""
    r = np.asarray(in_sample_returns, dtype=float)
    if r.size < 2:
        raise InsufficientData("Need at least two in-sample returns for a standard deviation")
    return float(np.std(r, ddof=1))


def garch_var_series(forecasts: ForecastSeries, mean_forecast: Callable[[int], float],
                     level: float) -> List[VaRThreshold]:
    """GARCH VaR for every forecast, each with the distribution that produced it"""
    return [
        VaRThreshold(time_index=point.time_index,
                     level=level,
                     value=garch_var(mean_forecast(point.time_index), point,
                                     point.distribution, level))
        for point in forecasts
    ]


def delta_normal_var_series(time_indices: Iterable[int], mean_forecast: Callable[[int], float],
                            in_sample_returns, level: float) -> List[VaRThreshold]:
    """Delta-normal VaR with sigma fixed from ``in_sample_returns``"""
    sigma = sample_sigma(in_sample_returns)
    return [
        VaRThreshold(time_index=int(t),
                     level=level,
                     value=delta_normal_var(mean_forecast(int(t)), sigma, level))
        for t in time_indices
    ]


def threshold_values(thresholds: List[VaRThreshold]) -> np.ndarray:
    return np.array([t.value for t in thresholds], dtype=float)
