"""
GARCH(1,1) volatility package for rolling Value-at-Risk.
Implements estimation, rolling forecasts, VaR thresholds and backtests.
"""

from .config import GarchConfig
from .distributions import NormalDistribution, StudentTDistribution, make_distribution, fit_shape
from .estimator import GARCHEstimator, FitState
from .forecaster import RollingForecaster
from .models import (GarchParameters, GarchFit, ForecastPoint, ForecastSeries,
                     RefitRecord, VaRThreshold, ExceptionRecord, BacktestResult)
from .var import garch_var, delta_normal_var
from .backtest import backtest, christoffersen_test
from .errors import (GarchError, InvalidParameter, InsufficientData, DimensionMismatch,
                     FitFailed, ConstraintViolation, RollAborted)

__all__ = [
    'GarchConfig', 'NormalDistribution', 'StudentTDistribution', 'make_distribution',
    'fit_shape', 'GARCHEstimator', 'FitState', 'RollingForecaster', 'GarchParameters',
    'GarchFit', 'ForecastPoint', 'ForecastSeries', 'RefitRecord', 'VaRThreshold',
    'ExceptionRecord', 'BacktestResult', 'garch_var', 'delta_normal_var', 'backtest',
    'christoffersen_test', 'GarchError', 'InvalidParameter', 'InsufficientData',
    'DimensionMismatch', 'FitFailed', 'ConstraintViolation', 'RollAborted'
]
