from typing import Optional, Tuple
import logging
import math

import numpy as np

from .config import GarchConfig, WINDOW_MODES
from .distributions import make_distribution
from .errors import (InsufficientData, DimensionMismatch, InvalidParameter,
                     FitFailed, ConstraintViolation, RollAborted)
from .estimator import GARCHEstimator
from .models import ForecastPoint, ForecastSeries, RefitRecord
from utils.progress import ProgressMonitor

logger = logging.getLogger(__name__)


class RollingForecaster:
    """Manages rolling re-estimation and 1-step-ahead volatility forecasts"""

    def __init__(self, config: Optional[GarchConfig] = None,
                 estimator: Optional[GARCHEstimator] = None):
        """Initialize forecaster with a GARCH estimator sharing the same config"""
        self.config = config or (estimator.config if estimator is not None else GarchConfig())
        self.estimator = estimator or GARCHEstimator(self.config)
        self.logger = logging.getLogger('garch.forecaster')

    @staticmethod
    def window_bounds(target: int, window_size: int, window_mode: str) -> Tuple[int, int]:
        """
        Estimation window for a forecast of ``target``.

        The window always ends strictly before the target, so the slice
        [start, end) never contains the value being forecast.
        """
        end = target
        if window_mode == 'moving':
            start = end - window_size
        elif window_mode == 'expanding':
            start = 0
        else:
            raise InvalidParameter(f"window_mode must be one of {WINDOW_MODES}, got {window_mode}")
        return start, end

    @staticmethod
    def expected_refits(n_obs: int, window_size: int, refit_every: int) -> int:
        return math.ceil((n_obs - window_size) / refit_every)

    def _validate_inputs(self, residuals, returns, window_size: int, refit_every: int):
        e = np.asarray(residuals, dtype=float)
        r = np.asarray(returns, dtype=float)
        if e.ndim != 1 or r.ndim != 1:
            raise InvalidParameter("Residuals and returns must be one-dimensional")
        if e.size != r.size:
            raise DimensionMismatch(
                f"Residuals ({e.size}) and returns ({r.size}) are not aligned"
            )
        if window_size <= 0 or refit_every <= 0:
            raise InvalidParameter("window_size and refit_every must be positive")
        if e.size < window_size + 1:
            raise InsufficientData(
                f"Insufficient data for rolling: {e.size} < window_size + 1 = {window_size + 1}"
            )
        if window_size <= self.config.min_observations:
            raise InsufficientData(
                f"window_size {window_size} must exceed min_observations {self.config.min_observations}"
            )
        if not (np.all(np.isfinite(e)) and np.all(np.isfinite(r))):
            raise InvalidParameter("Residuals and returns must not contain missing values")
        return e, r

    def roll(self, full_residuals, full_returns,
             window_size: Optional[int] = None,
             refit_every: Optional[int] = None,
             window_mode: Optional[str] = None,
             distribution_kind: Optional[str] = None) -> ForecastSeries:
        """
        Produce one 1-step-ahead volatility forecast per out-of-sample point.

        Arguments left as None are taken from the config. A refit happens on
        every ``refit_every``-th out-of-sample step, starting with the first.
        Between refits the variance recursion is filtered forward with the
        last estimated parameters.

        Raises:
            RollAborted: a refit failed under the strict policy (or before any
                successful fit); ``partial`` holds the forecasts made so far
        """
        window_size = window_size or self.config.window_size
        refit_every = refit_every or self.config.refit_every
        window_mode = window_mode or self.config.window_mode
        kind = distribution_kind or self.config.distribution_kind
        policy = self.config.refit_failure_policy

        residuals, returns = self._validate_inputs(full_residuals, full_returns,
                                                   window_size, refit_every)
        # Fail on bad modes before any fitting
        self.window_bounds(window_size, window_size, window_mode)

        n_out = residuals.size - window_size
        self.logger.info(
            f"\nRolling forecast setup:"
            f"\n  Total observations: {residuals.size}"
            f"\n  Window size: {window_size} ({window_mode})"
            f"\n  Out-of-sample points: {n_out}"
            f"\n  Refit every: {refit_every} ({self.expected_refits(residuals.size, window_size, refit_every)} refits)"
            f"\n  Distribution: {kind}, failure policy: {policy}"
        )

        series = ForecastSeries(window_size=window_size,
                                refit_every=refit_every,
                                window_mode=window_mode)
        params = None
        distribution = None
        last_variance = None

        with ProgressMonitor(total=n_out, desc="Rolling forecast",
                             logger=self.logger,
                             disable=not self.config.show_progress) as monitor:
            for i in range(n_out):
                target = window_size + i

                if i % refit_every == 0:
                    start, end = self.window_bounds(target, window_size, window_mode)
                    try:
                        fit = self.estimator.fit(residuals[start:end], kind)
                    except (FitFailed, ConstraintViolation) as exc:
                        series.refits.append(RefitRecord(time_index=target,
                                                         window_start=start,
                                                         window_end=end,
                                                         error=str(exc)))
                        if policy == 'strict' or params is None:
                            series.failure = f"Refit for t={target} failed: {exc}"
                            self.logger.error(series.failure)
                            raise RollAborted(series.failure, partial=series,
                                              time_index=target) from exc
                        self.logger.warning(
                            f"Refit for t={target} failed ({exc}); carrying forward "
                            f"parameters from t={series.points[-1].time_index}"
                        )
                    else:
                        params = fit.params
                        distribution = make_distribution(kind, params.shape)
                        last_variance = fit.variance_path[-1]
                        series.refits.append(RefitRecord(time_index=target,
                                                         window_start=start,
                                                         window_end=end,
                                                         params=params))

                variance = self.estimator.forecast_variance(params, residuals[target - 1], last_variance)
                series.append(ForecastPoint(time_index=target,
                                            sigma_forecast=float(np.sqrt(variance)),
                                            distribution=distribution,
                                            params=params))
                series.realized_returns[target] = float(returns[target])
                last_variance = variance
                monitor.update()

        self.logger.info(
            f"Completed roll: {len(series)} forecasts, {len(series.refits)} refits, "
            f"{len(series.failed_refits)} failed"
        )
        return series
