"""
Conditional mean collaborators.

The volatility engine consumes a fixed residual series and a
``mean_forecast(time_index)`` callable. These classes provide both from a
fixed-order ARMA fit or a constant mean; no order selection is done here.
"""

import logging
from typing import Tuple

import numpy as np
from statsmodels.tsa.arima.model import ARIMA

from .errors import InvalidParameter, InsufficientData

logger = logging.getLogger(__name__)


class ConstantMeanModel:
    """Sample mean as the conditional mean"""

    def __init__(self, returns):
        r = np.asarray(returns, dtype=float)
        if r.size == 0:
            raise InsufficientData("Cannot fit a mean model to an empty series")
        if not np.all(np.isfinite(r)):
            raise InvalidParameter("Returns contain missing values")
        self.mu = float(np.mean(r))
        self.residuals = r - self.mu
        self.residuals.setflags(write=False)
        self.n_obs = r.size

    def mean_forecast(self, time_index: int) -> float:
        if not 0 <= time_index <= self.n_obs:
            raise InvalidParameter(f"time_index {time_index} outside [0, {self.n_obs}]")
        return self.mu


class ARMAMeanModel:
    """Fixed-order ARMA(p, q) with constant, fitted once with statsmodels"""

    def __init__(self, returns, order: Tuple[int, int] = (1, 0)):
        r = np.asarray(returns, dtype=float)
        p, q = order
        if p < 0 or q < 0:
            raise InvalidParameter(f"ARMA order must be non-negative, got {order}")
        if r.size <= p + q + 10:
            raise InsufficientData(f"Too few observations ({r.size}) for ARMA{order}")
        if not np.all(np.isfinite(r)):
            raise InvalidParameter("Returns contain missing values")

        self.order = (p, q)
        self.n_obs = r.size
        self.result = ARIMA(r, order=(p, 0, q), trend='c').fit()
        self.fitted = np.asarray(self.result.fittedvalues, dtype=float)
        self.residuals = np.asarray(self.result.resid, dtype=float)
        self.residuals.setflags(write=False)
        self._next = float(np.asarray(self.result.forecast(steps=1))[0])

        logger.info(
            f"ARMA{self.order} mean model on {self.n_obs} obs: "
            + ", ".join(f"{name}={value:.5f}" for name, value in
                        zip(self.result.model.param_names, self.result.params))
        )

    @property
    def params(self):
        return dict(zip(self.result.model.param_names, self.result.params))

    def mean_forecast(self, time_index: int) -> float:
        """One-step conditional mean for ``time_index`` given data before it"""
        if 0 <= time_index < self.n_obs:
            return float(self.fitted[time_index])
        if time_index == self.n_obs:
            return self._next
        raise InvalidParameter(f"time_index {time_index} outside [0, {self.n_obs}]")
