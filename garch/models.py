"""Data records shared across the estimator, forecaster, VaR and backtest."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class GarchParameters:
    """Container for one set of estimated GARCH(1,1) parameters"""
    omega: float
    alpha: float
    beta: float
    shape: Optional[float] = None  # Student-t degrees of freedom

    @property
    def persistence(self) -> float:
        return self.alpha + self.beta

    @property
    def unconditional_variance(self) -> float:
        return self.omega / (1.0 - self.persistence)

    def to_dict(self) -> Dict[str, float]:
        params = {'omega': self.omega, 'alpha': self.alpha, 'beta': self.beta}
        if self.shape is not None:
            params['shape'] = self.shape
        return params


@dataclass(frozen=True)
class GarchFit:
    """Result of a single maximum-likelihood fit"""
    params: GarchParameters
    variance_path: np.ndarray  # conditional variances aligned with the window
    log_likelihood: float
    n_obs: int
    iterations: int
    distribution_kind: str
    converged: bool = True  # False when SLSQP stopped at its line search limit

    def __iter__(self):
        # Allows ``params, path = estimator.fit(...)``
        return iter((self.params, self.variance_path))

    @property
    def volatility_path(self) -> np.ndarray:
        return np.sqrt(self.variance_path)


@dataclass(frozen=True)
class ForecastPoint:
    """1-step-ahead conditional volatility for ``time_index``"""
    time_index: int
    sigma_forecast: float
    distribution: object  # DistributionModel snapshot used for the quantile
    params: GarchParameters


@dataclass(frozen=True)
class RefitRecord:
    """Outcome of one scheduled refit during a roll"""
    time_index: int  # forecast target that triggered the refit
    window_start: int
    window_end: int  # exclusive
    params: Optional[GarchParameters] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class ForecastSeries:
    """Append-only collection of forecasts produced by a roll"""
    window_size: int
    refit_every: int
    window_mode: str
    points: List[ForecastPoint] = field(default_factory=list)
    refits: List[RefitRecord] = field(default_factory=list)
    realized_returns: Dict[int, float] = field(default_factory=dict)
    failure: Optional[str] = None

    def append(self, point: ForecastPoint):
        if self.points and point.time_index <= self.points[-1].time_index:
            raise ValueError("Forecasts must be appended in increasing time order")
        self.points.append(point)

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self):
        return iter(self.points)

    @property
    def complete(self) -> bool:
        return self.failure is None

    @property
    def time_indices(self) -> np.ndarray:
        return np.array([p.time_index for p in self.points], dtype=int)

    @property
    def sigma(self) -> np.ndarray:
        return np.array([p.sigma_forecast for p in self.points], dtype=float)

    @property
    def failed_refits(self) -> List[RefitRecord]:
        return [r for r in self.refits if not r.succeeded]

    def to_dataframe(self) -> pd.DataFrame:
        """Convert forecasts to a DataFrame indexed by time_index"""
        records = []
        for point in self.points:
            record = {
                'time_index': point.time_index,
                'sigma_forecast': point.sigma_forecast,
                'realized_return': self.realized_returns.get(point.time_index, np.nan),
                **point.params.to_dict()
            }
            records.append(record)
        df = pd.DataFrame(records)
        if not df.empty:
            df = df.set_index('time_index')
        return df


@dataclass(frozen=True)
class VaRThreshold:
    """Signed return threshold; a return below it is an exception"""
    time_index: int
    level: float
    value: float


@dataclass(frozen=True)
class ExceptionRecord:
    time_index: int
    realized_return: float
    threshold: float
    is_exception: bool


@dataclass(frozen=True)
class BacktestResult:
    """Exception count evaluated against binomial tolerance bounds"""
    exceptions: int
    total: int
    lower_bound: int
    upper_bound: int
    verdict: str  # 'accept' or 'reject'
    level: float
    confidence: float
    kupiec_lr: float
    kupiec_pvalue: float

    @property
    def accepted(self) -> bool:
        return self.verdict == 'accept'

    @property
    def exception_rate(self) -> float:
        return self.exceptions / self.total

    def to_dict(self) -> Dict[str, float]:
        return {
            'exceptions': self.exceptions,
            'total': self.total,
            'lower_bound': self.lower_bound,
            'upper_bound': self.upper_bound,
            'verdict': self.verdict,
            'level': self.level,
            'confidence': self.confidence,
            'kupiec_lr': self.kupiec_lr,
            'kupiec_pvalue': self.kupiec_pvalue
        }
