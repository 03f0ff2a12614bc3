"""
Innovation distributions for GARCH likelihoods and VaR quantiles.
Both distributions are zero-mean with unit variance.
"""

import logging
from typing import Optional

import numpy as np
from scipy import stats
from scipy.optimize import minimize_scalar
from scipy.special import gammaln

from .errors import InvalidParameter, DimensionMismatch, FitFailed, InsufficientData

logger = logging.getLogger(__name__)

MIN_SHAPE = 2.0
MAX_SHAPE = 200.0


def _check_level(p: float):
    if not 0 < p < 1:
        raise InvalidParameter(f"Quantile level must lie in (0, 1), got {p}")


def _aligned(residuals, sigma_path):
    residuals = np.asarray(residuals, dtype=float)
    sigma_path = np.asarray(sigma_path, dtype=float)
    if residuals.shape != sigma_path.shape:
        raise DimensionMismatch(
            f"Residuals ({len(residuals)}) and sigma path ({len(sigma_path)}) differ in length"
        )
    return residuals, sigma_path


class NormalDistribution:
    """Standard normal innovations"""
    kind = 'normal'
    n_shape_params = 0

    @property
    def shape(self) -> Optional[float]:
        return None

    def quantile(self, p: float) -> float:
        _check_level(p)
        return float(stats.norm.ppf(p))

    def density(self, x: float) -> float:
        return float(stats.norm.pdf(x))

    def log_likelihood(self, residuals, sigma_path) -> float:
        residuals, sigma_path = _aligned(residuals, sigma_path)
        variance = sigma_path ** 2
        return float(-0.5 * np.sum(np.log(2 * np.pi) + np.log(variance) + residuals ** 2 / variance))

    def __eq__(self, other):
        return isinstance(other, NormalDistribution)

    def __hash__(self):
        return hash(self.kind)

    def __repr__(self):
        return "NormalDistribution()"


class StudentTDistribution:
    """Student-t innovations rescaled to unit variance.

    ``shape`` is the degrees of freedom and must exceed 2 for the
    variance to exist.
    """
    kind = 'student_t'
    n_shape_params = 1

    def __init__(self, shape: float):
        if shape is None or not np.isfinite(shape) or shape <= MIN_SHAPE:
            raise InvalidParameter(f"Student-t shape must be > {MIN_SHAPE}, got {shape}")
        self._shape = float(shape)

    @property
    def shape(self) -> float:
        return self._shape

    @property
    def scale(self) -> float:
        """Factor mapping a standard t variate to unit variance"""
        return np.sqrt((self._shape - 2.0) / self._shape)

    def quantile(self, p: float) -> float:
        _check_level(p)
        return float(stats.t.ppf(p, self._shape) * self.scale)

    def density(self, x: float) -> float:
        return float(stats.t.pdf(x / self.scale, self._shape) / self.scale)

    def log_likelihood(self, residuals, sigma_path) -> float:
        residuals, sigma_path = _aligned(residuals, sigma_path)
        return float(np.sum(standardized_t_logpdf(residuals, sigma_path, self._shape)))

    def __eq__(self, other):
        return isinstance(other, StudentTDistribution) and other.shape == self.shape

    def __hash__(self):
        return hash((self.kind, self._shape))

    def __repr__(self):
        return f"StudentTDistribution(shape={self._shape:.4f})"


def standardized_t_logpdf(residuals: np.ndarray, sigma: np.ndarray, shape: float) -> np.ndarray:
    """Per-observation log density of residuals with conditional scale sigma"""
    z2 = (residuals / sigma) ** 2
    const = (gammaln((shape + 1) / 2) - gammaln(shape / 2)
             - 0.5 * np.log(np.pi * (shape - 2)))
    return const - np.log(sigma) - (shape + 1) / 2 * np.log1p(z2 / (shape - 2))


def make_distribution(kind: str, shape: Optional[float] = None):
    """Build a distribution from its kind name"""
    if kind == 'normal':
        return NormalDistribution()
    if kind == 'student_t':
        return StudentTDistribution(8.0 if shape is None else shape)
    raise InvalidParameter(f"Unknown distribution kind: {kind}")


def fit_shape(standardized_residuals, bounds=(MIN_SHAPE + 1e-3, MAX_SHAPE)) -> StudentTDistribution:
    """
    Estimate the Student-t shape from standardized residuals by maximum
    likelihood, with location 0 and unit variance held fixed.

    Args:
        standardized_residuals: Residuals divided by their conditional volatility
        bounds: Search interval for the degrees of freedom

    Returns:
        StudentTDistribution with the fitted shape
    """
    z = np.asarray(standardized_residuals, dtype=float)
    if z.size < 3:
        raise InsufficientData(f"Need at least 3 standardized residuals, got {z.size}")
    if not np.all(np.isfinite(z)):
        raise InvalidParameter("Standardized residuals contain non-finite values")

    ones = np.ones_like(z)

    def negative_loglik(shape):
        return -np.sum(standardized_t_logpdf(z, ones, shape))

    result = minimize_scalar(negative_loglik, bounds=bounds, method='bounded')
    if not result.success:
        raise FitFailed(f"Shape estimation did not converge: {result.message}")

    logger.debug(f"Fitted Student-t shape {result.x:.4f} on {z.size} observations")
    return StudentTDistribution(float(result.x))
