from enum import Enum
from typing import Optional
import logging
import time

import numpy as np
import pandas as pd
from scipy.optimize import minimize
from scipy.signal import lfilter
from arch.univariate import ZeroMean, GARCH, Normal, StudentsT

from .config import GarchConfig
from .distributions import make_distribution, MIN_SHAPE, MAX_SHAPE
from .errors import (InsufficientData, InvalidParameter, FitFailed,
                     ConstraintViolation)
from .models import GarchParameters, GarchFit

logger = logging.getLogger(__name__)

# Keeps alpha + beta strictly below one at the optimum
STATIONARITY_MARGIN = 1e-6
OMEGA_BOUNDS = (1e-8, 10.0)  # in units of the sample variance
SHAPE_BOUNDS = (MIN_SHAPE + 0.05, MAX_SHAPE)
DEFAULT_ALPHA = 0.1
DEFAULT_BETA = 0.8
DEFAULT_SHAPE = 8.0


class FitState(Enum):
    UNFIT = 'unfit'
    FITTING = 'fitting'
    FITTED = 'fitted'
    FIT_FAILED = 'fit_failed'


class _FitTimeout(Exception):
    pass


class GARCHEstimator:
    """Maximum-likelihood estimation of GARCH(1,1) on mean-model residuals"""

    def __init__(self, config: Optional[GarchConfig] = None):
        """
        Initialize estimator

        Args:
            config: Optimizer limits and minimum sample size; defaults to GarchConfig()
        """
        self.config = config or GarchConfig()
        self.state = FitState.UNFIT
        self.last_fit: Optional[GarchFit] = None
        self.logger = logging.getLogger('garch.estimator')

    @staticmethod
    def conditional_variance(residuals, params: GarchParameters,
                             initial_variance: Optional[float] = None) -> np.ndarray:
        """
        Evaluate the GARCH(1,1) variance recursion.

        sigma2[0] is seeded with the sample variance of the residuals unless
        ``initial_variance`` is given; every later value is
        omega + alpha * e[t-1]^2 + beta * sigma2[t-1].
        """
        e = np.asarray(residuals, dtype=float)
        seed = float(np.var(e)) if initial_variance is None else float(initial_variance)
        sigma2 = np.empty_like(e)
        if e.size == 0:
            return sigma2
        sigma2[0] = seed
        if e.size > 1:
            drive = params.omega + params.alpha * e[:-1] ** 2
            sigma2[1:] = lfilter([1.0], [1.0, -params.beta], drive, zi=[params.beta * seed])[0]
        return sigma2

    @staticmethod
    def forecast_variance(params: GarchParameters, last_residual: float,
                          last_variance: float) -> float:
        """1-step-ahead conditional variance"""
        return params.omega + params.alpha * last_residual ** 2 + params.beta * last_variance

    def default_initial_guess(self, residuals, distribution_kind: str) -> GarchParameters:
        sample_variance = float(np.var(residuals))
        return GarchParameters(
            omega=0.1 * sample_variance * (1 - DEFAULT_ALPHA - DEFAULT_BETA),
            alpha=DEFAULT_ALPHA,
            beta=DEFAULT_BETA,
            shape=DEFAULT_SHAPE if distribution_kind == 'student_t' else None
        )

    def _validate_residuals(self, residuals) -> np.ndarray:
        e = np.asarray(residuals, dtype=float)
        if e.ndim != 1:
            raise InvalidParameter(f"Residuals must be one-dimensional, got shape {e.shape}")
        if e.size <= self.config.min_observations:
            raise InsufficientData(
                f"Insufficient observations: {e.size} <= {self.config.min_observations}"
            )
        if not np.all(np.isfinite(e)):
            raise FitFailed("Residuals contain missing or non-finite values")
        if not np.var(e) > 0:
            raise FitFailed("Sample variance of residuals is not positive")
        return e

    @staticmethod
    def _validate_guess(guess: GarchParameters, distribution_kind: str):
        if guess.omega <= 0 or guess.alpha < 0 or guess.beta < 0:
            raise InvalidParameter(f"Initial guess violates positivity: {guess.to_dict()}")
        if guess.persistence >= 1:
            raise InvalidParameter(f"Initial guess is not stationary: alpha + beta = {guess.persistence:.4f}")
        if distribution_kind == 'student_t' and guess.shape is not None and guess.shape <= MIN_SHAPE:
            raise InvalidParameter(f"Initial shape must exceed {MIN_SHAPE}, got {guess.shape}")

    def _check_constraints(self, params: GarchParameters):
        """Reject, never clamp, parameters outside the admissible region"""
        if params.omega <= 0:
            raise ConstraintViolation(f"omega={params.omega:.3e} is not positive")
        if params.alpha < 0 or params.beta < 0:
            raise ConstraintViolation(
                f"Negative ARCH/GARCH coefficient: alpha={params.alpha:.6f}, beta={params.beta:.6f}"
            )
        if params.persistence >= 1:
            raise ConstraintViolation(f"Non-stationary estimate: alpha + beta = {params.persistence:.6f}")
        if params.shape is not None and params.shape <= MIN_SHAPE:
            raise ConstraintViolation(f"Student-t shape {params.shape:.4f} does not exceed {MIN_SHAPE}")

    def fit(self, residuals, distribution_kind: Optional[str] = None,
            initial_guess: Optional[GarchParameters] = None) -> GarchFit:
        """
        Fit GARCH(1,1) parameters by maximum likelihood.

        The optimization runs on residuals rescaled to unit sample variance;
        omega is mapped back to the original units afterwards.

        Args:
            residuals: Mean-model residuals for the estimation window
            distribution_kind: 'normal' or 'student_t'; defaults to the config
            initial_guess: Starting parameters in the residuals' units

        Returns:
            GarchFit with the estimated parameters and conditional variance path
        """
        kind = distribution_kind or self.config.distribution_kind
        self.state = FitState.FITTING
        try:
            fit = self._fit(residuals, kind, initial_guess)
        except Exception:
            self.state = FitState.FIT_FAILED
            raise
        self.state = FitState.FITTED
        self.last_fit = fit
        return fit

    def _fit(self, residuals, kind: str, initial_guess: Optional[GarchParameters]) -> GarchFit:
        # Validates the kind before touching data
        n_shape_params = make_distribution(kind).n_shape_params
        e = self._validate_residuals(residuals)
        n = e.size
        sample_variance = float(np.var(e))
        scaled = e / np.sqrt(sample_variance)

        guess = initial_guess or self.default_initial_guess(e, kind)
        self._validate_guess(guess, kind)

        x0 = [guess.omega / sample_variance, guess.alpha, guess.beta]
        bounds = [OMEGA_BOUNDS, (0.0, 1.0), (0.0, 1.0)]
        if n_shape_params:
            x0.append(guess.shape if guess.shape is not None else DEFAULT_SHAPE)
            bounds.append(SHAPE_BOUNDS)
        x0 = np.clip(x0, [b[0] for b in bounds], [b[1] for b in bounds])

        started = time.monotonic()
        timeout = self.config.fit_timeout

        def objective(x):
            if timeout is not None and time.monotonic() - started > timeout:
                raise _FitTimeout()
            params = self._unpack(x, kind)
            sigma = np.sqrt(self.conditional_variance(scaled, params))
            loglik = make_distribution(kind, params.shape).log_likelihood(scaled, sigma)
            if not np.isfinite(loglik):
                return 1e10
            return -loglik / n

        constraints = [{
            'type': 'ineq',
            'fun': lambda x: 1.0 - STATIONARITY_MARGIN - x[1] - x[2]
        }]

        try:
            initial_objective = objective(x0)
            result = minimize(
                objective,
                x0,
                method='SLSQP',
                bounds=bounds,
                constraints=constraints,
                options={
                    'maxiter': self.config.optimizer_max_iter,
                    'ftol': self.config.optimizer_tolerance
                }
            )
        except _FitTimeout:
            raise FitFailed(f"Fit exceeded timeout of {timeout:.1f}s on {n} observations")

        converged = bool(result.success)
        if not result.success:
            # Status 8 means the line search cannot improve further at this tolerance
            if result.status == 8 and np.isfinite(result.fun) and result.fun < initial_objective:
                self.logger.warning(f"Optimizer stopped at line search limit: {result.message}")
            else:
                raise FitFailed(f"Optimizer did not converge after {result.nit} iterations: {result.message}")

        scaled_params = self._unpack(result.x, kind)
        params = GarchParameters(
            omega=float(scaled_params.omega * sample_variance),
            alpha=scaled_params.alpha,
            beta=scaled_params.beta,
            shape=scaled_params.shape
        )
        self._check_constraints(params)

        variance_path = self.conditional_variance(e, params)
        if not np.all(variance_path > 0):
            raise ConstraintViolation("Conditional variance path is not strictly positive")
        loglik = make_distribution(kind, params.shape).log_likelihood(e, np.sqrt(variance_path))

        self.logger.info(
            f"GARCH(1,1)-{kind} fit on {n} obs: omega={params.omega:.3e}, "
            f"alpha={params.alpha:.4f}, beta={params.beta:.4f}"
            + (f", shape={params.shape:.2f}" if params.shape is not None else "")
            + f", uncond. var={params.unconditional_variance:.3e}"
            + f", loglik={loglik:.2f}, iterations={result.nit}"
        )

        return GarchFit(
            params=params,
            variance_path=variance_path,
            log_likelihood=float(loglik),
            n_obs=n,
            iterations=int(result.nit),
            distribution_kind=kind,
            converged=converged
        )

    @staticmethod
    def _unpack(x, kind: str) -> GarchParameters:
        return GarchParameters(
            omega=float(x[0]),
            alpha=float(x[1]),
            beta=float(x[2]),
            shape=float(x[3]) if kind == 'student_t' else None
        )

    @staticmethod
    def standardized_residuals(residuals, fit: GarchFit) -> np.ndarray:
        return np.asarray(residuals, dtype=float) / fit.volatility_path

    @staticmethod
    def simulate(params: GarchParameters, n_obs: int, distribution_kind: str = 'normal',
                 seed: Optional[int] = None, burn: int = 500) -> pd.DataFrame:
        """
        Simulate a zero-mean GARCH(1,1) process.

        Returns:
            DataFrame with columns 'data', 'volatility' and 'errors'
        """
        if distribution_kind == 'student_t':
            if params.shape is None:
                raise InvalidParameter("Student-t simulation requires params.shape")
            distribution = StudentsT(seed=seed)
            sim_params = [params.omega, params.alpha, params.beta, params.shape]
        elif distribution_kind == 'normal':
            distribution = Normal(seed=seed)
            sim_params = [params.omega, params.alpha, params.beta]
        else:
            raise InvalidParameter(f"Unknown distribution kind: {distribution_kind}")

        model = ZeroMean(volatility=GARCH(p=1, q=1), distribution=distribution)
        return model.simulate(sim_params, nobs=n_obs, burn=burn)
