"""
Backtesting of VaR thresholds.

- Exception counting (realized return strictly below the threshold)
- Binomial tolerance bounds on the exception count (Kupiec)
- Kupiec unconditional coverage likelihood ratio
- Christoffersen independence likelihood ratio
"""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np
from scipy import stats
from scipy.special import xlogy

from .errors import DimensionMismatch, InvalidParameter, InsufficientData
from .models import BacktestResult, ExceptionRecord

logger = logging.getLogger(__name__)


def _aligned(realized_returns, thresholds):
    realized = np.asarray(realized_returns, dtype=float)
    limits = np.asarray(thresholds, dtype=float)
    if realized.size == 0 or limits.size == 0:
        raise DimensionMismatch("Realized returns and thresholds must not be empty")
    if realized.shape != limits.shape:
        raise DimensionMismatch(
            f"Realized returns ({realized.size}) and thresholds ({limits.size}) differ in length"
        )
    if not (np.all(np.isfinite(realized)) and np.all(np.isfinite(limits))):
        raise InvalidParameter("Realized returns and thresholds must not contain missing values")
    return realized, limits


def exception_flags(realized_returns, thresholds) -> np.ndarray:
    """Boolean hit sequence; returns equal to the threshold are not exceptions"""
    realized, limits = _aligned(realized_returns, thresholds)
    return realized < limits


def exception_records(realized_returns, thresholds,
                      time_indices: Optional[Sequence[int]] = None) -> List[ExceptionRecord]:
    realized, limits = _aligned(realized_returns, thresholds)
    if time_indices is None:
        time_indices = range(realized.size)
    elif len(time_indices) != realized.size:
        raise DimensionMismatch("time_indices must align with realized returns")
    return [
        ExceptionRecord(time_index=int(t),
                        realized_return=float(r),
                        threshold=float(v),
                        is_exception=bool(r < v))
        for t, r, v in zip(time_indices, realized, limits)
    ]


def binomial_bounds(total: int, level: float, confidence: float = 0.95):
    """
    Two-sided tolerance bounds on the number of exceptions.

    Inverts the Binomial(total, level) CDF at (1 - confidence) / 2 and
    1 - (1 - confidence) / 2.
    """
    if not 0 < level < 1:
        raise InvalidParameter(f"level must lie in (0, 1), got {level}")
    if not 0 < confidence < 1:
        raise InvalidParameter(f"confidence must lie in (0, 1), got {confidence}")
    tail = (1.0 - confidence) / 2.0
    lower = int(stats.binom.ppf(tail, total, level))
    upper = int(stats.binom.ppf(1.0 - tail, total, level))
    return lower, upper


def kupiec_lr(exceptions: int, total: int, level: float):
    """Unconditional coverage LR statistic and its chi-square(1) p-value"""
    observed = exceptions / total
    null = xlogy(total - exceptions, 1 - level) + xlogy(exceptions, level)
    alternative = xlogy(total - exceptions, 1 - observed) + xlogy(exceptions, observed)
    lr = max(-2.0 * (null - alternative), 0.0)
    return float(lr), float(stats.chi2.sf(lr, df=1))


def backtest(realized_returns, thresholds, level: float,
             confidence: float = 0.95) -> BacktestResult:
    """
    Count VaR exceptions and compare them with binomial tolerance bounds.

    Args:
        realized_returns: Out-of-sample returns
        thresholds: VaR thresholds aligned with realized_returns
        level: VaR tail probability, e.g. 0.05
        confidence: Coverage of the binomial bounds

    Returns:
        BacktestResult with verdict 'accept' iff lower_bound <= exceptions <= upper_bound
    """
    hits = exception_flags(realized_returns, thresholds)
    total = int(hits.size)
    exceptions = int(hits.sum())
    lower, upper = binomial_bounds(total, level, confidence)
    verdict = 'accept' if lower <= exceptions <= upper else 'reject'
    lr, pvalue = kupiec_lr(exceptions, total, level)

    logger.info(
        f"Backtest: {exceptions}/{total} exceptions at level {level:.3f}, "
        f"bounds [{lower}, {upper}] -> {verdict} (Kupiec LR={lr:.3f}, p={pvalue:.3f})"
    )

    return BacktestResult(
        exceptions=exceptions,
        total=total,
        lower_bound=lower,
        upper_bound=upper,
        verdict=verdict,
        level=level,
        confidence=confidence,
        kupiec_lr=lr,
        kupiec_pvalue=pvalue
    )


def christoffersen_test(hits) -> Dict[str, float]:
    """
    Likelihood ratio test for independence of consecutive exceptions.

    Args:
        hits: Boolean exception sequence in time order

    Returns:
        Dictionary with transition counts, LR statistic and p-value
    """
    h = np.asarray(hits, dtype=int)
    if h.size < 2:
        raise InsufficientData("Independence test needs at least two observations")

    prev, curr = h[:-1], h[1:]
    n00 = int(np.sum((prev == 0) & (curr == 0)))
    n01 = int(np.sum((prev == 0) & (curr == 1)))
    n10 = int(np.sum((prev == 1) & (curr == 0)))
    n11 = int(np.sum((prev == 1) & (curr == 1)))

    pi01 = n01 / (n00 + n01) if (n00 + n01) > 0 else 0.0
    pi11 = n11 / (n10 + n11) if (n10 + n11) > 0 else 0.0
    pi = (n01 + n11) / (n00 + n01 + n10 + n11)

    restricted = xlogy(n00 + n10, 1 - pi) + xlogy(n01 + n11, pi)
    unrestricted = (xlogy(n00, 1 - pi01) + xlogy(n01, pi01)
                    + xlogy(n10, 1 - pi11) + xlogy(n11, pi11))
    lr = max(-2.0 * (restricted - unrestricted), 0.0)

    return {
        'n00': n00, 'n01': n01, 'n10': n10, 'n11': n11,
        'lr_ind': float(lr),
        'p_value': float(stats.chi2.sf(lr, df=1))
    }
