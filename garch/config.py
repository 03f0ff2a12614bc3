"""Explicit configuration record for fitting, rolling and backtesting."""

from dataclasses import dataclass, fields, asdict
from typing import Any, Dict, Optional

from .errors import InvalidParameter

WINDOW_MODES = ('expanding', 'moving')
DISTRIBUTION_KINDS = ('normal', 'student_t')
REFIT_FAILURE_POLICIES = ('strict', 'lenient')


@dataclass(frozen=True)
class GarchConfig:
    """Configuration passed to every fit and roll.

    Args:
        window_size: In-sample observations before the first forecast
        refit_every: Re-estimate parameters every N out-of-sample steps
        window_mode: 'moving' keeps the last window_size observations,
            'expanding' keeps everything from the start of the series
        distribution_kind: 'normal' or 'student_t'
        confidence_level: VaR tail probability, e.g. 0.05
        refit_failure_policy: 'strict' aborts the roll on a failed refit,
            'lenient' carries forward the last good parameters
        optimizer_max_iter: Iteration cap passed to the optimizer
        optimizer_tolerance: Convergence tolerance passed to the optimizer
        min_observations: A fit needs strictly more observations than this
        fit_timeout: Seconds a single fit may take, None for no limit
        backtest_confidence: Coverage of the binomial tolerance bounds
        show_progress: Display a progress bar during the roll
    """
    window_size: int = 500
    refit_every: int = 20
    window_mode: str = 'moving'
    distribution_kind: str = 'student_t'
    confidence_level: float = 0.05
    refit_failure_policy: str = 'strict'
    optimizer_max_iter: int = 1000
    optimizer_tolerance: float = 1e-8
    min_observations: int = 30
    fit_timeout: Optional[float] = 60.0
    backtest_confidence: float = 0.95
    show_progress: bool = False

    def __post_init__(self):
        if self.window_size <= 0:
            raise InvalidParameter(f"window_size must be positive, got {self.window_size}")
        if self.refit_every <= 0:
            raise InvalidParameter(f"refit_every must be positive, got {self.refit_every}")
        if self.window_mode not in WINDOW_MODES:
            raise InvalidParameter(f"window_mode must be one of {WINDOW_MODES}")
        if self.distribution_kind not in DISTRIBUTION_KINDS:
            raise InvalidParameter(f"distribution_kind must be one of {DISTRIBUTION_KINDS}")
        if not 0 < self.confidence_level < 1:
            raise InvalidParameter(f"confidence_level must lie in (0, 1), got {self.confidence_level}")
        if self.refit_failure_policy not in REFIT_FAILURE_POLICIES:
            raise InvalidParameter(f"refit_failure_policy must be one of {REFIT_FAILURE_POLICIES}")
        if self.optimizer_max_iter <= 0:
            raise InvalidParameter("optimizer_max_iter must be positive")
        if self.optimizer_tolerance <= 0:
            raise InvalidParameter("optimizer_tolerance must be positive")
        if self.min_observations < 0:
            raise InvalidParameter("min_observations must be non-negative")
        if self.fit_timeout is not None and self.fit_timeout <= 0:
            raise InvalidParameter("fit_timeout must be positive or None")
        if not 0 < self.backtest_confidence < 1:
            raise InvalidParameter("backtest_confidence must lie in (0, 1)")

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> 'GarchConfig':
        """Build a config from a mapping, rejecting unknown keys"""
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise InvalidParameter(f"Unknown configuration keys: {sorted(unknown)}")
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
