"""Error types raised by the GARCH VaR engine."""


class GarchError(Exception):
    """Base class for all engine errors"""


class InvalidParameter(GarchError, ValueError):
    """Out-of-domain input, e.g. a quantile level outside (0, 1)"""


class InsufficientData(GarchError, ValueError):
    """Series shorter than the required minimum"""


class DimensionMismatch(GarchError, ValueError):
    """Sequences that must be aligned have different lengths"""


class ConstraintViolation(GarchError, ValueError):
    """Estimated parameters violate non-negativity or stationarity"""


class FitFailed(GarchError, RuntimeError):
    """Optimizer did not converge, timed out, or the input was degenerate"""


class RollAborted(FitFailed):
    """A scheduled refit failed under the strict policy.

    The forecasts produced before the failure are kept on ``partial``.
    """

    def __init__(self, message: str, partial=None, time_index: int = None):
        super().__init__(message)
        self.partial = partial
        self.time_index = time_index
