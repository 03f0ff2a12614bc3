"""
Prepare return series for GARCH estimation.
"""

from pathlib import Path
from typing import Optional, Union
import logging

import numpy as np
import pandas as pd

from .errors import InvalidParameter, InsufficientData

logger = logging.getLogger(__name__)


def read_series(path: Union[str, Path], column: Optional[str] = None) -> pd.Series:
    """
    Read one numeric series from a CSV file.

    Files with a header are read by column name (first numeric column when
    ``column`` is None); headerless files hold one value per line.

    Args:
        path: CSV or plain text file
        column: Column to read

    Returns:
        Float series with a positional index
    """
    path = Path(path)
    df = pd.read_csv(path)
    if column is None and all(_is_number(c) for c in df.columns):
        df = pd.read_csv(path, header=None)
    if column is not None:
        if column not in df.columns:
            raise InvalidParameter(f"Column {column!r} not found in {path}")
        series = df[column]
    else:
        numeric = df.select_dtypes(include='number')
        if numeric.empty:
            raise InvalidParameter(f"No numeric column found in {path}")
        series = numeric.iloc[:, 0]

    series = pd.to_numeric(series, errors='coerce').astype(float).reset_index(drop=True)
    logger.info(f"Read {len(series)} values from {path}")
    return series


def _is_number(value) -> bool:
    try:
        float(value)
    except (TypeError, ValueError):
        return False
    return True


def prices_to_returns(prices) -> pd.Series:
    """Simple returns p[t] / p[t-1] - 1"""
    prices = pd.Series(np.asarray(prices, dtype=float))
    if (prices <= 0).any():
        raise InvalidParameter("Prices must be strictly positive")
    return prices.pct_change().dropna().reset_index(drop=True)


def validate_returns(returns, min_observations: int = 1) -> np.ndarray:
    """
    Check a return series before estimation.

    Returns:
        Read-only float array
    """
    r = np.array(returns, dtype=float)
    if r.ndim != 1:
        raise InvalidParameter(f"Returns must be one-dimensional, got shape {r.shape}")
    if r.size < min_observations:
        raise InsufficientData(f"Insufficient observations: {r.size} < {min_observations}")
    missing = int(np.sum(~np.isfinite(r)))
    if missing:
        raise InvalidParameter(f"Returns contain {missing} missing values")
    if np.any(r <= -1):
        raise InvalidParameter("Simple returns must exceed -1")

    zero_returns = int(np.sum(r == 0))
    if zero_returns:
        logger.warning(f"Found {zero_returns} zero returns")

    r.setflags(write=False)
    return r
