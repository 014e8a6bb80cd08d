"""
Beta-value / M-value transformation for methylation data.
"""

import logging
from typing import Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

ArrayLike = Union[float, np.ndarray, pd.Series, pd.DataFrame]

DEFAULT_OFFSET = 1e-6


def _apply(values: ArrayLike, func) -> ArrayLike:
    """Apply an element-wise numpy function keeping pandas labels."""
    if isinstance(values, pd.DataFrame):
        return pd.DataFrame(
            func(values.to_numpy(dtype=float)), index=values.index, columns=values.columns
        )
    if isinstance(values, pd.Series):
        return pd.Series(func(values.to_numpy(dtype=float)), index=values.index, name=values.name)
    result = func(np.asarray(values, dtype=float))
    return result.item() if np.ndim(result) == 0 else result


def beta_to_m(beta: ArrayLike, offset: float = DEFAULT_OFFSET) -> ArrayLike:
    """
    Convert beta values to M-values.

    M = log2(beta / (1 - beta)), after clamping beta into
    [offset, 1 - offset] so that 0 and 1 map to finite values.
    Missing values stay missing.

    Args:
        beta: Beta values (scalar, array, Series or DataFrame)
        offset: Clamping distance from 0 and 1

    Returns:
        M-values with the same shape and labels as the input
    """
    if not 0 < offset < 0.5:
        raise ValueError(f"offset must be in (0, 0.5), got {offset}")

    def transform(values: np.ndarray) -> np.ndarray:
        clamped = np.clip(values, offset, 1 - offset)
        return np.log2(clamped / (1 - clamped))

    return _apply(beta, transform)


def m_to_beta(m: ArrayLike) -> ArrayLike:
    """
    Convert M-values back to beta values: beta = 2^M / (2^M + 1).

    Args:
        m: M-values (scalar, array, Series or DataFrame)

    Returns:
        Beta values with the same shape and labels as the input
    """
    def transform(values: np.ndarray) -> np.ndarray:
        return 1.0 / (1.0 + np.exp2(-values))

    return _apply(m, transform)


class MValueTransformer:
    """
    Beta <-> M-value transformer with a fixed clamping offset.

    Never modifies its input; every call returns a new object.
    """

    def __init__(self, offset: float = DEFAULT_OFFSET):
        """
        Initialize transformer.

        Args:
            offset: Clamping distance from 0 and 1 applied before the logit
        """
        if not 0 < offset < 0.5:
            raise ValueError(f"offset must be in (0, 0.5), got {offset}")
        self.offset = offset

    def transform(self, beta: ArrayLike) -> ArrayLike:
        """Convert beta values to M-values."""
        m_values = beta_to_m(beta, offset=self.offset)
        if isinstance(beta, pd.DataFrame):
            n_clamped = int(((beta < self.offset) | (beta > 1 - self.offset)).to_numpy().sum())
            if n_clamped:
                logger.debug(f"Clamped {n_clamped} beta values at the boundaries")
            logger.info(f"Computed M-values for {beta.shape[0]} probes x {beta.shape[1]} samples")
        return m_values

    def inverse_transform(self, m_values: ArrayLike) -> ArrayLike:
        """Convert M-values to beta values."""
        return m_to_beta(m_values)

    def __repr__(self) -> str:
        return f"MValueTransformer(offset={self.offset})"
