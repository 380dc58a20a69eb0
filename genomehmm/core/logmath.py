"""
genomehmm extended log arithmetic

Probabilities are carried as natural logarithms so that products over
hundreds of thousands of positions never underflow. The log of zero has no
finite representation, so it is carried as an explicit sentinel (LOG_ZERO)
and every operation here tests for it before doing any arithmetic.

Provides:
1. Scalar primitives: extended_exp, extended_ln, log_sum, log_product
2. Array versions of the same primitives used by the trellis kernels
3. log_sum_reduce, a log-zero aware wrapper around scipy's logsumexp
"""

import math
from typing import Optional

import numpy as np
from scipy.special import logsumexp

LOG_ZERO = float('nan')
LN2 = math.log(2.0)


class DomainError(ValueError):
    """Raised when the log of a negative number is requested."""


def is_log_zero(ln_x) -> bool:
    """Return True if ln_x is the log-zero sentinel."""
    return ln_x != ln_x


# =============================================================================
# Scalar primitives
# =============================================================================

def extended_exp(ln_x: float) -> float:
    """exp(ln_x), with the log-zero sentinel mapping back to 0."""
    if is_log_zero(ln_x):
        return 0.0
    return math.exp(ln_x)


def extended_ln(x: float) -> float:
    """
    Natural log that accepts 0.

    Returns:
        LOG_ZERO for x == 0, log(x) for x > 0

    Raises:
        DomainError: if x is negative
    """
    if x == 0:
        return LOG_ZERO
    if x > 0:
        return math.log(x)
    raise DomainError(f"Cannot take the logarithm of negative value {x}")


def log_sum(ln_x: float, ln_y: float) -> float:
    """ln(x + y) given ln(x) and ln(y)."""
    if is_log_zero(ln_x):
        return ln_y
    if is_log_zero(ln_y):
        return ln_x
    if ln_x > ln_y:
        return ln_x + math.log1p(math.exp(ln_y - ln_x))
    return ln_y + math.log1p(math.exp(ln_x - ln_y))


def log_product(ln_x: float, ln_y: float) -> float:
    """ln(x * y) given ln(x) and ln(y)."""
    if is_log_zero(ln_x) or is_log_zero(ln_y):
        return LOG_ZERO
    return ln_x + ln_y


def to_bits(ln_x: float) -> float:
    """Convert a natural log to log base 2."""
    if is_log_zero(ln_x):
        return LOG_ZERO
    return ln_x / LN2


# =============================================================================
# Array primitives
# =============================================================================
# numpy's own -inf for log(0) is swapped for the sentinel on the way out so
# that arrays and scalars agree on how "impossible" looks.

def _to_neg_inf(ln_a: np.ndarray) -> np.ndarray:
    ln_a = np.asarray(ln_a, dtype=float)
    return np.where(np.isnan(ln_a), -np.inf, ln_a)


def _from_neg_inf(ln_a: np.ndarray) -> np.ndarray:
    return np.where(np.isneginf(ln_a), LOG_ZERO, ln_a)


def extended_ln_array(a: np.ndarray) -> np.ndarray:
    """Element-wise extended_ln."""
    a = np.asarray(a, dtype=float)
    if np.any(a < 0):
        raise DomainError("Cannot take the logarithm of negative values")
    with np.errstate(divide='ignore'):
        return _from_neg_inf(np.log(a))


def extended_exp_array(ln_a: np.ndarray) -> np.ndarray:
    """Element-wise extended_exp."""
    ln_a = np.asarray(ln_a, dtype=float)
    return np.where(np.isnan(ln_a), 0.0, np.exp(_to_neg_inf(ln_a)))


def log_product_array(ln_a: np.ndarray, ln_b: np.ndarray) -> np.ndarray:
    """Element-wise (broadcasting) log_product."""
    ln_a = np.asarray(ln_a, dtype=float)
    ln_b = np.asarray(ln_b, dtype=float)
    zero = np.isnan(ln_a) | np.isnan(ln_b)
    return np.where(zero, LOG_ZERO, ln_a + ln_b)


def log_sum_array(ln_a: np.ndarray, ln_b: np.ndarray) -> np.ndarray:
    """Element-wise (broadcasting) log_sum."""
    return _from_neg_inf(np.logaddexp(_to_neg_inf(ln_a), _to_neg_inf(ln_b)))


def log_sum_reduce(ln_a: np.ndarray, axis: Optional[int] = None):
    """
    log_sum folded over an axis of ln_a.

    Entries equal to the sentinel contribute nothing; a slice made only of
    sentinels reduces to the sentinel.

    Returns:
        float when axis is None, otherwise an array with that axis removed
    """
    ln_a = _to_neg_inf(ln_a)
    if ln_a.size == 0:
        if axis is None:
            return LOG_ZERO
        return np.full(np.delete(ln_a.shape, axis), LOG_ZERO)
    with np.errstate(divide='ignore'):
        result = logsumexp(ln_a, axis=axis)
    result = _from_neg_inf(result)
    if axis is None:
        return float(result)
    return result
