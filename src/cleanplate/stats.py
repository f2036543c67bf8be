"""
Statistics engine for the per-pixel compositor.

Mean and sample standard deviation in double precision, optionally reduced
along one axis so a whole block of pixels is handled in one call.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import numpy as np

from .errors import EmptyInputError, InsufficientSamplesError


def _count(values: np.ndarray, axis: int | None) -> int:
    return values.size if axis is None else values.shape[axis]


def mean(
    values,
    axis: int | None = None,
    where: np.ndarray | None = None,
) -> float | np.ndarray:
    """
    Arithmetic mean in float64.

    Parameters
    ----------
    values : array_like
        Sequence of real numbers, or an array reduced along ``axis``.
    axis : int, optional
        Axis to reduce. None reduces over all values.
    where : np.ndarray, optional
        Boolean mask selecting the values that take part.

    Returns
    -------
    float or np.ndarray
        Mean value(s).

    Raises
    ------
    EmptyInputError
        If there is nothing to average, including an output slot whose
        ``where`` selection is empty.
    """
    values = np.asarray(values, dtype=np.float64)
    if _count(values, axis) == 0:
        raise EmptyInputError("Cannot compute mean of an empty sequence")

    if where is None:
        result = np.mean(values, axis=axis)
    else:
        where = np.broadcast_to(np.asarray(where, dtype=bool), values.shape)
        if not np.all(np.any(where, axis=axis)):
            raise EmptyInputError("Cannot compute mean of an empty selection")
        result = np.mean(values, axis=axis, where=where)

    return float(result) if np.ndim(result) == 0 else result


def sample_std(values, axis: int | None = None) -> float | np.ndarray:
    """
    Sample standard deviation with Bessel's correction.

    ``sqrt(sum((x - mean)**2) / (count - 1))``. NaN and Inf propagate.

    Raises
    ------
    InsufficientSamplesError
        If fewer than two values are supplied along ``axis``.
    """
    values = np.asarray(values, dtype=np.float64)
    count = _count(values, axis)
    if count < 2:
        raise InsufficientSamplesError(
            f"Sample standard deviation needs at least 2 values, got {count}"
        )

    center = np.mean(values, axis=axis, keepdims=True)
    squared = np.sum((values - center) ** 2, axis=axis)
    result = np.sqrt(squared / (count - 1))

    return float(result) if np.ndim(result) == 0 else result
