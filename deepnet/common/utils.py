import numpy as np
import pandas as pd

from .errors import ShapeError


def as_rows(samples, name="samples"):
    """
    Turn a batch of samples into a list of 1D float arrays.

    Accepts a pandas DataFrame (one row per sample), a pandas Series of
    sequences, a 2D numpy array or any sequence of sequences.
    """
    if isinstance(samples, pd.DataFrame):
        return [np.asarray(row, dtype=float) for row in samples.to_numpy()]
    if isinstance(samples, pd.Series):
        return [np.asarray(row, dtype=float).ravel() for row in samples.to_numpy()]
    if isinstance(samples, np.ndarray):
        if samples.ndim == 1:
            return [np.asarray(row, dtype=float).ravel() for row in samples]
        if samples.ndim != 2:
            raise ShapeError(f"{name} must be 2D, got shape {samples.shape}")
        return [row.astype(float) for row in samples]
    if isinstance(samples, (list, tuple)):
        return [np.asarray(row, dtype=float).ravel() for row in samples]
    raise TypeError(
        f"{name} must be a pandas DataFrame, Series, numpy ndarray or a sequence. "
        f"Got {type(samples)} instead.")


def as_vector(values, name="input"):
    """Convert a single sample to a 1D float array."""
    if values is None:
        raise ValueError(f"{name} must not be None")
    if isinstance(values, (pd.Series, pd.DataFrame)):
        values = values.to_numpy()
    vector = np.asarray(values, dtype=float)
    if vector.ndim != 1:
        raise ShapeError(f"{name} must be a 1D vector, got shape {vector.shape}")
    return vector


def check_shape(shape, name="shape"):
    """Validate a tensor or layer shape and return it as a tuple of ints."""
    if shape is None:
        raise ValueError(f"{name} must not be None")
    shape = tuple(shape)
    if len(shape) == 0:
        raise ValueError(f"{name} must have at least one dimension")
    for dim in shape:
        if isinstance(dim, bool) or not isinstance(dim, (int, np.integer)):
            raise TypeError(f"{name} dimensions must be integers, got {shape}")
        if dim <= 0:
            raise ValueError(f"All dimensions of {name} must be positive, got {shape}")
    return tuple(int(dim) for dim in shape)


def check_pair(value, name):
    """Normalize an int or a 2-tuple (kernel size, stride, pool size) to a 2-tuple."""
    if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
        value = (value, value)
    value = tuple(value)
    if len(value) != 2:
        raise ValueError(f"{name} must be 2D [height, width], got {value}")
    if any(v <= 0 for v in value):
        raise ValueError(f"{name} values must be positive, got {value}")
    return tuple(int(v) for v in value)


def format_shape(shape):
    return "[" + ", ".join(str(dim) for dim in shape) + "]"
