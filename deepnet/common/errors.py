"""
Exceptions raised by the engine.

Construction errors use ``ValueError``/``TypeError`` directly, out of range
tensor indices raise ``IndexError``.
"""


class ShapeError(ValueError):
    """Raised when an index vector, input vector or tensor shape does not fit."""


class NetworkNotInitializedError(RuntimeError):
    """Raised when forward or train is called on a network without layers."""
