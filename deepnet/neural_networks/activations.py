"""
Activation functions with their derivatives.

Every function takes the net input ``x`` (a float or a numpy array) and is
stateless; the registry below is built once at import and is read-only.
"""
from types import MappingProxyType

import numpy as np


class ActivationFunction:
    """Base class for pointwise activation functions."""

    name = None

    def apply(self, x):
        raise NotImplementedError

    def derivative(self, x):
        """Derivative with respect to the net input ``x``."""
        raise NotImplementedError

    def __call__(self, x):
        return self.apply(x)

    def __eq__(self, other):
        return type(self) is type(other) and self.__dict__ == other.__dict__

    def __hash__(self):
        return hash((type(self).__name__, tuple(sorted(self.__dict__.items()))))

    def __repr__(self):
        return f"{type(self).__name__}()"


class ReLU(ActivationFunction):
    name = "ReLU"

    def apply(self, x):
        return np.maximum(x, 0.0)

    def derivative(self, x):
        return np.where(np.asarray(x) > 0, 1.0, 0.0)[()]


class Sigmoid(ActivationFunction):
    name = "Sigmoid"

    def apply(self, x):
        # Clip input to prevent overflow
        x_clipped = np.clip(x, -500, 500)
        return 1.0 / (1.0 + np.exp(-x_clipped))

    def derivative(self, x):
        sigmoid = self.apply(x)
        return sigmoid * (1.0 - sigmoid)


class Tanh(ActivationFunction):
    name = "Tanh"

    def apply(self, x):
        return np.tanh(x)

    def derivative(self, x):
        return 1.0 - np.tanh(x) ** 2


class Linear(ActivationFunction):
    name = "Linear"

    def apply(self, x):
        return x

    def derivative(self, x):
        return np.ones_like(x, dtype=float)[()]


class LeakyReLU(ActivationFunction):
    """ReLU with slope ``alpha`` for negative inputs."""

    def __init__(self, alpha=0.01):
        self.alpha = float(alpha)

    @property
    def name(self):
        return f"LeakyReLU(alpha={self.alpha})"

    def apply(self, x):
        return np.where(np.asarray(x) > 0, x, self.alpha * np.asarray(x))[()]

    def derivative(self, x):
        return np.where(np.asarray(x) > 0, 1.0, self.alpha)[()]

    def __repr__(self):
        return f"LeakyReLU(alpha={self.alpha})"


RELU = ReLU()
SIGMOID = Sigmoid()
TANH = Tanh()
LINEAR = Linear()
LEAKY_RELU = LeakyReLU()

ACTIVATIONS = MappingProxyType({
    'relu': RELU,
    'sigmoid': SIGMOID,
    'tanh': TANH,
    'linear': LINEAR,
    'leakyrelu': LEAKY_RELU,
    'leaky_relu': LEAKY_RELU,
})


def get_activation(name):
    """
    Case-insensitive registry lookup.

    Returns:
        ActivationFunction or None if the name is unknown.
    """
    if name is None:
        return None
    return ACTIVATIONS.get(name.lower())


def activation_from_name(name):
    """Like ``get_activation`` but raises for unknown names."""
    activation = get_activation(name)
    if activation is None:
        raise ValueError(f"Unknown activation function: {name}")
    return activation
