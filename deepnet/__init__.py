"""
deepnet: a from-scratch neural network engine with a scalar Node/Edge graph
and a strided Tensor engine, both trained by manual backpropagation.
"""
from .base import BaseNetwork, mean_squared_error
from .common import ShapeError, NetworkNotInitializedError
from .tensor import Tensor
from .neural_networks import FeedForwardNetwork, TensorNetwork

__version__ = "0.1.0"

__all__ = [
    'BaseNetwork',
    'mean_squared_error',
    'ShapeError',
    'NetworkNotInitializedError',
    'Tensor',
    'FeedForwardNetwork',
    'TensorNetwork'
]
