"""
Network over tensor layers (convolution, pooling, flatten, fully connected).
"""
import numpy as np
import pandas as pd

from ..base import BaseNetwork, mean_squared_error
from ..common.errors import ShapeError
from ..common.utils import as_rows, format_shape
from ..tensor import Tensor
from .activations import RELU, TANH, LINEAR
from ._cnn import (TensorLayer, ConvolutionalLayer, PoolingLayer, PoolingType,
                   FlattenLayer, FullyConnectedLayer)


class TensorNetwork(BaseNetwork):
    """
    Chain of tensor layers trained with a mean squared error loss.

    Each layer's output shape must equal the next layer's input shape; the
    check happens once, at construction.
    """

    def __init__(self, layers, learning_rate=0.01, verbose=False):
        super().__init__(layers, learning_rate, verbose)
        for layer in self.layers:
            if not isinstance(layer, TensorLayer):
                raise TypeError(f"Expected a TensorLayer, got {type(layer).__name__}")
        for layer, next_layer in zip(self.layers, self.layers[1:]):
            layer.connect_to(next_layer)

    @property
    def input_shape(self):
        self._check_initialized()
        return self.layers[0].input_shape

    @property
    def output_shape(self):
        self._check_initialized()
        return self.layers[-1].output_shape

    def _as_tensor(self, value, shape, what):
        if not isinstance(value, Tensor):
            value = np.asarray(value, dtype=float)
            if value.size != int(np.prod(shape)):
                raise ShapeError(
                    f"{what} with {value.size} values does not fit shape {format_shape(shape)}")
            value = Tensor(shape, value.ravel())
        if value.shape != shape:
            raise ShapeError(
                f"{what} shape {format_shape(value.shape)} must match "
                f"{format_shape(shape)}")
        return value

    def forward(self, inputs, training=False):
        """
        Args:
            inputs (Tensor or array-like): Shaped like the first layer's input
            training (bool): Enables batch statistics and dropout

        Returns:
            Tensor: Output of the last layer
        """
        self._check_initialized()
        output = self._as_tensor(inputs, self.input_shape, "Input")
        for layer in self.layers:
            output = layer.forward(output, training=training)
        return output

    def train(self, inputs, targets):
        """
        Forward in training mode, backward with the MSE gradient
        ``2 * (prediction - target) / n``, then update every layer.

        Returns:
            Tensor: Output of the forward pass
        """
        self._check_initialized()
        targets = self._as_tensor(targets, self.output_shape, "Target")
        output = self.forward(inputs, training=True)

        gradient = Tensor(output.shape, 2.0 * (output.data - targets.data) / output.size)
        for layer in reversed(self.layers):
            gradient = layer.backward(gradient)
        for layer in self.layers:
            layer.update_parameters(self.learning_rate)
        return output

    @staticmethod
    def _samples(values, name):
        if isinstance(values, (pd.DataFrame, pd.Series)):
            return as_rows(values, name)
        return list(values)

    def train_batch(self, inputs, targets, epochs=1):
        """
        Args:
            inputs: Sequence of input tensors (or arrays, or DataFrame rows)
            targets: Matching sequence of target tensors
            epochs (int): Number of passes over the data

        Returns:
            float: Average loss over the last epoch
        """
        self._check_initialized()
        samples = self._samples(inputs, "inputs")
        expected = self._samples(targets, "targets")
        if len(samples) != len(expected):
            raise ValueError("inputs and targets must have the same number of samples")
        if not samples:
            raise ValueError("inputs must contain at least one sample")
        if epochs <= 0:
            raise ValueError("epochs must be positive")

        average_loss = 0.0
        for epoch in range(epochs):
            total_loss = 0.0
            for x, y in zip(samples, expected):
                target = self._as_tensor(y, self.output_shape, "Target")
                output = self.train(x, target)
                total_loss += mean_squared_error(target.data, output.data)
            average_loss = total_loss / len(samples)
            self._log_epoch(epoch, epochs, average_loss)
        return average_loss

    def get_parameters(self):
        parameters = {}
        for i, layer in enumerate(self.layers):
            for name, tensor in layer.get_parameters().items():
                parameters[f"{name}_{i}"] = tensor.to_numpy()
        return parameters

    def set_parameters(self, parameters):
        current = self.get_parameters()
        for name, value in parameters.items():
            if name not in current:
                raise KeyError(f"Unknown parameter '{name}'")
            if np.shape(value) != current[name].shape:
                raise ShapeError(
                    f"{name} shape mismatch: expected {format_shape(current[name].shape)}, "
                    f"got {format_shape(np.shape(value))}")

        by_layer = {}
        for name, value in parameters.items():
            key, index = name.rsplit("_", 1)
            by_layer.setdefault(int(index), {})[key] = Tensor.from_numpy(value)
        for index, values in by_layer.items():
            self.layers[index].set_parameters(values)

    @classmethod
    def create_image_classifier(cls, input_shape, num_classes, learning_rate=0.01,
                                verbose=False, rng=None):
        """
        conv 3x3 (16) -> max pool 2x2 -> conv 3x3 (32) -> max pool 2x2
        -> flatten -> fully connected softmax over ``num_classes``.

        Args:
            input_shape (tuple): [batch, channels, height, width]
            num_classes (int): Size of the softmax output
        """
        if len(input_shape) != 4:
            raise ValueError("Input shape must be 4D [batch, channels, height, width]")
        if rng is None:
            rng = np.random.default_rng()

        layers = [ConvolutionalLayer(input_shape, (3, 3), 16, (1, 1), True, RELU, rng)]
        layers.append(PoolingLayer(layers[-1].output_shape, (2, 2), (2, 2), PoolingType.MAX, rng))
        layers.append(ConvolutionalLayer(layers[-1].output_shape, (3, 3), 32, (1, 1), True,
                                         RELU, rng))
        layers.append(PoolingLayer(layers[-1].output_shape, (2, 2), (2, 2), PoolingType.MAX, rng))
        layers.append(FlattenLayer(layers[-1].output_shape, rng))
        layers.append(FullyConnectedLayer(layers[-1].output_shape, num_classes, True, LINEAR, rng))
        return cls(layers, learning_rate=learning_rate, verbose=verbose)

    @classmethod
    def create_for_board_game(cls, input_shape, hidden_sizes, output_size,
                              hidden_activation=RELU, output_activation=TANH,
                              use_softmax=False, learning_rate=0.01, verbose=False, rng=None):
        """
        Flatten a [channels, height, width] board encoding and feed it through
        fully connected layers.
        """
        if len(input_shape) != 3:
            raise ValueError("Input shape must be 3D [channels, height, width]")
        if rng is None:
            rng = np.random.default_rng()

        layers = [FlattenLayer(input_shape, rng)]
        for size in hidden_sizes:
            layers.append(FullyConnectedLayer(layers[-1].output_shape, size, False,
                                              hidden_activation, rng))
        layers.append(FullyConnectedLayer(layers[-1].output_shape, output_size, use_softmax,
                                          output_activation, rng))
        return cls(layers, learning_rate=learning_rate, verbose=verbose)

    @classmethod
    def create_for_othello(cls, board_size=8, channels=3, learning_rate=0.01, rng=None):
        """Board evaluator: 128 -> 64 -> 32 ReLU hidden layers, one Tanh output."""
        return cls.create_for_board_game((channels, board_size, board_size), (128, 64, 32), 1,
                                         RELU, TANH, False, learning_rate=learning_rate, rng=rng)

    def __repr__(self):
        if not self.layers:
            return "TensorNetwork(layers=0)"
        return (f"TensorNetwork(input_shape={format_shape(self.input_shape)}, "
                f"output_shape={format_shape(self.output_shape)}, layers={len(self.layers)})")
