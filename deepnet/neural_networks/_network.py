"""
Feed-forward network over the dense Node/Edge layers.
"""
import numpy as np

from ..base import BaseNetwork, mean_squared_error
from ..common.errors import ShapeError
from ..common.utils import as_rows, as_vector, format_shape
from .activations import RELU, TANH, LINEAR
from .layers import Layer, LayerType, InputLayer, StandardLayer, OutputLayer, BatchNormLayer


class FeedForwardNetwork(BaseNetwork):
    """
    Fully connected network trained one sample at a time with plain gradient
    descent.

    The layer chain is fixed at construction: consecutive layers are connected
    and their weights Xavier-initialized. The first layer must be an
    ``InputLayer`` and the last an ``OutputLayer``.
    """

    def __init__(self, layers, learning_rate=0.01, verbose=False):
        """
        Args:
            layers (sequence of Layer): Ordered layer chain, may be empty
            learning_rate (float): Step size threaded into every backward pass
            verbose (bool): Print the average loss of each epoch in train_batch
        """
        super().__init__(layers, learning_rate, verbose)
        if self.layers:
            self._validate_layers()
            for layer, next_layer in zip(self.layers, self.layers[1:]):
                layer.connect_to(next_layer)
                layer.initialize_weights(next_layer.size)

    def _validate_layers(self):
        for layer in self.layers:
            if not isinstance(layer, Layer):
                raise TypeError(f"Expected a dense Layer, got {type(layer).__name__}")
        if self.layers[0].layer_type is not LayerType.INPUT:
            raise ValueError("First layer must be an input layer")
        if self.layers[-1].layer_type is not LayerType.OUTPUT:
            raise ValueError("Last layer must be an output layer")
        if len({id(layer) for layer in self.layers}) != len(self.layers):
            raise ValueError("A layer instance can appear only once in a network")

    @property
    def input_size(self):
        self._check_initialized()
        return self.layers[0].size

    @property
    def output_size(self):
        self._check_initialized()
        return self.layers[-1].size

    def forward(self, inputs):
        """
        Args:
            inputs: One sample, length equal to the input layer size

        Returns:
            ndarray: Output layer values
        """
        self._check_initialized()
        inputs = as_vector(inputs, "input")
        if inputs.size != self.input_size:
            raise ShapeError(
                f"Input size ({inputs.size}) must match network input size ({self.input_size})")

        outputs = self.layers[0].forward(inputs)
        for layer in self.layers[1:]:
            outputs = layer.forward()
        return outputs

    def train(self, inputs, targets):
        """
        One forward pass followed by a backward pass over the layers in
        reverse order; every layer updates its parameters in place.

        Returns:
            ndarray: Outputs of the forward pass, before the update
        """
        self._check_initialized()
        targets = as_vector(targets, "target")
        if targets.size != self.output_size:
            raise ShapeError(
                f"Target size ({targets.size}) must match network output size "
                f"({self.output_size})")

        outputs = self.forward(inputs)
        gradients = targets
        for layer in reversed(self.layers):
            gradients = layer.backward(gradients, self.learning_rate)
        return outputs

    def train_batch(self, inputs, targets, epochs=1):
        """
        Train on every sample in order for ``epochs`` passes.

        Args:
            inputs: 2D array, DataFrame or sequence of samples
            targets: Matching targets, one row per sample
            epochs (int): Number of passes over the data

        Returns:
            float: Average squared error over the last epoch
        """
        self._check_initialized()
        samples = as_rows(inputs, "inputs")
        expected = as_rows(targets, "targets")
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
                outputs = self.train(x, y)
                total_loss += mean_squared_error(y, outputs)
            average_loss = total_loss / len(samples)
            self._log_epoch(epoch, epochs, average_loss)
        return average_loss

    def get_parameters(self):
        parameters = {}
        for i, layer in enumerate(self.layers):
            weights = layer.get_weights()
            if weights is not None:
                parameters[f"weights_{i}"] = weights
            parameters[f"biases_{i}"] = layer.get_biases()
            if isinstance(layer, BatchNormLayer):
                parameters[f"gamma_{i}"] = layer.scale
                parameters[f"beta_{i}"] = layer.shift
                parameters[f"running_mean_{i}"] = layer.running_mean
                parameters[f"running_var_{i}"] = layer.running_variance
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

        for name, value in parameters.items():
            kind, index = name.rsplit("_", 1)
            layer = self.layers[int(index)]
            if kind == "weights":
                layer.set_weights(value)
            elif kind == "biases":
                layer.set_biases(value)
            elif kind == "gamma":
                layer.gamma_ = np.array(value, dtype=float)
            elif kind == "beta":
                layer.beta_ = np.array(value, dtype=float)
            elif kind == "running_mean":
                layer.running_mean_ = np.array(value, dtype=float)
            else:
                layer.running_var_ = np.array(value, dtype=float)

    @classmethod
    def create_default(cls, layer_sizes, learning_rate=0.01, verbose=False, rng=None):
        """
        Input -> ReLU hidden layers -> output. A single output unit uses Tanh
        without softmax; several outputs use Linear with softmax.
        """
        layer_sizes = list(layer_sizes)
        if len(layer_sizes) < 2:
            raise ValueError("At least input and output layer sizes are required")
        single_output = layer_sizes[-1] == 1
        return cls.from_layer_sizes(
            layer_sizes,
            hidden_activation=RELU,
            output_activation=TANH if single_output else LINEAR,
            use_softmax=not single_output,
            learning_rate=learning_rate,
            verbose=verbose,
            rng=rng)

    @classmethod
    def from_layer_sizes(cls, layer_sizes, hidden_activation=RELU, output_activation=LINEAR,
                         use_softmax=False, learning_rate=0.01, verbose=False, rng=None):
        layer_sizes = list(layer_sizes)
        if len(layer_sizes) < 2:
            raise ValueError("At least input and output layer sizes are required")
        if rng is None:
            rng = np.random.default_rng()

        layers = [InputLayer(layer_sizes[0], rng)]
        for size in layer_sizes[1:-1]:
            layers.append(StandardLayer(size, hidden_activation, rng))
        layers.append(OutputLayer(layer_sizes[-1], output_activation, use_softmax, rng))
        return cls(layers, learning_rate=learning_rate, verbose=verbose)

    def __repr__(self):
        sizes = [layer.size for layer in self.layers]
        return f"FeedForwardNetwork(layer_sizes={sizes}, learning_rate={self.learning_rate})"
