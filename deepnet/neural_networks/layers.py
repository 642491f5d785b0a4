"""
Dense layers built from Node/Edge graphs.
"""
from enum import Enum

import numpy as np

from ._graph import Node, Edge
from .activations import LINEAR
from ..common.errors import ShapeError
from ..common.utils import as_vector


class LayerType(Enum):
    INPUT = "input"
    HIDDEN = "hidden"
    OUTPUT = "output"
    BATCH_NORM = "batch_norm"


class Layer:
    """
    Base class for all dense layers.

    A layer owns a fixed number of nodes; edges into the layer are created by
    ``previous.connect_to(self)``.
    """

    def __init__(self, size, activation, layer_type, rng=None):
        if isinstance(size, bool) or not isinstance(size, (int, np.integer)):
            raise TypeError(f"Layer size must be an integer, got {size!r}")
        if size <= 0:
            raise ValueError("Layer size must be positive")
        if activation is None:
            raise ValueError("activation must not be None")
        if layer_type is None:
            raise ValueError("layer_type must not be None")
        if rng is None:
            rng = np.random.default_rng()

        self.size = int(size)
        self.activation = activation
        self.layer_type = layer_type
        self._rng = rng
        self.nodes = [Node(activation, rng) for _ in range(self.size)]
        self.previous = None
        self.next = None

    def forward(self, inputs=None):
        """Forward pass through the layer."""
        raise NotImplementedError

    def backward(self, gradients, learning_rate):
        """Backward pass; returns the gradient vector for the previous layer."""
        raise NotImplementedError

    def connect_to(self, next_layer):
        """Fully connect every node of this layer to every node of ``next_layer``."""
        if next_layer is None:
            raise ValueError("next_layer must not be None")
        for source, source_node in enumerate(self.nodes):
            for target, target_node in enumerate(next_layer.nodes):
                edge = Edge(self, source, next_layer, target, self._rng)
                source_node.outgoing.append(edge)
                target_node.incoming.append(edge)
        self.next = next_layer
        next_layer.previous = self

    def initialize_weights(self, next_layer_size):
        """Re-seed outgoing weights with Xavier/Glorot initialization."""
        for node in self.nodes:
            for edge in node.outgoing:
                edge.initialize_weight(self.size, next_layer_size)

    def get_weights(self):
        """
        Returns:
            ndarray of shape (size, next_layer_size), or None when unconnected.
        """
        if not self.nodes[0].outgoing:
            return None
        return np.array([[edge.weight for edge in node.outgoing] for node in self.nodes])

    def set_weights(self, weights):
        if weights is None:
            raise ValueError("Weights cannot be None")
        weights = np.asarray(weights, dtype=float)
        if weights.ndim != 2 or weights.shape[0] != self.size:
            raise ShapeError(
                f"Weights rows ({weights.shape[0] if weights.ndim else 0}) must match "
                f"layer size ({self.size})")
        n_out = len(self.nodes[0].outgoing)
        if n_out and weights.shape[1] != n_out:
            raise ShapeError(
                f"Weights columns ({weights.shape[1]}) must match next layer size ({n_out})")
        for node, row in zip(self.nodes, weights):
            for edge, weight in zip(node.outgoing, row):
                edge.weight = float(weight)

    def get_biases(self):
        return np.array([node.bias for node in self.nodes])

    def set_biases(self, biases):
        if biases is None:
            raise ValueError("Biases cannot be None")
        biases = np.asarray(biases, dtype=float).ravel()
        if biases.size != self.size:
            raise ShapeError(
                f"Biases length ({biases.size}) must match layer size ({self.size})")
        for node, bias in zip(self.nodes, biases):
            node.bias = float(bias)

    def get_outputs(self):
        return np.array([node.value for node in self.nodes])

    def _check_length(self, values, what):
        vector = as_vector(values, what)
        if vector.size != self.size:
            raise ShapeError(
                f"{what.capitalize()} size ({vector.size}) must match layer size ({self.size})")
        return vector

    def _set_outputs(self, inputs):
        inputs = self._check_length(inputs, "input")
        for node, value in zip(self.nodes, inputs):
            node.set_value(value)

    def _calculate_outputs(self):
        for node in self.nodes:
            node.calculate_net_input()
            node.apply_activation()

    def _previous_gradients(self):
        """
        Gradient for each node of the previous layer: the sum over this layer's
        nodes of ``weight * delta`` along every connection from that node.
        """
        if self.previous is None:
            return np.zeros(0)
        gradients = np.zeros(self.previous.size)
        for node in self.nodes:
            for edge in node.incoming:
                gradients[edge.source] += edge.weight * node.gradient
        return gradients

    def _update_parameters(self, learning_rate):
        for node in self.nodes:
            node.update_bias(learning_rate)
            node.update_incoming_weights(learning_rate)

    def __repr__(self):
        return (f"{type(self).__name__}(size={self.size}, "
                f"activation={self.activation.name})")


class InputLayer(Layer):
    """Copies external input into its node values; has no parameters."""

    def __init__(self, size, rng=None):
        super().__init__(size, LINEAR, LayerType.INPUT, rng)

    def forward(self, inputs=None):
        if inputs is None:
            raise ValueError("Input layer requires an input vector")
        self._set_outputs(inputs)
        return self.get_outputs()

    def backward(self, gradients, learning_rate):
        return np.zeros(self.size)


class StandardLayer(Layer):
    """Hidden layer."""

    def __init__(self, size, activation, rng=None):
        super().__init__(size, activation, LayerType.HIDDEN, rng)

    def forward(self, inputs=None):
        if inputs is not None:
            self._set_outputs(inputs)
        else:
            self._calculate_outputs()
        return self.get_outputs()

    def backward(self, gradients, learning_rate):
        gradients = self._check_length(gradients, "gradient")
        for node, upstream in zip(self.nodes, gradients):
            node.gradient = upstream * float(node.activation.derivative(node.net_input))

        # propagate with the weights used in the forward pass
        previous_gradients = self._previous_gradients()
        self._update_parameters(learning_rate)
        return previous_gradients


class OutputLayer(Layer):
    """
    Output layer, optionally followed by a softmax over its node values.
    """

    def __init__(self, size, activation, use_softmax=False, rng=None):
        super().__init__(size, activation, LayerType.OUTPUT, rng)
        self.use_softmax = use_softmax

    def forward(self, inputs=None):
        if inputs is not None:
            self._set_outputs(inputs)
        else:
            self._calculate_outputs()

        if self.use_softmax:
            self._apply_softmax()
        return self.get_outputs()

    def _apply_softmax(self):
        values = self.get_outputs()
        # Subtract max for numerical stability
        exps = np.exp(values - np.max(values))
        probabilities = exps / np.sum(exps)
        for node, probability in zip(self.nodes, probabilities):
            node.value = float(probability)

    def backward(self, targets, learning_rate):
        """
        Args:
            targets: Expected output values
            learning_rate (float): Gradient descent step size
        """
        targets = self._check_length(targets, "target")
        for node, target in zip(self.nodes, targets):
            if self.use_softmax:
                # softmax with cross-entropy
                node.gradient = node.value - target
            else:
                node.calculate_output_gradient(target)

        previous_gradients = self._previous_gradients()
        self._update_parameters(learning_rate)
        return previous_gradients


class BatchNormLayer(Layer):
    """
    Normalizes each unit with running statistics, then scales, shifts and
    applies the activation: ``f(gamma * (x - mean) / sqrt(var + eps) + beta)``.
    """

    def __init__(self, size, activation, mean=None, variance=None, scale=None,
                 bias=None, epsilon=1e-5, momentum=0.9, rng=None):
        super().__init__(size, activation, LayerType.BATCH_NORM, rng)
        if epsilon < 0:
            raise ValueError("epsilon must not be negative")
        self.epsilon = epsilon
        self.momentum = momentum

        self.running_mean_ = self._init_param(mean, 0.0, "mean")
        self.running_var_ = self._init_param(variance, 1.0, "variance")
        self.gamma_ = self._init_param(scale, 1.0, "scale")
        self.beta_ = self._init_param(bias, 0.0, "bias")

        # Cache for backpropagation
        self._input_cache = np.zeros(self.size)
        self._normalized = np.zeros(self.size)
        self._pre_activation = np.zeros(self.size)

    def _init_param(self, values, default, name):
        if values is None:
            return np.full(self.size, default)
        values = np.asarray(values, dtype=float).ravel()
        if values.size != self.size:
            raise ShapeError(f"{name} length ({values.size}) must match layer size ({self.size})")
        return values.copy()

    def forward(self, inputs=None):
        if inputs is not None:
            inputs = self._check_length(inputs, "input")
        else:
            inputs = np.array([node.calculate_net_input() for node in self.nodes])
        self._apply_batch_norm(inputs)
        return self.get_outputs()

    def _apply_batch_norm(self, inputs):
        self._input_cache = inputs.copy()
        self._normalized = (inputs - self.running_mean_) / np.sqrt(self.running_var_ + self.epsilon)
        self._pre_activation = self.gamma_ * self._normalized + self.beta_
        for i, node in enumerate(self.nodes):
            node.net_input = float(inputs[i])
            node.value = float(self.activation.apply(self._pre_activation[i]))

    def backward(self, gradients, learning_rate):
        gradients = self._check_length(gradients, "gradient")
        activation_grad = np.array(
            [float(self.activation.derivative(z)) for z in self._pre_activation])

        dz = gradients * activation_grad
        gamma_grad = dz * self._normalized
        beta_grad = dz
        dx = dz * self.gamma_ / np.sqrt(self.running_var_ + self.epsilon)

        for node, delta in zip(self.nodes, dx):
            node.gradient = float(delta)

        previous_gradients = self._previous_gradients()
        self._update_parameters(learning_rate)
        self.gamma_ -= learning_rate * gamma_grad
        self.beta_ -= learning_rate * beta_grad
        return previous_gradients

    def update_running_statistics(self, batch):
        """
        Fold a batch of pre-normalization inputs, shape (n_samples, size),
        into the running mean and variance.
        """
        batch = np.asarray(batch, dtype=float)
        if batch.ndim == 1:
            batch = batch.reshape(1, -1)
        if batch.ndim != 2 or batch.shape[1] != self.size:
            raise ShapeError(
                f"Batch must have shape (n_samples, {self.size}), got {batch.shape}")
        self.running_mean_ = (self.momentum * self.running_mean_ +
                              (1 - self.momentum) * batch.mean(axis=0))
        self.running_var_ = (self.momentum * self.running_var_ +
                             (1 - self.momentum) * batch.var(axis=0))

    @property
    def running_mean(self):
        return self.running_mean_.copy()

    @property
    def running_variance(self):
        return self.running_var_.copy()

    @property
    def scale(self):
        return self.gamma_.copy()

    @property
    def shift(self):
        return self.beta_.copy()
