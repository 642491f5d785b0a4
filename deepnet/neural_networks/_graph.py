"""
Scalar computational graph: nodes joined by weighted edges.

Each dense layer is the arena that owns its nodes; an edge addresses its two
endpoints by their integer handle (index) inside the owning layers.
"""
import math

import numpy as np


def seed_value(rng):
    """Small random value in [-0.1, 0.1) used to seed weights and biases."""
    return (rng.random() - 0.5) * 0.2


def xavier_limit(fan_in, fan_out):
    return math.sqrt(6.0 / (fan_in + fan_out))


class Node:
    """
    A single unit: net input, activation value, bias and backprop delta.
    """

    def __init__(self, activation, rng=None):
        if activation is None:
            raise ValueError("activation must not be None")
        if rng is None:
            rng = np.random.default_rng()

        self.activation = activation
        self.value = 0.0
        self.net_input = 0.0
        self.gradient = 0.0
        self.bias = seed_value(rng)
        self.incoming = []
        self.outgoing = []

    def set_value(self, value):
        """Set an external value; the net input mirrors it."""
        self.value = float(value)
        self.net_input = float(value)

    def calculate_net_input(self):
        if not self.incoming:
            return self.net_input
        total = self.bias
        for edge in self.incoming:
            total += edge.weight * edge.source_node.value
        self.net_input = total
        return self.net_input

    def apply_activation(self):
        self.value = float(self.activation.apply(self.net_input))
        return self.value

    def calculate_output_gradient(self, target):
        """Squared-error delta: (value - target) * f'(net_input)."""
        self.gradient = (self.value - target) * float(self.activation.derivative(self.net_input))
        return self.gradient

    def calculate_hidden_gradient(self):
        """Delta from the already computed deltas of the downstream nodes."""
        if not self.outgoing:
            self.gradient = 0.0
            return self.gradient
        downstream = sum(edge.weight * edge.target_node.gradient for edge in self.outgoing)
        self.gradient = downstream * float(self.activation.derivative(self.net_input))
        return self.gradient

    def update_bias(self, learning_rate):
        self.bias -= learning_rate * self.gradient

    def update_incoming_weights(self, learning_rate):
        for edge in self.incoming:
            edge.update_weight(learning_rate)

    def __repr__(self):
        return (f"Node(value={self.value:.4f}, bias={self.bias:.4f}, "
                f"gradient={self.gradient:.4f})")


class Edge:
    """Weighted connection from node ``source`` of one layer to ``target`` of the next."""

    def __init__(self, source_layer, source, target_layer, target, rng=None):
        if source_layer is None or target_layer is None:
            raise ValueError("Edge endpoints must not be None")
        if not 0 <= source < source_layer.size:
            raise IndexError(f"Source handle {source} is out of range")
        if not 0 <= target < target_layer.size:
            raise IndexError(f"Target handle {target} is out of range")
        if rng is None:
            rng = np.random.default_rng()

        self.source_layer = source_layer
        self.target_layer = target_layer
        self.source = source
        self.target = target
        self.weight = seed_value(rng)
        self._rng = rng

    @property
    def source_node(self):
        return self.source_layer.nodes[self.source]

    @property
    def target_node(self):
        return self.target_layer.nodes[self.target]

    def initialize_weight(self, fan_in, fan_out):
        """Xavier/Glorot uniform draw."""
        limit = xavier_limit(fan_in, fan_out)
        self.weight = self._rng.uniform(-limit, limit)

    def update_weight(self, learning_rate):
        self.weight -= learning_rate * self.target_node.gradient * self.source_node.value

    def __repr__(self):
        return f"Edge({self.source} -> {self.target}, weight={self.weight:.4f})"
