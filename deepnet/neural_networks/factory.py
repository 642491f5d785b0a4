"""
Construction helpers for callers that describe a network by layer sizes and
activation names, such as an external model-size loader.
"""
from ._network import FeedForwardNetwork
from ._tensor_network import TensorNetwork
from .activations import activation_from_name

OTHELLO_HIDDEN_SIZES = (128, 64, 32)


def _check_layer_sizes(layer_sizes):
    layer_sizes = [int(size) for size in layer_sizes]
    if len(layer_sizes) < 2:
        raise ValueError(
            f"At least input and output layer sizes are required, got {layer_sizes}")
    if any(size <= 0 for size in layer_sizes):
        raise ValueError(f"Layer sizes must be positive, got {layer_sizes}")
    return layer_sizes


def create_dense_network(layer_sizes, hidden_activation="relu", output_activation="tanh",
                         use_softmax=False, learning_rate=0.01, verbose=False, rng=None):
    """
    Build a FeedForwardNetwork from layer sizes and activation names.

    Args:
        layer_sizes (sequence of int): Input, hidden and output sizes
        hidden_activation (str): Name used for every hidden layer
        output_activation (str): Name used for the output layer
        use_softmax (bool): Apply softmax to the output layer
        learning_rate (float): Gradient descent step size

    Returns:
        FeedForwardNetwork
    """
    return FeedForwardNetwork.from_layer_sizes(
        _check_layer_sizes(layer_sizes),
        hidden_activation=activation_from_name(hidden_activation),
        output_activation=activation_from_name(output_activation),
        use_softmax=use_softmax,
        learning_rate=learning_rate,
        verbose=verbose,
        rng=rng)


def create_from_model_sizes(layer_sizes, activation_name="relu", output_activation="tanh",
                            learning_rate=0.01, rng=None):
    """Regression-style evaluator for sizes recovered from a model file."""
    return create_dense_network(layer_sizes, activation_name, output_activation, False,
                                learning_rate=learning_rate, rng=rng)


def create_board_network_from_model_sizes(layer_sizes, input_shape, activation_name="relu",
                                          output_activation="tanh", learning_rate=0.01, rng=None):
    """
    Tensor board evaluator with the hidden sizes found in a model file; falls
    back to 128 -> 64 -> 32 when the sizes carry no hidden layer.
    """
    layer_sizes = _check_layer_sizes(layer_sizes)
    hidden_sizes = layer_sizes[1:-1] or list(OTHELLO_HIDDEN_SIZES)
    return TensorNetwork.create_for_board_game(
        input_shape, hidden_sizes, 1,
        hidden_activation=activation_from_name(activation_name),
        output_activation=activation_from_name(output_activation),
        use_softmax=False,
        learning_rate=learning_rate,
        rng=rng)


def create_othello_network(board_size=8, channels=3, learning_rate=0.01, rng=None):
    """Dense board evaluator: flattened board -> 128 -> 64 -> 32 -> 1 (Tanh)."""
    input_size = board_size * board_size * channels
    return create_dense_network([input_size, *OTHELLO_HIDDEN_SIZES, 1], "relu", "tanh", False,
                                learning_rate=learning_rate, rng=rng)


def create_othello_cnn(input_shape, output_size, learning_rate=0.01, rng=None):
    """Convolutional board evaluator built like the image classifier."""
    return TensorNetwork.create_image_classifier(input_shape, output_size,
                                                 learning_rate=learning_rate, rng=rng)
