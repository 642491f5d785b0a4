"""
Neural networks module: activations, dense Node/Edge layers, tensor layers
and the networks built from them.
"""
from .activations import (
    ActivationFunction,
    ReLU,
    Sigmoid,
    Tanh,
    Linear,
    LeakyReLU,
    RELU,
    SIGMOID,
    TANH,
    LINEAR,
    LEAKY_RELU,
    get_activation,
    activation_from_name
)
from ._graph import Node, Edge
from .layers import (
    LayerType,
    Layer,
    InputLayer,
    StandardLayer,
    OutputLayer,
    BatchNormLayer
)
from ._cnn import (
    TensorLayerType,
    PoolingType,
    TensorLayer,
    ConvolutionalLayer,
    PoolingLayer,
    FlattenLayer,
    FullyConnectedLayer,
    DropoutLayer
)
from ._cnn import BatchNormLayer as TensorBatchNormLayer
from ._network import FeedForwardNetwork
from ._tensor_network import TensorNetwork
from .factory import (
    create_dense_network,
    create_from_model_sizes,
    create_board_network_from_model_sizes,
    create_othello_network,
    create_othello_cnn
)

__all__ = [
    'ActivationFunction',
    'ReLU',
    'Sigmoid',
    'Tanh',
    'Linear',
    'LeakyReLU',
    'RELU',
    'SIGMOID',
    'TANH',
    'LINEAR',
    'LEAKY_RELU',
    'get_activation',
    'activation_from_name',
    'Node',
    'Edge',
    'LayerType',
    'Layer',
    'InputLayer',
    'StandardLayer',
    'OutputLayer',
    'BatchNormLayer',
    'TensorLayerType',
    'PoolingType',
    'TensorLayer',
    'ConvolutionalLayer',
    'PoolingLayer',
    'FlattenLayer',
    'FullyConnectedLayer',
    'TensorBatchNormLayer',
    'DropoutLayer',
    'FeedForwardNetwork',
    'TensorNetwork',
    'create_dense_network',
    'create_from_model_sizes',
    'create_board_network_from_model_sizes',
    'create_othello_network',
    'create_othello_cnn'
]
