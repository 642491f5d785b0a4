"""
Tensor container and tensor operations.
"""
from ._tensor import Tensor
from ._operations import (
    convolve,
    max_pool,
    avg_pool,
    flatten,
    reshape,
    transpose,
    expand_dims,
    add,
    conv_output_size,
    pool_output_size
)

__all__ = [
    'Tensor',
    'convolve',
    'max_pool',
    'avg_pool',
    'flatten',
    'reshape',
    'transpose',
    'expand_dims',
    'add',
    'conv_output_size',
    'pool_output_size'
]
