"""
Stateless operations over Tensors: convolution, pooling and shape utilities.

Image tensors use the [batch, channels, height, width] layout.
"""
import numpy as np

from ._tensor import Tensor
from ..common.errors import ShapeError
from ..common.utils import check_pair, format_shape


def conv_output_size(dim, kernel_dim, stride, padding):
    """Output length of a convolution along one axis."""
    pad = kernel_dim // 2 if padding else 0
    size = (dim - kernel_dim + 2 * pad) // stride + 1
    if size <= 0:
        raise ValueError(
            f"Kernel size {kernel_dim} is too large for input dimension {dim}")
    return size


def pool_output_size(dim, pool_dim, stride):
    """Output length of a pooling window along one axis."""
    size = (dim - pool_dim) // stride + 1
    if size <= 0:
        raise ValueError(
            f"Pool size {pool_dim} is too large for input dimension {dim}")
    return size


def _require_4d(tensor, what, layout="[batch, channels, height, width]"):
    if tensor.rank != 4:
        raise ShapeError(f"{what} must be a 4D tensor {layout}, got {format_shape(tensor.shape)}")


def pad_images(images, pad_h, pad_w):
    """Zero-pad the two spatial axes of a (N, C, H, W) array."""
    return np.pad(images, ((0, 0), (0, 0), (pad_h, pad_h), (pad_w, pad_w)),
                  mode='constant')


def convolve(input_tensor, kernel, stride=(1, 1), padding=False):
    """
    2D convolution (cross-correlation) of a batch of images.

    Args:
        input_tensor (Tensor): Shape [batch, channels, height, width]
        kernel (Tensor): Shape [out_channels, in_channels, kernel_h, kernel_w]
        stride (tuple): (vertical, horizontal) step
        padding (bool): Pad by kernel_dim // 2 on each side with zeros

    Returns:
        Tensor: Shape [batch, out_channels, out_h, out_w]
    """
    _require_4d(input_tensor, "Input")
    _require_4d(kernel, "Kernel", "[outChannels, inChannels, kernelHeight, kernelWidth]")
    stride_y, stride_x = check_pair(stride, "Stride")

    batch_size, in_channels, height, width = input_tensor.shape
    out_channels, kernel_channels, kernel_h, kernel_w = kernel.shape
    if in_channels != kernel_channels:
        raise ShapeError(
            f"Input channels ({in_channels}) must match kernel input channels "
            f"({kernel_channels})")

    out_h = conv_output_size(height, kernel_h, stride_y, padding)
    out_w = conv_output_size(width, kernel_w, stride_x, padding)
    pad_y = kernel_h // 2 if padding else 0
    pad_x = kernel_w // 2 if padding else 0

    images = pad_images(input_tensor.to_numpy(), pad_y, pad_x)
    weights = kernel.to_numpy()

    output = np.zeros((batch_size, out_channels, out_h, out_w))
    for oh in range(out_h):
        h_start = oh * stride_y
        for ow in range(out_w):
            w_start = ow * stride_x
            patch = images[:, :, h_start:h_start + kernel_h, w_start:w_start + kernel_w]
            # (N, C, kh, kw) x (O, C, kh, kw) -> (N, O)
            output[:, :, oh, ow] = np.tensordot(patch, weights, axes=([1, 2, 3], [1, 2, 3]))

    return Tensor.from_numpy(output)


def _pool(input_tensor, pool_size, stride, reducer):
    _require_4d(input_tensor, "Input")
    pool_h, pool_w = check_pair(pool_size, "Pool size")
    stride_y, stride_x = check_pair(stride, "Stride")

    batch_size, channels, height, width = input_tensor.shape
    out_h = pool_output_size(height, pool_h, stride_y)
    out_w = pool_output_size(width, pool_w, stride_x)

    images = input_tensor.to_numpy()
    output = np.zeros((batch_size, channels, out_h, out_w))
    for oh in range(out_h):
        h_start = oh * stride_y
        for ow in range(out_w):
            w_start = ow * stride_x
            # slicing clips the window to in-bounds elements
            window = images[:, :, h_start:h_start + pool_h, w_start:w_start + pool_w]
            output[:, :, oh, ow] = reducer(window, axis=(2, 3))

    return Tensor.from_numpy(output)


def max_pool(input_tensor, pool_size, stride):
    """Max pooling; output dims are ``(dim - pool) // stride + 1``."""
    return _pool(input_tensor, pool_size, stride, np.max)


def avg_pool(input_tensor, pool_size, stride):
    """Average pooling over the in-bounds elements of each window."""
    return _pool(input_tensor, pool_size, stride, np.mean)


def flatten(input_tensor):
    """Return a 1D tensor holding the data in row-major order."""
    return Tensor((input_tensor.size,), input_tensor.data)


def reshape(input_tensor, *new_shape):
    return input_tensor.reshape(*new_shape)


def transpose(input_tensor, *dims):
    return input_tensor.transpose(*dims)


def expand_dims(input_tensor, position):
    """Insert a dimension of size 1 at ``position``."""
    if position < 0 or position > input_tensor.rank:
        raise ValueError(
            f"Position {position} is out of range for tensor of rank {input_tensor.rank}")
    shape = list(input_tensor.shape)
    shape.insert(position, 1)
    return Tensor(shape, input_tensor.data)


def add(a, b):
    """Elementwise sum of two tensors with identical shapes."""
    if a.shape != b.shape:
        raise ShapeError(
            f"Tensor shapes must match for addition: {format_shape(a.shape)} "
            f"vs {format_shape(b.shape)}")
    return Tensor(a.shape, a.data + b.data)
