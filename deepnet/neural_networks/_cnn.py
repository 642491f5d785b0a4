"""
Tensor-native layers: convolution, pooling, flatten, fully connected,
batch normalization and dropout.

Image tensors use the [batch, channels, height, width] layout. Every layer
caches what its backward pass needs during ``forward``; ``backward`` returns
the gradient with respect to the layer input and keeps parameter gradients
until ``update_parameters`` is called.
"""
from enum import Enum

import numpy as np

from .activations import LINEAR, RELU
from ..common.errors import ShapeError
from ..common.utils import check_pair, check_shape, format_shape
from ..tensor import Tensor, convolve, max_pool, avg_pool, conv_output_size, pool_output_size
from ..tensor._operations import pad_images


class TensorLayerType(Enum):
    CONVOLUTIONAL = "convolutional"
    POOLING = "pooling"
    FLATTEN = "flatten"
    FULLY_CONNECTED = "fully_connected"
    BATCH_NORM = "batch_norm"
    DROPOUT = "dropout"


class PoolingType(Enum):
    MAX = "max"
    AVERAGE = "average"


class TensorLayer:
    """Base class for all tensor layers."""

    def __init__(self, input_shape, output_shape, activation, layer_type, rng=None):
        if activation is None:
            raise ValueError("activation must not be None")
        if layer_type is None:
            raise ValueError("layer_type must not be None")
        if rng is None:
            rng = np.random.default_rng()

        self.input_shape = check_shape(input_shape, "input_shape")
        self.output_shape = check_shape(output_shape, "output_shape")
        self.activation = activation
        self.layer_type = layer_type
        self.next = None
        self._rng = rng

    def forward(self, input_tensor, training=False):
        raise NotImplementedError

    def backward(self, gradient):
        raise NotImplementedError

    def update_parameters(self, learning_rate):
        """Apply the stored parameter gradients. No-op for parameterless layers."""

    def get_parameters(self):
        """Copies of the trainable tensors, keyed by name."""
        return {}

    def set_parameters(self, parameters):
        current = self._parameter_tensors()
        for name, value in parameters.items():
            if name not in current:
                raise KeyError(f"{type(self).__name__} has no parameter '{name}'")
            if not isinstance(value, Tensor):
                value = Tensor.from_numpy(value)
            if value.shape != current[name].shape:
                raise ShapeError(
                    f"{name} shape mismatch: expected {format_shape(current[name].shape)}, "
                    f"got {format_shape(value.shape)}")
        for name, value in parameters.items():
            source = value.data if isinstance(value, Tensor) else np.asarray(value).ravel()
            current[name].data[:] = source

    def _parameter_tensors(self):
        return {}

    def connect_to(self, next_layer):
        if next_layer is None:
            raise ValueError("next_layer must not be None")
        if self.output_shape != next_layer.input_shape:
            raise ShapeError(
                f"Output shape {format_shape(self.output_shape)} is not compatible with "
                f"next layer's input shape {format_shape(next_layer.input_shape)}")
        self.next = next_layer

    def _check_input(self, input_tensor):
        if input_tensor is None:
            raise ValueError("Input tensor must not be None")
        if input_tensor.shape != self.input_shape:
            raise ShapeError(
                f"Expected input shape {format_shape(self.input_shape)}, "
                f"got {format_shape(input_tensor.shape)}")

    def _check_gradient(self, gradient):
        if gradient is None:
            raise ValueError("Gradient tensor must not be None")
        if gradient.shape != self.output_shape:
            raise ShapeError(
                f"Expected gradient shape {format_shape(self.output_shape)}, "
                f"got {format_shape(gradient.shape)}")

    def _he_init(self, shape, fan_in):
        std = np.sqrt(2.0 / fan_in)
        return Tensor(shape, self._rng.normal(0.0, std, int(np.prod(shape))))

    def _xavier_init(self, shape, fan_in, fan_out):
        limit = np.sqrt(6.0 / (fan_in + fan_out))
        return Tensor(shape, self._rng.uniform(-limit, limit, int(np.prod(shape))))

    def __repr__(self):
        return (f"{type(self).__name__}(input_shape={format_shape(self.input_shape)}, "
                f"output_shape={format_shape(self.output_shape)})")


class ConvolutionalLayer(TensorLayer):
    """
    Convolutional layer with learnable kernels [out, in, kh, kw] and one bias
    per output channel.
    """

    def __init__(self, input_shape, kernel_size, out_channels, stride=(1, 1),
                 padding=False, activation=RELU, rng=None):
        input_shape = check_shape(input_shape, "input_shape")
        if len(input_shape) != 4:
            raise ValueError("Input shape must be 4D [batch, channels, height, width]")
        if out_channels <= 0:
            raise ValueError("out_channels must be positive")

        self.kernel_size = check_pair(kernel_size, "Kernel size")
        self.stride = check_pair(stride, "Stride")
        self.padding = padding
        self.in_channels = input_shape[1]
        self.out_channels = out_channels

        batch_size, _, height, width = input_shape
        out_h = conv_output_size(height, self.kernel_size[0], self.stride[0], padding)
        out_w = conv_output_size(width, self.kernel_size[1], self.stride[1], padding)
        super().__init__(input_shape, (batch_size, out_channels, out_h, out_w),
                         activation, TensorLayerType.CONVOLUTIONAL, rng)

        kernel_h, kernel_w = self.kernel_size
        # He initialization
        fan_in = self.in_channels * kernel_h * kernel_w
        self.kernels = self._he_init((out_channels, self.in_channels, kernel_h, kernel_w), fan_in)
        self.bias = Tensor((out_channels,)).fill(0.01)

        self._kernel_grad = np.zeros(self.kernels.shape)
        self._bias_grad = np.zeros(out_channels)
        self._prev_input = None
        self._pre_activation = None

    def forward(self, input_tensor, training=False):
        self._check_input(input_tensor)
        self._prev_input = input_tensor.to_numpy()

        output = convolve(input_tensor, self.kernels, self.stride, self.padding).to_numpy()
        output += self.bias.data.reshape(1, -1, 1, 1)
        self._pre_activation = output
        return Tensor.from_numpy(self.activation.apply(output))

    def backward(self, gradient):
        self._check_gradient(gradient)
        delta = gradient.to_numpy() * self.activation.derivative(self._pre_activation)

        kernel_h, kernel_w = self.kernel_size
        stride_y, stride_x = self.stride
        pad_y = kernel_h // 2 if self.padding else 0
        pad_x = kernel_w // 2 if self.padding else 0

        padded = pad_images(self._prev_input, pad_y, pad_x)
        padded_grad = np.zeros_like(padded)
        weights = self.kernels.to_numpy()
        kernel_grad = np.zeros_like(weights)

        _, _, out_h, out_w = self.output_shape
        for oh in range(out_h):
            h_start = oh * stride_y
            for ow in range(out_w):
                w_start = ow * stride_x
                patch = padded[:, :, h_start:h_start + kernel_h, w_start:w_start + kernel_w]
                d = delta[:, :, oh, ow]  # (N, O)
                kernel_grad += np.tensordot(d, patch, axes=([0], [0]))
                padded_grad[:, :, h_start:h_start + kernel_h, w_start:w_start + kernel_w] += (
                    np.tensordot(d, weights, axes=([1], [0])))

        self._kernel_grad += kernel_grad
        self._bias_grad += np.sum(delta, axis=(0, 2, 3))

        # positions that fell in the zero padding receive no gradient
        height, width = self.input_shape[2], self.input_shape[3]
        input_grad = padded_grad[:, :, pad_y:pad_y + height, pad_x:pad_x + width]
        return Tensor.from_numpy(input_grad)

    def update_parameters(self, learning_rate):
        self.kernels.data[:] -= learning_rate * self._kernel_grad.ravel()
        self.bias.data[:] -= learning_rate * self._bias_grad
        self._kernel_grad[:] = 0.0
        self._bias_grad[:] = 0.0

    def get_parameters(self):
        return {'kernels': self.kernels.copy(), 'bias': self.bias.copy()}

    def _parameter_tensors(self):
        return {'kernels': self.kernels, 'bias': self.bias}


class PoolingLayer(TensorLayer):
    """Max or average pooling over spatial windows."""

    def __init__(self, input_shape, pool_size, stride=None, pooling_type=PoolingType.MAX,
                 rng=None):
        input_shape = check_shape(input_shape, "input_shape")
        if len(input_shape) != 4:
            raise ValueError("Input shape must be 4D [batch, channels, height, width]")
        if pooling_type is None:
            raise ValueError("pooling_type must not be None")

        self.pool_size = check_pair(pool_size, "Pool size")
        self.stride = check_pair(stride if stride is not None else self.pool_size, "Stride")
        self.pooling_type = PoolingType(pooling_type)

        batch_size, channels, height, width = input_shape
        out_h = pool_output_size(height, self.pool_size[0], self.stride[0])
        out_w = pool_output_size(width, self.pool_size[1], self.stride[1])
        super().__init__(input_shape, (batch_size, channels, out_h, out_w),
                         LINEAR, TensorLayerType.POOLING, rng)

        self._max_positions = None

    def forward(self, input_tensor, training=False):
        self._check_input(input_tensor)
        if self.pooling_type is PoolingType.MAX:
            self._max_positions = self._locate_maxima(input_tensor.to_numpy())
            return max_pool(input_tensor, self.pool_size, self.stride)
        return avg_pool(input_tensor, self.pool_size, self.stride)

    def _locate_maxima(self, images):
        """Window-relative (row, col) of the first maximum of every window."""
        pool_h, pool_w = self.pool_size
        batch_size, channels, out_h, out_w = self.output_shape
        positions = np.zeros((batch_size, channels, out_h, out_w, 2), dtype=int)
        for oh in range(out_h):
            h_start = oh * self.stride[0]
            for ow in range(out_w):
                w_start = ow * self.stride[1]
                window = images[:, :, h_start:h_start + pool_h, w_start:w_start + pool_w]
                flat_index = window.reshape(batch_size, channels, -1).argmax(axis=2)
                rows, cols = np.divmod(flat_index, window.shape[3])
                positions[:, :, oh, ow, 0] = h_start + rows
                positions[:, :, oh, ow, 1] = w_start + cols
        return positions

    def backward(self, gradient):
        self._check_gradient(gradient)
        upstream = gradient.to_numpy()
        input_grad = np.zeros(self.input_shape)
        batch_size, channels, out_h, out_w = self.output_shape
        pool_h, pool_w = self.pool_size

        if self.pooling_type is PoolingType.MAX:
            # route gradients back to max locations
            n_idx, c_idx = np.indices((batch_size, channels))
            for oh in range(out_h):
                for ow in range(out_w):
                    rows = self._max_positions[:, :, oh, ow, 0]
                    cols = self._max_positions[:, :, oh, ow, 1]
                    np.add.at(input_grad, (n_idx, c_idx, rows, cols), upstream[:, :, oh, ow])
        else:
            for oh in range(out_h):
                h_start = oh * self.stride[0]
                for ow in range(out_w):
                    w_start = ow * self.stride[1]
                    region = input_grad[:, :, h_start:h_start + pool_h, w_start:w_start + pool_w]
                    count = region.shape[2] * region.shape[3]
                    region += upstream[:, :, oh, ow][:, :, None, None] / count

        return Tensor.from_numpy(input_grad)


class FlattenLayer(TensorLayer):
    """Converts an N-D tensor to a 1-D tensor and back for gradients."""

    def __init__(self, input_shape, rng=None):
        input_shape = check_shape(input_shape, "input_shape")
        self.output_size = int(np.prod(input_shape))
        super().__init__(input_shape, (self.output_size,), LINEAR,
                         TensorLayerType.FLATTEN, rng)

    def forward(self, input_tensor, training=False):
        self._check_input(input_tensor)
        return Tensor((self.output_size,), input_tensor.data)

    def backward(self, gradient):
        self._check_gradient(gradient)
        return gradient.reshape(self.input_shape)


class FullyConnectedLayer(TensorLayer):
    """
    Dense layer over 1-D tensors: weights [output_size, input_size],
    bias [output_size].
    """

    def __init__(self, input_shape, output_size, use_softmax=False, activation=LINEAR,
                 rng=None):
        if isinstance(input_shape, (int, np.integer)):
            input_shape = (input_shape,)
        input_shape = check_shape(input_shape, "input_shape")
        if len(input_shape) != 1:
            raise ValueError(f"Input shape must be 1D, got {format_shape(input_shape)}")
        super().__init__(input_shape, (output_size,), activation,
                         TensorLayerType.FULLY_CONNECTED, rng)

        self.input_size = input_shape[0]
        self.output_size = self.output_shape[0]
        self.use_softmax = use_softmax

        # Xavier/Glorot initialization
        self.weights = self._xavier_init((self.output_size, self.input_size),
                                         self.input_size, self.output_size)
        self.bias = Tensor((self.output_size,)).fill(0.01)

        self._weight_grad = np.zeros((self.output_size, self.input_size))
        self._bias_grad = np.zeros(self.output_size)
        self._prev_input = None
        self._pre_activation = None
        self._prev_output = None

    def forward(self, input_tensor, training=False):
        self._check_input(input_tensor)
        x = input_tensor.data.copy()
        weights = self.weights.data.reshape(self.output_size, self.input_size)

        pre_activation = weights @ x + self.bias.data
        if self.use_softmax:
            # Subtract max for numerical stability
            exps = np.exp(pre_activation - np.max(pre_activation))
            output = exps / np.sum(exps)
        else:
            output = self.activation.apply(pre_activation)

        self._prev_input = x
        self._pre_activation = pre_activation
        self._prev_output = np.asarray(output, dtype=float)
        return Tensor((self.output_size,), output)

    def backward(self, gradient):
        self._check_gradient(gradient)
        upstream = gradient.data
        if self.use_softmax:
            # Jacobian-vector product of softmax: s * (g - <g, s>)
            s = self._prev_output
            delta = s * (upstream - np.dot(upstream, s))
        else:
            delta = upstream * self.activation.derivative(self._pre_activation)

        weights = self.weights.data.reshape(self.output_size, self.input_size)
        self._weight_grad += np.outer(delta, self._prev_input)
        self._bias_grad += delta
        return Tensor((self.input_size,), weights.T @ delta)

    def update_parameters(self, learning_rate):
        self.weights.data[:] -= learning_rate * self._weight_grad.ravel()
        self.bias.data[:] -= learning_rate * self._bias_grad
        self._weight_grad[:] = 0.0
        self._bias_grad[:] = 0.0

    def get_parameters(self):
        return {'weights': self.weights.copy(), 'bias': self.bias.copy()}

    def _parameter_tensors(self):
        return {'weights': self.weights, 'bias': self.bias}


class BatchNormLayer(TensorLayer):
    """
    Batch normalization over channels of a 4-D tensor or features of a 1-D
    tensor, followed by scale (gamma), shift (beta) and the activation.

    In training mode a 4-D input is normalized with its own batch statistics,
    which are folded into the running statistics; otherwise the running
    statistics are used.
    """

    def __init__(self, input_shape, activation=LINEAR, epsilon=1e-5, momentum=0.9, rng=None):
        input_shape = check_shape(input_shape, "input_shape")
        if len(input_shape) not in (1, 4):
            raise ValueError(
                f"Input shape must be 1D [features] or 4D [batch, channels, height, width], "
                f"got {format_shape(input_shape)}")
        super().__init__(input_shape, input_shape, activation,
                         TensorLayerType.BATCH_NORM, rng)

        self.epsilon = epsilon
        self.momentum = momentum
        self.num_features = input_shape[0] if len(input_shape) == 1 else input_shape[1]

        self.gamma = Tensor((self.num_features,)).fill(1.0)
        self.beta = Tensor((self.num_features,))
        self.running_mean = Tensor((self.num_features,))
        self.running_var = Tensor((self.num_features,)).fill(1.0)

        if len(input_shape) == 4:
            self._axes = (0, 2, 3)
            self._param_shape = (1, -1, 1, 1)
        else:
            self._axes = ()
            self._param_shape = (-1,)

        self._gamma_grad = np.zeros(self.num_features)
        self._beta_grad = np.zeros(self.num_features)
        self._prev_input = None
        self._normalized = None
        self._pre_activation = None
        self._mean = None
        self._var = None
        self._used_batch_stats = False

    def _broadcast(self, tensor):
        return tensor.data.reshape(self._param_shape)

    def forward(self, input_tensor, training=False):
        self._check_input(input_tensor)
        x = input_tensor.to_numpy()
        samples_per_feature = x.size // self.num_features

        if training and len(self.input_shape) == 4 and samples_per_feature > 1:
            self._mean = np.mean(x, axis=self._axes, keepdims=True)
            self._var = np.var(x, axis=self._axes, keepdims=True)
            self.running_mean.data[:] = (self.momentum * self.running_mean.data +
                                         (1 - self.momentum) * self._mean.ravel())
            self.running_var.data[:] = (self.momentum * self.running_var.data +
                                        (1 - self.momentum) * self._var.ravel())
            self._used_batch_stats = True
        else:
            self._mean = self._broadcast(self.running_mean).copy()
            self._var = self._broadcast(self.running_var).copy()
            self._used_batch_stats = False

        self._prev_input = x
        self._normalized = (x - self._mean) / np.sqrt(self._var + self.epsilon)
        self._pre_activation = self._broadcast(self.gamma) * self._normalized + self._broadcast(self.beta)
        return Tensor.from_numpy(self.activation.apply(self._pre_activation))

    def backward(self, gradient):
        self._check_gradient(gradient)
        upstream = gradient.to_numpy() * self.activation.derivative(self._pre_activation)

        self._gamma_grad += np.sum(upstream * self._normalized, axis=self._axes).ravel()
        self._beta_grad += np.sum(upstream, axis=self._axes).ravel()

        dxhat = upstream * self._broadcast(self.gamma)
        std_inv = 1.0 / np.sqrt(self._var + self.epsilon)

        if not self._used_batch_stats:
            # statistics are constants with respect to the input
            return Tensor.from_numpy(dxhat * std_inv)

        m = self._prev_input.size // self.num_features
        centered = self._prev_input - self._mean
        dvar = np.sum(dxhat * centered * -0.5 * (std_inv ** 3), axis=self._axes, keepdims=True)
        dmean = (np.sum(dxhat * -std_inv, axis=self._axes, keepdims=True) +
                 dvar * np.sum(-2.0 * centered, axis=self._axes, keepdims=True) / m)
        dx = dxhat * std_inv + dvar * 2.0 * centered / m + dmean / m
        return Tensor.from_numpy(dx)

    def update_parameters(self, learning_rate):
        self.gamma.data[:] -= learning_rate * self._gamma_grad
        self.beta.data[:] -= learning_rate * self._beta_grad
        self._gamma_grad[:] = 0.0
        self._beta_grad[:] = 0.0

    def get_parameters(self):
        return {name: tensor.copy() for name, tensor in self._parameter_tensors().items()}

    def _parameter_tensors(self):
        return {'gamma': self.gamma, 'beta': self.beta,
                'running_mean': self.running_mean, 'running_var': self.running_var}


class DropoutLayer(TensorLayer):
    """Inverted dropout: active only when ``training`` is set."""

    def __init__(self, input_shape, rate=0.5, rng=None):
        if not 0.0 <= rate < 1.0:
            raise ValueError(f"Dropout rate must be in [0, 1), got {rate}")
        super().__init__(input_shape, input_shape, LINEAR, TensorLayerType.DROPOUT, rng)
        self.rate = rate
        self._mask = None

    def forward(self, input_tensor, training=False):
        self._check_input(input_tensor)
        if not training or self.rate == 0.0:
            self._mask = None
            return input_tensor.copy()
        self._mask = self._rng.binomial(1, 1 - self.rate, input_tensor.size) / (1 - self.rate)
        return Tensor(input_tensor.shape, input_tensor.data * self._mask)

    def backward(self, gradient):
        self._check_gradient(gradient)
        if self._mask is None:
            return gradient.copy()
        return Tensor(gradient.shape, gradient.data * self._mask)
