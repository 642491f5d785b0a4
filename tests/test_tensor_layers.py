import numpy as np
import pytest

from deepnet.common.errors import ShapeError
from deepnet.neural_networks import (
    LINEAR, RELU, TensorLayerType, PoolingType, ConvolutionalLayer, PoolingLayer,
    FlattenLayer, FullyConnectedLayer, TensorBatchNormLayer, DropoutLayer)
from deepnet.tensor import Tensor


def numerical_input_gradient(layer, inputs, upstream, eps=1e-6, training=False):
    """Central differences of sum(layer(x) * upstream) with respect to x."""
    grad = np.zeros_like(inputs)
    for index in np.ndindex(*inputs.shape):
        shifted = inputs.copy()
        shifted[index] += eps
        plus = np.sum(layer.forward(Tensor.from_numpy(shifted), training).to_numpy() * upstream)
        shifted[index] -= 2 * eps
        minus = np.sum(layer.forward(Tensor.from_numpy(shifted), training).to_numpy() * upstream)
        grad[index] = (plus - minus) / (2 * eps)
    return grad


def test_convolutional_layer_shapes_and_init(rng):
    layer = ConvolutionalLayer((2, 3, 8, 8), (3, 3), 4, (1, 1), True, RELU, rng)
    assert layer.layer_type is TensorLayerType.CONVOLUTIONAL
    assert layer.output_shape == (2, 4, 8, 8)
    assert layer.kernels.shape == (4, 3, 3, 3)
    np.testing.assert_array_equal(layer.bias.data, np.full(4, 0.01))

    unpadded = ConvolutionalLayer((1, 1, 6, 6), 3, 2, 2, rng=rng)
    assert unpadded.output_shape == (1, 2, 2, 2)


def test_convolutional_layer_rejects_bad_input(rng):
    with pytest.raises(ValueError):
        ConvolutionalLayer((3, 8, 8), (3, 3), 4, rng=rng)
    layer = ConvolutionalLayer((1, 2, 4, 4), (3, 3), 1, rng=rng)
    with pytest.raises(ShapeError):
        layer.forward(Tensor((1, 3, 4, 4)))


def test_convolutional_forward_adds_bias(rng):
    layer = ConvolutionalLayer((1, 1, 3, 3), (1, 1), 1, activation=LINEAR, rng=rng)
    layer.set_parameters({'kernels': Tensor((1, 1, 1, 1)).fill(2.0)})
    inputs = Tensor((1, 1, 3, 3), np.arange(9))
    np.testing.assert_allclose(layer.forward(inputs).data, 2.0 * np.arange(9) + 0.01)


@pytest.mark.parametrize("stride,padding", [((1, 1), False), ((2, 2), True)])
def test_convolutional_backward_matches_numerical_gradient(rng, stride, padding):
    layer = ConvolutionalLayer((2, 2, 5, 5), (3, 3), 3, stride, padding, LINEAR, rng)
    inputs = rng.normal(size=layer.input_shape)
    upstream = rng.normal(size=layer.output_shape)

    expected = numerical_input_gradient(layer, inputs, upstream)
    layer.forward(Tensor.from_numpy(inputs))
    input_grad = layer.backward(Tensor.from_numpy(upstream))
    assert input_grad.shape == layer.input_shape
    np.testing.assert_allclose(input_grad.to_numpy(), expected, atol=1e-5)

    # kernel gradient recovered from a unit-rate update
    before = layer.kernels.to_numpy()
    bias_before = layer.bias.data.copy()
    layer.update_parameters(1.0)
    kernel_grad = before - layer.kernels.to_numpy()
    bias_grad = bias_before - layer.bias.data

    numerical = np.zeros_like(before)
    eps = 1e-6
    for index in np.ndindex(*before.shape):
        for sign in (1, -1):
            shifted = before.copy()
            shifted[index] += sign * eps
            layer.set_parameters({'kernels': Tensor.from_numpy(shifted)})
            loss = np.sum(layer.forward(Tensor.from_numpy(inputs)).to_numpy() * upstream)
            numerical[index] += sign * loss / (2 * eps)
    np.testing.assert_allclose(kernel_grad, numerical, atol=1e-5)
    np.testing.assert_allclose(bias_grad, upstream.sum(axis=(0, 2, 3)), atol=1e-10)


def test_max_pooling_routes_gradient_to_maximum(rng):
    layer = PoolingLayer((1, 1, 2, 2), (2, 2), rng=rng)
    output = layer.forward(Tensor((1, 1, 2, 2), [1.0, 3.0, 2.0, 0.0]))
    assert output.data.tolist() == [3.0]
    grad = layer.backward(Tensor((1, 1, 1, 1), [5.0]))
    assert grad.data.tolist() == [0.0, 5.0, 0.0, 0.0]


def test_max_pooling_ties_use_first_position(rng):
    layer = PoolingLayer((1, 1, 2, 2), 2, rng=rng)
    layer.forward(Tensor((1, 1, 2, 2)).fill(1.0))
    grad = layer.backward(Tensor((1, 1, 1, 1), [1.0]))
    assert grad.data.tolist() == [1.0, 0.0, 0.0, 0.0]


def test_average_pooling_spreads_gradient(rng):
    layer = PoolingLayer((1, 2, 4, 4), (2, 2), (2, 2), PoolingType.AVERAGE, rng)
    assert layer.output_shape == (1, 2, 2, 2)
    inputs = Tensor((1, 2, 4, 4), np.arange(32))
    output = layer.forward(inputs).to_numpy()
    np.testing.assert_allclose(output[0, 0], [[2.5, 4.5], [10.5, 12.5]])
    grad = layer.backward(Tensor((1, 2, 2, 2)).fill(4.0))
    np.testing.assert_allclose(grad.data, np.ones(32))


def test_pooling_backward_matches_numerical_gradient(rng):
    layer = PoolingLayer((2, 2, 5, 5), (3, 3), (1, 1), PoolingType.MAX, rng)
    inputs = rng.normal(size=layer.input_shape)
    upstream = rng.normal(size=layer.output_shape)
    expected = numerical_input_gradient(layer, inputs, upstream)
    layer.forward(Tensor.from_numpy(inputs))
    grad = layer.backward(Tensor.from_numpy(upstream))
    np.testing.assert_allclose(grad.to_numpy(), expected, atol=1e-5)


def test_flatten_layer_round_trip(rng):
    layer = FlattenLayer((2, 3, 2), rng)
    assert layer.output_shape == (12,)
    inputs = Tensor((2, 3, 2), np.arange(12))
    flat = layer.forward(inputs)
    assert flat.shape == (12,)
    np.testing.assert_array_equal(flat.data, np.arange(12))
    assert layer.backward(flat) == inputs
    with pytest.raises(ShapeError):
        layer.forward(Tensor((12,)))
    with pytest.raises(ShapeError):
        layer.backward(Tensor((2, 3, 2)))


def test_fully_connected_init_and_forward(rng):
    layer = FullyConnectedLayer((5,), 3, activation=LINEAR, rng=rng)
    weights = layer.weights.to_numpy()
    limit = np.sqrt(6.0 / (5 + 3))
    assert weights.shape == (3, 5)
    assert np.all(np.abs(weights) <= limit)
    np.testing.assert_array_equal(layer.bias.data, np.full(3, 0.01))

    x = rng.normal(size=5)
    np.testing.assert_allclose(layer.forward(Tensor((5,), x)).data, weights @ x + 0.01)


def test_fully_connected_backward(rng):
    layer = FullyConnectedLayer(4, 3, activation=LINEAR, rng=rng)
    x = rng.normal(size=4)
    g = rng.normal(size=3)
    weights = layer.weights.to_numpy()
    layer.forward(Tensor((4,), x))
    grad = layer.backward(Tensor((3,), g))
    np.testing.assert_allclose(grad.data, weights.T @ g)

    layer.update_parameters(0.5)
    np.testing.assert_allclose(layer.weights.to_numpy(), weights - 0.5 * np.outer(g, x))
    np.testing.assert_allclose(layer.bias.data, 0.01 - 0.5 * g)

    # gradients are cleared after an update
    updated = layer.weights.to_numpy()
    layer.update_parameters(0.5)
    np.testing.assert_array_equal(layer.weights.to_numpy(), updated)


def test_fully_connected_softmax_backward_uses_jacobian(rng):
    layer = FullyConnectedLayer(4, 3, use_softmax=True, rng=rng)
    x = rng.normal(size=(4,))
    upstream = rng.normal(size=(3,))
    output = layer.forward(Tensor((4,), x))
    assert np.sum(output.data) == pytest.approx(1.0)
    expected = numerical_input_gradient(layer, x, upstream)
    layer.forward(Tensor((4,), x))
    np.testing.assert_allclose(layer.backward(Tensor((3,), upstream)).data, expected, atol=1e-6)


def test_fully_connected_requires_1d_input(rng):
    with pytest.raises(ValueError):
        FullyConnectedLayer((2, 2), 3, rng=rng)


def test_batch_norm_identity_with_running_statistics(rng):
    layer = TensorBatchNormLayer((4,), LINEAR, epsilon=0.0, rng=rng)
    inputs = Tensor((4,), [-2.0, -0.5, 0.0, 3.0])
    assert layer.forward(inputs) == inputs
    assert layer.forward(inputs, training=True) == inputs


def test_batch_norm_training_uses_batch_statistics(rng):
    layer = TensorBatchNormLayer((2, 3, 2, 2), rng=rng)
    inputs = rng.normal(loc=5.0, scale=2.0, size=(2, 3, 2, 2))
    output = layer.forward(Tensor.from_numpy(inputs), training=True).to_numpy()
    np.testing.assert_allclose(output.mean(axis=(0, 2, 3)), np.zeros(3), atol=1e-10)
    np.testing.assert_allclose(output.var(axis=(0, 2, 3)), np.ones(3), atol=1e-3)
    np.testing.assert_allclose(layer.running_mean.data,
                               0.1 * inputs.mean(axis=(0, 2, 3)))


def test_batch_norm_backward_matches_numerical_gradient(rng):
    layer = TensorBatchNormLayer((2, 2, 2, 2), RELU, rng=rng)
    layer.set_parameters({'gamma': Tensor((2,), [1.5, 0.5]), 'beta': Tensor((2,), [0.2, 0.1])})
    inputs = rng.normal(size=layer.input_shape)
    upstream = rng.normal(size=layer.output_shape)
    expected = numerical_input_gradient(layer, inputs, upstream, eps=1e-5, training=True)
    layer.forward(Tensor.from_numpy(inputs), training=True)
    grad = layer.backward(Tensor.from_numpy(upstream))
    np.testing.assert_allclose(grad.to_numpy(), expected, atol=1e-4)


def test_batch_norm_gradients_accumulate_until_update(rng):
    twice = TensorBatchNormLayer((2, 2, 2, 2), LINEAR, rng=rng)
    once = TensorBatchNormLayer((2, 2, 2, 2), LINEAR, rng=rng)
    inputs = Tensor.from_numpy(rng.normal(size=twice.input_shape))
    upstream = Tensor.from_numpy(rng.normal(size=twice.output_shape))

    twice.forward(inputs, training=True)
    twice.backward(upstream)
    twice.backward(upstream)
    twice.update_parameters(0.1)
    gamma = twice.gamma.copy()
    twice.update_parameters(0.1)
    assert twice.gamma == gamma

    once.forward(inputs, training=True)
    once.backward(upstream)
    once.update_parameters(0.2)
    np.testing.assert_allclose(twice.gamma.data, once.gamma.data)
    np.testing.assert_allclose(twice.beta.data, once.beta.data)


def test_batch_norm_rejects_other_ranks(rng):
    with pytest.raises(ValueError):
        TensorBatchNormLayer((2, 3), rng=rng)


def test_dropout_is_identity_at_inference(rng):
    layer = DropoutLayer((10,), rate=0.5, rng=rng)
    inputs = Tensor((10,), np.arange(10))
    assert layer.forward(inputs) == inputs
    assert layer.backward(inputs) == inputs


def test_dropout_scales_kept_units(rng):
    layer = DropoutLayer((200,), rate=0.25, rng=rng)
    inputs = Tensor((200,)).fill(3.0)
    output = layer.forward(inputs, training=True).data
    kept = output != 0.0
    assert 0 < kept.sum() < 200
    np.testing.assert_allclose(output[kept], 4.0)
    grad = layer.backward(Tensor((200,)).fill(1.0)).data
    np.testing.assert_array_equal(grad != 0.0, kept)


def test_dropout_rate_is_validated(rng):
    with pytest.raises(ValueError):
        DropoutLayer((3,), rate=1.0, rng=rng)


def test_connect_to_checks_shapes(rng):
    conv = ConvolutionalLayer((1, 1, 4, 4), (3, 3), 2, rng=rng)
    with pytest.raises(ShapeError):
        conv.connect_to(FlattenLayer((1, 2, 4, 4), rng))
    conv.connect_to(FlattenLayer((1, 2, 2, 2), rng))


def test_set_parameters_validates_before_writing(rng):
    layer = FullyConnectedLayer(3, 2, rng=rng)
    before = layer.get_parameters()
    with pytest.raises(ShapeError):
        layer.set_parameters({'bias': Tensor((2,)), 'weights': Tensor((3, 2))})
    assert layer.get_parameters()['bias'] == before['bias']
    with pytest.raises(KeyError):
        layer.set_parameters({'kernels': Tensor((2, 3))})


def test_convolutional_gradients_are_cleared_after_update(rng):
    layer = ConvolutionalLayer((1, 1, 4, 4), (3, 3), 2, activation=LINEAR, rng=rng)
    inputs = Tensor.from_numpy(rng.normal(size=layer.input_shape))
    upstream = Tensor.from_numpy(rng.normal(size=layer.output_shape))
    layer.forward(inputs)
    layer.backward(upstream)
    layer.update_parameters(0.1)

    kernels = layer.kernels.copy()
    bias = layer.bias.copy()
    layer.update_parameters(0.1)
    assert layer.kernels == kernels
    assert layer.bias == bias


def test_convolutional_gradients_accumulate_until_update(rng):
    first = ConvolutionalLayer((1, 1, 4, 4), (3, 3), 2, activation=LINEAR,
                               rng=np.random.default_rng(3))
    second = ConvolutionalLayer((1, 1, 4, 4), (3, 3), 2, activation=LINEAR,
                                rng=np.random.default_rng(3))
    inputs = Tensor.from_numpy(rng.normal(size=first.input_shape))
    upstream = Tensor.from_numpy(rng.normal(size=first.output_shape))

    first.forward(inputs)
    first.backward(upstream)
    first.backward(upstream)
    first.update_parameters(0.1)

    second.forward(inputs)
    second.backward(upstream)
    second.update_parameters(0.2)

    np.testing.assert_allclose(first.kernels.data, second.kernels.data)
    np.testing.assert_allclose(first.bias.data, second.bias.data)
