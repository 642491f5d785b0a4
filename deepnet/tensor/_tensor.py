"""
Strided multidimensional array backed by a flat float buffer.
"""
import numpy as np

from ..common.errors import ShapeError
from ..common.utils import check_shape, format_shape


def _compute_strides(shape):
    strides = [0] * len(shape)
    stride = 1
    for i in range(len(shape) - 1, -1, -1):
        strides[i] = stride
        stride *= shape[i]
    return tuple(strides)


class Tensor:
    """
    Multidimensional array with an immutable shape and row-major strides.

    The flat buffer may be mutated in place (``set``, ``fill`` or through
    ``data``); ``map``, ``reshape`` and ``transpose`` return new tensors.
    """

    def __init__(self, shape, data=None):
        """
        Args:
            shape (sequence of int): Positive dimensions, at least one
            data (sequence or ndarray, optional): Flat values, copied. Length
                must equal the product of ``shape``. Zero-filled when omitted.
        """
        shape = check_shape(shape)
        size = int(np.prod(shape))

        if data is not None:
            flat = np.array(data, dtype=np.float64).ravel()
            if flat.size != size:
                raise ValueError(
                    f"Data length {flat.size} doesn't match the shape size {size}")
        else:
            flat = np.zeros(size, dtype=np.float64)

        self._shape = shape
        self._strides = _compute_strides(shape)
        self._data = flat

    @classmethod
    def from_numpy(cls, array):
        """Build a tensor with the shape and values of a numpy array."""
        array = np.asarray(array, dtype=np.float64)
        return cls(array.shape, array.ravel())

    @property
    def shape(self):
        return self._shape

    @property
    def strides(self):
        return self._strides

    @property
    def rank(self):
        return len(self._shape)

    @property
    def size(self):
        return self._data.size

    @property
    def data(self):
        """Flat float64 buffer. Writes go straight into the tensor."""
        return self._data

    def _offset(self, indices):
        if len(indices) == 1 and isinstance(indices[0], (tuple, list)):
            indices = tuple(indices[0])
        if len(indices) != len(self._shape):
            raise ShapeError(
                f"Number of indices ({len(indices)}) doesn't match tensor "
                f"dimensionality ({len(self._shape)})")
        offset = 0
        for i, index in enumerate(indices):
            if isinstance(index, bool) or not isinstance(index, (int, np.integer)):
                raise TypeError(f"Tensor indices must be integers, got {index!r}")
            if index < 0 or index >= self._shape[i]:
                raise IndexError(
                    f"Index {index} is out of bounds for dimension {i} "
                    f"with size {self._shape[i]}")
            offset += int(index) * self._strides[i]
        return offset

    def get(self, *indices):
        """Return the value at ``indices`` (one index per dimension)."""
        return float(self._data[self._offset(indices)])

    def set(self, value, *indices):
        """Write ``value`` at ``indices``."""
        self._data[self._offset(indices)] = value

    def fill(self, value):
        self._data.fill(value)
        return self

    def copy(self):
        return Tensor(self._shape, self._data)

    def map(self, function):
        """Apply a scalar function elementwise, returning a new tensor."""
        mapped = np.fromiter((function(float(v)) for v in self._data),
                             dtype=np.float64, count=self._data.size)
        return Tensor(self._shape, mapped)

    def reshape(self, *new_shape):
        """Reinterpret the data with a new shape of the same size."""
        if len(new_shape) == 1 and isinstance(new_shape[0], (tuple, list)):
            new_shape = tuple(new_shape[0])
        new_shape = check_shape(new_shape, "new shape")
        new_size = int(np.prod(new_shape))
        if new_size != self.size:
            raise ShapeError(
                f"Cannot reshape tensor of size {self.size} to new shape "
                f"{format_shape(new_shape)} with size {new_size}")
        return Tensor(new_shape, self._data)

    def transpose(self, *dims):
        """
        Permute dimensions: ``result.shape[i] == self.shape[dims[i]]``.
        """
        if len(dims) == 1 and isinstance(dims[0], (tuple, list)):
            dims = tuple(dims[0])
        if len(dims) != self.rank:
            raise ShapeError("Dimensions array must have the same length as tensor rank")
        if sorted(dims) != list(range(self.rank)):
            raise ValueError(f"Invalid dimensions array: {list(dims)}")

        new_shape = tuple(self._shape[d] for d in dims)
        result = Tensor(new_shape)
        new_strides = result.strides

        # every source index is visited once; its target position is the same
        # index vector read through the permutation
        for flat_index in range(self.size):
            remainder = flat_index
            target = 0
            for axis, stride in enumerate(self._strides):
                index, remainder = divmod(remainder, stride)
                target += index * new_strides[dims.index(axis)]
            result.data[target] = self._data[flat_index]
        return result

    def to_numpy(self):
        """Copy of the data as an ndarray with this tensor's shape."""
        return self._data.reshape(self._shape).copy()

    def __eq__(self, other):
        if not isinstance(other, Tensor):
            return NotImplemented
        return self._shape == other.shape and np.array_equal(self._data, other.data)

    __hash__ = None

    def __repr__(self):
        return f"Tensor(shape={format_shape(self._shape)}, data={self._data.tolist()})"
