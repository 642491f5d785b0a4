# pylint: disable=missing-docstring
from abc import abstractmethod
from typing import Any, Dict, TypeVar
import numpy as np

from .common.errors import NetworkNotInitializedError

T = TypeVar("T", bound="BaseNetwork")


def mean_squared_error(y_true, y_pred) -> float:
    """
    :param y_true: expected values, any shape
    :param y_pred: predicted values, same number of elements as y_true
    :return: mean of the squared differences
    """
    y_true = np.asarray(y_true, dtype=float).ravel()
    y_pred = np.asarray(y_pred, dtype=float).ravel()
    if y_true.size != y_pred.size:
        raise ValueError(
            f"Target size ({y_true.size}) must match prediction size ({y_pred.size})")
    return float(np.mean((y_true - y_pred) ** 2))


# pylint: disable=too-many-instance-attributes, invalid-name
class BaseNetwork:
    """
    Shared behaviour of the dense and tensor networks. Subclasses provide
    forward/train and expose their trainable arrays through get_parameters.
    """

    def __init__(self, layers, learning_rate: float = 0.01, verbose: bool = False):
        self.layers = tuple(layers)
        self.learning_rate = learning_rate
        self.verbose = verbose
        self.loss_curve_ = []

    @property
    def learning_rate(self) -> float:
        return self._learning_rate

    @learning_rate.setter
    def learning_rate(self, value: float):
        if value is None or not value > 0:
            raise ValueError(f"Learning rate must be positive, got {value}")
        self._learning_rate = float(value)

    @abstractmethod
    def forward(self, inputs) -> Any:
        raise NotImplementedError

    @abstractmethod
    def train(self, inputs, targets) -> Any:
        raise NotImplementedError

    @abstractmethod
    def get_parameters(self) -> Dict[str, np.ndarray]:
        """
        :return: trainable arrays keyed ``<name>_<layer index>``
        """
        raise NotImplementedError

    @abstractmethod
    def set_parameters(self, parameters: Dict[str, np.ndarray]) -> None:
        raise NotImplementedError

    def _check_initialized(self):
        if not self.layers:
            raise NetworkNotInitializedError("Network has no layers")

    def get_params(self, mode: str = "all") -> Any:
        """
        Get parameters for this network.

        :param mode: Specifies which parameters to return. Options are:
            - "all": Return trainable and configuration parameters.
            - "trainable": Return only trainable arrays (weights, biases, kernels).
            - "non_trainable": Return only configuration settings.
        :return: Dictionary of parameter names mapped to their values.
        """
        config = {
            "learning_rate": self.learning_rate,
            "verbose": self.verbose,
            "n_layers": len(self.layers),
        }
        if mode == "all":
            return {**config, **self.get_parameters()}
        if mode == "trainable":
            return self.get_parameters()
        if mode == "non_trainable":
            return config

        raise ValueError(
            f"Invalid mode '{mode}'. Choose from 'all', 'trainable', or 'non_trainable'."
        )

    def summary(self) -> str:
        """One line per layer plus the total number of trainable values."""
        lines = [f"{type(self).__name__} (learning_rate={self.learning_rate})"]
        for i, layer in enumerate(self.layers):
            lines.append(f"  {i}: {layer!r}")
        total = sum(int(np.size(value)) for value in self.get_parameters().values())
        lines.append(f"Trainable parameters: {total}")
        return "\n".join(lines)

    def _log_epoch(self, epoch: int, epochs: int, loss: float):
        self.loss_curve_.append(loss)
        if self.verbose:
            print(f"Epoch {epoch + 1}/{epochs} - Loss: {loss:.6f}")

    def save_parameters(self, path) -> None:
        """Write every trainable array to a numpy ``.npz`` archive."""
        np.savez(path, **self.get_parameters())

    def load_parameters(self: T, path) -> T:
        """Restore arrays written by ``save_parameters``; shapes must match exactly."""
        with np.load(path) as archive:
            parameters = {name: archive[name] for name in archive.files}
        self.set_parameters(parameters)
        return self
