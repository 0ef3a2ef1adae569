"""
activations.py
~~~~~~~~~~~~~~

Elementwise activation functions.

Each activation is a member of a closed enumeration whose value is the tag
written into serialized layers. The derivative of every activation is
expressed in terms of its own output ``y = fn(x)``; an activation whose
derivative cannot be recovered from its output does not fit this table.
"""

from enum import Enum
from typing import Callable, Dict, Tuple, Union

import numpy as np

from layered_nn import config

ArrayLike = Union[float, np.ndarray]


def _sigmoid(x: ArrayLike) -> ArrayLike:
    with np.errstate(over='ignore'):
        return 1.0 / (1.0 + np.exp(-x))


def _sigmoid_derivative(y: ArrayLike) -> ArrayLike:
    return y * (1.0 - y)


def _relu(x: ArrayLike) -> ArrayLike:
    return np.maximum(0.0, x)


def _relu_derivative(y: ArrayLike) -> ArrayLike:
    return np.where(y > 0, 1.0, 0.0)


def _leaky_relu(x: ArrayLike) -> ArrayLike:
    return np.maximum(config.LEAKY_RELU_ALPHA * x, x)


def _leaky_relu_derivative(y: ArrayLike) -> ArrayLike:
    return np.where(y > 0, 1.0, config.LEAKY_RELU_ALPHA)


def _tanh(x: ArrayLike) -> ArrayLike:
    return np.tanh(x)


def _tanh_derivative(y: ArrayLike) -> ArrayLike:
    return 1.0 - y * y


class Activation(Enum):
    """Supported activations, valued by their serialized tag."""

    SIGMOID = 'sigmoid'
    RELU = 'relu'
    LEAKY_RELU = 'leaky_relu'
    TANH = 'tanh'

    def fn(self, x: ArrayLike) -> ArrayLike:
        """Forward nonlinearity, applied elementwise."""
        return _FUNCTIONS[self][0](x)

    def dfn(self, y: ArrayLike) -> ArrayLike:
        """Derivative evaluated at the post-activation output ``y``."""
        return _FUNCTIONS[self][1](y)

    @classmethod
    def from_name(cls, name: Union[str, 'Activation']) -> 'Activation':
        """
        Resolve an activation from its tag.

        Args:
            name: Tag such as ``'sigmoid'`` or ``'leakyRelu'``, or a member

        Returns:
            The matching Activation

        Raises:
            ValueError: If the name is not a known activation
        """
        if isinstance(name, cls):
            return name
        if not isinstance(name, str):
            raise ValueError(f"Activation name must be a string, got {name!r}")

        key = name.strip().lower().replace('-', '_')
        key = _ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            supported = ', '.join(member.value for member in cls)
            raise ValueError(
                f"Unknown activation '{name}'. Supported: {supported}"
            ) from None


_FUNCTIONS: Dict[Activation, Tuple[Callable, Callable]] = {
    Activation.SIGMOID: (_sigmoid, _sigmoid_derivative),
    Activation.RELU: (_relu, _relu_derivative),
    Activation.LEAKY_RELU: (_leaky_relu, _leaky_relu_derivative),
    Activation.TANH: (_tanh, _tanh_derivative),
}

_ALIASES = {
    'leakyrelu': 'leaky_relu',
}
