"""
layered_nn package
~~~~~~~~~~~~~~~~~~

Minimal multilayer perceptron: a dense matrix engine, fully-connected
layers with elementwise activations, and a network trained one sample at
a time with stochastic gradient descent.
"""

from layered_nn.activations import Activation
from layered_nn.exceptions import (
    NetworkError,
    DimensionMismatchError,
    MalformedRecordError,
    UnpairedBackwardError
)
from layered_nn.layer import ForwardContext, Layer
from layered_nn.matrix import Matrix, set_seed
from layered_nn.network import LayeredNeuralNetwork

__version__ = "1.0.0"

__all__ = [
    'Activation',
    'DimensionMismatchError',
    'ForwardContext',
    'Layer',
    'LayeredNeuralNetwork',
    'MalformedRecordError',
    'Matrix',
    'NetworkError',
    'UnpairedBackwardError',
    'set_seed',
]
