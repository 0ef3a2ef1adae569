"""
exceptions.py
~~~~~~~~~~~~~

Error types raised by the matrix engine and the layered network.
"""


class NetworkError(Exception):
    """Base class for all layered_nn errors."""


class DimensionMismatchError(NetworkError, ValueError):
    """Operand shapes are incompatible for the requested operation."""


class MalformedRecordError(NetworkError, ValueError):
    """A serialized matrix, layer or network record cannot be restored."""


class UnpairedBackwardError(NetworkError, RuntimeError):
    """A backward pass was requested without a matching forward pass."""
