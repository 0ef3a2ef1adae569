"""
matrix.py
~~~~~~~~~

Dense 2-D float64 matrix engine.

Instance methods that keep the shape (``add``, ``subtract``,
``multiply_hadamard``, ``multiply_scalar``, ``map``, ``apply``,
``randomize``) mutate ``data`` in place and return the same instance so
calls can be chained. The module-level functions of the same names always
allocate a new Matrix and leave their operands untouched.
"""

import logging
import numbers
import threading
from typing import Any, Callable, Iterable, List, Union

import numpy as np

from layered_nn import config
from layered_nn.exceptions import DimensionMismatchError, MalformedRecordError
from layered_nn.serialization import dumps, loads, require_fields

# Configure module logger
logger = logging.getLogger(__name__)

Scalar = Union[int, float]

# Process-wide generator for weight initialization
_rng_lock = threading.Lock()
_rng = np.random.default_rng(config.RANDOM_SEED)


def set_seed(seed: int) -> None:
    """
    Reseed the process-wide generator used by ``randomize``.

    Args:
        seed: Seed value; the same seed reproduces the same draws
    """
    global _rng
    with _rng_lock:
        _rng = np.random.default_rng(seed)
    logger.debug(f"Random generator reseeded with {seed}")


def _uniform(rows: int, cols: int) -> np.ndarray:
    """Draw a rows x cols array uniformly from [-1, 1)."""
    with _rng_lock:
        return _rng.uniform(-1.0, 1.0, size=(rows, cols))


def check_size(value: Any, name: str) -> int:
    """
    Validate a dimension: any positive integer, numpy integers included.

    Returns:
        int: The value as a plain int

    Raises:
        ValueError: If value is a bool, not integral, or not positive
    """
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    if value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value}")
    return int(value)


def _check_reals(values: Iterable[Any], name: str) -> None:
    # numpy turns None into NaN without complaint
    for value in values:
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise TypeError(f"{name} expects real numbers, got {value!r}")


def _check_same_shape(a: 'Matrix', b: 'Matrix') -> None:
    if a.rows != b.rows or a.cols != b.cols:
        raise DimensionMismatchError(
            f"Shapes must match: {a.rows}x{a.cols} vs {b.rows}x{b.cols}"
        )


class Matrix:
    """
    A rows x cols matrix of float64 values.

    Attributes:
        rows: Number of rows
        cols: Number of columns
        data: numpy array of shape (rows, cols)
    """

    def __init__(self, rows: int, cols: int):
        self.rows = check_size(rows, 'rows')
        self.cols = check_size(cols, 'cols')
        self.data = np.zeros((self.rows, self.cols), dtype=np.float64)

    @classmethod
    def _wrap(cls, array: np.ndarray) -> 'Matrix':
        """Build a Matrix that owns the given 2-D array."""
        matrix = cls(array.shape[0], array.shape[1])
        matrix.data = np.asarray(array, dtype=np.float64)
        return matrix

    @classmethod
    def from_array(cls, values: Iterable[float]) -> 'Matrix':
        """
        Promote a 1-D sequence of length N to an N x 1 column matrix.

        Args:
            values: Flat sequence of numbers

        Returns:
            Column matrix holding the values

        Raises:
            ValueError: If values is empty or not one-dimensional
            TypeError: If an entry is not a real number
        """
        values = list(values)
        array = np.array(values, dtype=np.float64)
        if array.ndim != 1:
            raise ValueError(
                f"from_array expects a flat sequence, got {array.ndim} dimensions"
            )
        if array.size == 0:
            raise ValueError("from_array expects at least one value")
        _check_reals(values, 'from_array')
        return cls._wrap(array.reshape(-1, 1))

    @classmethod
    def from_rows(cls, rows: Iterable[Iterable[float]]) -> 'Matrix':
        """Build a matrix from a nested sequence of rows."""
        rows = [list(row) for row in rows]
        array = np.array(rows, dtype=np.float64)
        if array.ndim != 2 or array.size == 0:
            raise ValueError("from_rows expects a non-empty rectangular sequence")
        for row in rows:
            _check_reals(row, 'from_rows')
        return cls._wrap(array)

    @property
    def shape(self):
        return (self.rows, self.cols)

    def copy(self) -> 'Matrix':
        return Matrix._wrap(self.data.copy())

    def to_array(self) -> List[float]:
        """Flatten the matrix row-major into a list of floats."""
        return self.data.ravel().tolist()

    # ------------------------------------------------------------------
    # In-place operations
    # ------------------------------------------------------------------

    def map(self, fn: Callable[[float, int, int], float]) -> 'Matrix':
        """
        Replace every entry with ``fn(value, row, col)``.

        Returns:
            This matrix
        """
        for i in range(self.rows):
            for j in range(self.cols):
                self.data[i, j] = fn(float(self.data[i, j]), i, j)
        return self

    def apply(self, fn: Callable[[np.ndarray], np.ndarray]) -> 'Matrix':
        """
        Apply a vectorized elementwise function to the whole data array.

        Args:
            fn: Function mapping an array to an array of the same shape

        Returns:
            This matrix
        """
        result = np.asarray(fn(self.data), dtype=np.float64)
        if result.shape != self.data.shape:
            raise DimensionMismatchError(
                f"Elementwise function changed shape {self.data.shape} "
                f"to {result.shape}"
            )
        self.data[...] = result
        return self

    def add(self, other: Union['Matrix', Scalar]) -> 'Matrix':
        """Add a matrix of the same shape, or a scalar, to every entry."""
        if isinstance(other, Matrix):
            _check_same_shape(self, other)
            self.data += other.data
        else:
            self.data += _as_scalar(other)
        return self

    def subtract(self, other: Union['Matrix', Scalar]) -> 'Matrix':
        """Subtract a matrix of the same shape, or a scalar, from every entry."""
        if isinstance(other, Matrix):
            _check_same_shape(self, other)
            self.data -= other.data
        else:
            self.data -= _as_scalar(other)
        return self

    def multiply_hadamard(self, other: 'Matrix') -> 'Matrix':
        """Multiply elementwise by a matrix of the same shape."""
        _check_same_shape(self, other)
        self.data *= other.data
        return self

    def multiply_scalar(self, n: Scalar) -> 'Matrix':
        self.data *= _as_scalar(n)
        return self

    def randomize(self) -> 'Matrix':
        """Fill every entry from the seeded generator, uniform in [-1, 1)."""
        self.data[...] = _uniform(self.rows, self.cols)
        return self

    def multiply(self, other: 'Matrix') -> 'Matrix':
        """
        Matrix product ``self x other``.

        The product has a different shape, so unlike the other instance
        operations this one returns a new matrix.
        """
        return multiply(self, other)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            'rows': self.rows,
            'cols': self.cols,
            'data': self.data.tolist()
        }

    def serialize(self) -> str:
        """Serialize as a JSON string ``{rows, cols, data}``."""
        return dumps(self.to_dict())

    @classmethod
    def deserialize(cls, data: Union[str, bytes, dict]) -> 'Matrix':
        """
        Rebuild a matrix from its record or the record's string encoding.

        Args:
            data: ``{rows, cols, data}`` dict or its JSON string

        Returns:
            Reconstructed matrix

        Raises:
            MalformedRecordError: If fields are missing or ``data`` does not
                have ``rows x cols`` numeric entries
        """
        record = loads(data, 'matrix')
        require_fields(record, ('rows', 'cols', 'data'), 'Matrix')

        try:
            rows = check_size(record['rows'], 'rows')
            cols = check_size(record['cols'], 'cols')
            array = np.array(record['data'], dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise MalformedRecordError(f"Invalid matrix record: {e}") from e

        if array.shape != (rows, cols):
            raise MalformedRecordError(
                f"Matrix record declares {rows}x{cols} but data has shape "
                f"{array.shape}"
            )
        try:
            for row in record['data']:
                _check_reals(row, 'Matrix record')
        except TypeError as e:
            raise MalformedRecordError(f"Invalid matrix record: {e}") from e
        return cls._wrap(array)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.shape == other.shape and np.array_equal(self.data, other.data)

    __hash__ = None

    def __repr__(self) -> str:
        return f"Matrix({self.rows}x{self.cols}, {self.data.tolist()})"


def _as_scalar(n: Any) -> float:
    if isinstance(n, bool) or not isinstance(n, numbers.Real):
        raise TypeError(f"Expected a Matrix or a number, got {type(n).__name__}")
    return float(n)


# ----------------------------------------------------------------------
# Pure operations returning new matrices
# ----------------------------------------------------------------------

def add(a: Matrix, b: Union[Matrix, Scalar]) -> Matrix:
    return a.copy().add(b)


def subtract(a: Matrix, b: Union[Matrix, Scalar]) -> Matrix:
    return a.copy().subtract(b)


def multiply_hadamard(a: Matrix, b: Matrix) -> Matrix:
    return a.copy().multiply_hadamard(b)


def multiply_scalar(a: Matrix, n: Scalar) -> Matrix:
    return a.copy().multiply_scalar(n)


def map_matrix(matrix: Matrix, fn: Callable[[float, int, int], float]) -> Matrix:
    """Return a copy of ``matrix`` with ``fn(value, row, col)`` applied."""
    return matrix.copy().map(fn)


def apply(matrix: Matrix, fn: Callable[[np.ndarray], np.ndarray]) -> Matrix:
    return matrix.copy().apply(fn)


def randomize(matrix: Matrix) -> Matrix:
    """Return a new randomized matrix with the same shape as ``matrix``."""
    return Matrix(matrix.rows, matrix.cols).randomize()


def transpose(matrix: Matrix) -> Matrix:
    """Return a new cols x rows matrix with ``result[j][i] = matrix[i][j]``."""
    return Matrix._wrap(matrix.data.T.copy())


def multiply(a: Matrix, b: Matrix) -> Matrix:
    """
    Matrix product of ``a`` (n x m) and ``b`` (m x p).

    Raises:
        DimensionMismatchError: If ``a.cols != b.rows``
    """
    if a.cols != b.rows:
        raise DimensionMismatchError(
            f"Columns of A ({a.cols}) must match rows of B ({b.rows})"
        )
    return Matrix._wrap(np.matmul(a.data, b.data))
