"""
layer.py
~~~~~~~~

Fully-connected layer with an elementwise activation, trained with the
delta rule one sample at a time.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from layered_nn import config
from layered_nn import matrix
from layered_nn.activations import Activation
from layered_nn.exceptions import (
    DimensionMismatchError,
    MalformedRecordError,
    UnpairedBackwardError
)
from layered_nn.matrix import Matrix
from layered_nn.serialization import dumps, loads, require_fields

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForwardContext:
    """
    State produced by one forward evaluation of a layer.

    Attributes:
        inputs: Column matrix that was fed into the layer
        outputs: Post-activation column matrix the layer produced
    """

    inputs: Matrix
    outputs: Matrix


class Layer:
    """
    A dense layer ``outputs = activation(weights x inputs + bias)``.

    Attributes:
        input_size: Number of inputs
        output_size: Number of outputs
        activation: Activation applied elementwise
        weights: output_size x input_size Matrix
        bias: output_size x 1 Matrix
        learning_rate: Scale of each gradient-descent step
    """

    def __init__(
        self,
        input_size: int,
        output_size: int,
        activation: Union[str, Activation],
        learning_rate: Optional[float] = None,
        weights: Optional[Matrix] = None,
        bias: Optional[Matrix] = None
    ):
        """
        Create a layer with randomized weights and bias.

        Args:
            input_size: Number of inputs
            output_size: Number of outputs
            activation: Activation member or its name
            learning_rate: Step size, defaults to the configured rate
            weights: Initial weights instead of random ones
            bias: Initial bias instead of a random one

        Raises:
            ValueError: If a size is not a positive integer or the
                activation is unknown
            DimensionMismatchError: If given weights or bias have the
                wrong shape
        """
        input_size = matrix.check_size(input_size, 'input_size')
        output_size = matrix.check_size(output_size, 'output_size')

        self.input_size = input_size
        self.output_size = output_size
        self.activation = Activation.from_name(activation)
        self.learning_rate = float(
            config.DEFAULT_LEARNING_RATE if learning_rate is None else learning_rate
        )

        if weights is None:
            weights = Matrix(output_size, input_size).randomize()
        elif weights.shape != (output_size, input_size):
            raise DimensionMismatchError(
                f"Weights must be {output_size}x{input_size}, "
                f"got {weights.rows}x{weights.cols}"
            )

        if bias is None:
            bias = Matrix(output_size, 1).randomize()
        elif bias.shape != (output_size, 1):
            raise DimensionMismatchError(
                f"Bias must be {output_size}x1, got {bias.rows}x{bias.cols}"
            )

        self.weights = weights
        self.bias = bias
        self._context: Optional[ForwardContext] = None

    @property
    def context(self) -> Optional[ForwardContext]:
        """Forward context awaiting a backward call, if any."""
        return self._context

    @property
    def inputs(self) -> Optional[Matrix]:
        return self._context.inputs if self._context else None

    @property
    def outputs(self) -> Optional[Matrix]:
        return self._context.outputs if self._context else None

    def evaluate(self, inputs: Matrix) -> ForwardContext:
        """
        Compute the layer output without touching any stored state.

        Args:
            inputs: input_size x 1 column matrix

        Returns:
            ForwardContext holding the inputs and the activated outputs

        Raises:
            DimensionMismatchError: If inputs do not have input_size rows
        """
        outputs = matrix.multiply(self.weights, inputs)
        outputs.add(self.bias)
        outputs.apply(self.activation.fn)
        return ForwardContext(inputs=inputs, outputs=outputs)

    def forward(self, inputs: Matrix) -> Matrix:
        """
        Compute the layer output and keep it for the next ``backward``.

        Any previously pending forward state is overwritten.
        """
        self._context = self.evaluate(inputs)
        return self._context.outputs

    def backward(
        self,
        errors: Matrix,
        context: Optional[ForwardContext] = None
    ) -> Matrix:
        """
        Apply one delta-rule update and return the error for the previous layer.

        The weight and bias updates are applied before the returned error is
        computed, so the error is propagated through the updated weights.

        Args:
            errors: output_size x 1 error attributed to this layer's output
            context: Forward context to train on; defaults to the one left
                by the last ``forward`` call

        Returns:
            input_size x 1 error for the preceding layer

        Raises:
            UnpairedBackwardError: If no forward context is available or the
                context does not match this layer's shape
            DimensionMismatchError: If errors do not match the outputs
        """
        if context is None:
            context = self._context
        if context is None:
            raise UnpairedBackwardError(
                "backward() called without a preceding forward()"
            )
        if (context.inputs.rows != self.input_size
                or context.outputs.rows != self.output_size):
            raise UnpairedBackwardError(
                f"Forward context of shape {context.inputs.rows}->"
                f"{context.outputs.rows} does not belong to a "
                f"{self.input_size}->{self.output_size} layer"
            )
        self._context = None

        gradients = matrix.apply(context.outputs, self.activation.dfn)
        gradients.multiply_hadamard(errors)
        gradients.multiply_scalar(self.learning_rate)

        deltas = matrix.multiply(gradients, matrix.transpose(context.inputs))

        self.weights.add(deltas)
        self.bias.add(gradients)

        return matrix.multiply(matrix.transpose(self.weights), errors)

    def to_dict(self) -> dict:
        return {
            'inputSize': self.input_size,
            'outputSize': self.output_size,
            'activation': self.activation.value,
            'learningRate': self.learning_rate,
            'weights': self.weights.to_dict(),
            'bias': self.bias.to_dict()
        }

    def serialize(self) -> str:
        return dumps(self.to_dict())

    @classmethod
    def deserialize(cls, data: Union[str, bytes, dict]) -> 'Layer':
        """
        Rebuild a layer with its stored weights, bias and learning rate.

        Args:
            data: Layer record dict or its JSON string

        Returns:
            Reconstructed Layer

        Raises:
            MalformedRecordError: If the record is incomplete or inconsistent
        """
        record = loads(data, 'layer')
        require_fields(
            record,
            ('inputSize', 'outputSize', 'activation', 'weights', 'bias'),
            'Layer'
        )

        weights = Matrix.deserialize(record['weights'])
        bias = Matrix.deserialize(record['bias'])

        try:
            layer = cls(
                record['inputSize'],
                record['outputSize'],
                record['activation'],
                learning_rate=record.get('learningRate'),
                weights=weights,
                bias=bias
            )
        except (TypeError, ValueError) as e:
            raise MalformedRecordError(f"Invalid layer record: {e}") from e

        logger.debug(f"Deserialized layer {layer!r}")
        return layer

    def __repr__(self) -> str:
        return (
            f"Layer({self.input_size}, {self.output_size}, "
            f"{self.activation.value}, learning_rate={self.learning_rate})"
        )
