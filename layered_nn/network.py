"""
network.py
~~~~~~~~~~

Feed-forward network built from an ordered stack of dense layers and
trained one sample at a time with stochastic gradient descent.
"""

import logging
from typing import Any, Dict, Iterator, List, Sequence, Tuple, Union

from layered_nn import matrix
from layered_nn.exceptions import DimensionMismatchError, MalformedRecordError
from layered_nn.layer import ForwardContext, Layer
from layered_nn.matrix import Matrix
from layered_nn.serialization import dumps, loads

# Configure module logger
logger = logging.getLogger(__name__)

LayerSpec = Union[Tuple[int, int, str], Tuple[int, int, str, float]]


class LayeredNeuralNetwork:
    """
    An ordered sequence of layers where each layer's output size matches
    the next layer's input size.

    The network holds no numeric state of its own; weights and bias live
    in the layers and are updated in place by ``train``.
    """

    def __init__(self, layers: Sequence[Layer]):
        """
        Args:
            layers: Already constructed layers, input layer first

        Raises:
            ValueError: If no layers are given
            DimensionMismatchError: If adjacent layer sizes do not chain
        """
        layers = list(layers)
        if not layers:
            raise ValueError("A network requires at least one layer")

        for i, (current, following) in enumerate(zip(layers, layers[1:])):
            if current.output_size != following.input_size:
                raise DimensionMismatchError(
                    f"Layer {i} outputs {current.output_size} values but "
                    f"layer {i + 1} expects {following.input_size}"
                )

        self.layers = layers
        logger.debug(f"Created network with sizes {self.sizes}")

    @classmethod
    def from_specs(cls, specs: Sequence[LayerSpec]) -> 'LayeredNeuralNetwork':
        """
        Build a network from ``(input_size, output_size, activation[, learning_rate])``
        tuples.

        Example:
            >>> net = LayeredNeuralNetwork.from_specs([
            ...     (2, 8, 'sigmoid'),
            ...     (8, 1, 'relu', 0.05),
            ... ])
            >>> net.sizes
            [2, 8, 1]
        """
        return cls([Layer(*spec) for spec in specs])

    @property
    def sizes(self) -> List[int]:
        """Input size followed by the output size of every layer."""
        return [self.layers[0].input_size] + [layer.output_size for layer in self.layers]

    @property
    def architecture(self) -> List[Dict[str, Any]]:
        """Per-layer description without weights."""
        return [
            {
                'inputSize': layer.input_size,
                'outputSize': layer.output_size,
                'activation': layer.activation.value,
                'learningRate': layer.learning_rate
            }
            for layer in self.layers
        ]

    def __len__(self) -> int:
        return len(self.layers)

    def __iter__(self) -> Iterator[Layer]:
        return iter(self.layers)

    def _feed_forward(self, input_arr: Sequence[float]) -> Tuple[Matrix, List[ForwardContext]]:
        outputs = Matrix.from_array(input_arr)
        contexts = []
        for layer in self.layers:
            outputs = layer.forward(outputs)
            contexts.append(layer.context)
        return outputs, contexts

    def predict(self, input_arr: Sequence[float]) -> List[float]:
        """
        Run a forward pass.

        Args:
            input_arr: Flat input of length ``sizes[0]``

        Returns:
            Flat output of length ``sizes[-1]``
        """
        outputs, _ = self._feed_forward(input_arr)
        return outputs.to_array()

    def train(
        self,
        input_arr: Sequence[float],
        target_arr: Sequence[float]
    ) -> List[float]:
        """
        Train on a single sample.

        Args:
            input_arr: Flat input of length ``sizes[0]``
            target_arr: Flat target of length ``sizes[-1]``

        Returns:
            The prediction made before this call's weight updates

        Raises:
            DimensionMismatchError: If the input or target length is wrong
        """
        targets = Matrix.from_array(target_arr)
        outputs, contexts = self._feed_forward(input_arr)

        errors = matrix.subtract(targets, outputs)
        for layer, context in zip(reversed(self.layers), reversed(contexts)):
            errors = layer.backward(errors, context)

        return outputs.to_array()

    def to_records(self) -> List[Dict[str, Any]]:
        return [layer.to_dict() for layer in self.layers]

    def serialize(self) -> str:
        """Serialize as a JSON array of layer records."""
        return dumps(self.to_records())

    @classmethod
    def deserialize(cls, data: Union[str, bytes, list]) -> 'LayeredNeuralNetwork':
        """
        Rebuild a network from its serialized record list.

        Each entry may be a layer record or that record's own JSON string.

        Raises:
            MalformedRecordError: If the records are invalid or the layer
                sizes do not chain
        """
        records = loads(data, 'network')
        if not isinstance(records, list):
            raise MalformedRecordError(
                f"Network record must be a list, got {type(records).__name__}"
            )

        layers = [Layer.deserialize(record) for record in records]
        try:
            network = cls(layers)
        except ValueError as e:
            raise MalformedRecordError(f"Invalid network record: {e}") from e

        logger.debug(f"Deserialized network with sizes {network.sizes}")
        return network

    def __repr__(self) -> str:
        return f"LayeredNeuralNetwork({self.layers!r})"
