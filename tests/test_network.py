"""
test_network.py
~~~~~~~~~~~~~~~

Tests for the layered network: construction, inference, training and
serialization.
"""

import json

import numpy as np
import pytest

from layered_nn import config
from layered_nn.exceptions import DimensionMismatchError, MalformedRecordError
from layered_nn.layer import Layer
from layered_nn.matrix import Matrix, set_seed
from layered_nn.network import LayeredNeuralNetwork

XOR_SAMPLES = [
    ([0, 0], [0]),
    ([0, 1], [1]),
    ([1, 0], [1]),
    ([1, 1], [0]),
]

XOR_SPECS = [
    (2, 8, 'sigmoid'),
    (8, 8, 'sigmoid'),
    (8, 8, 'sigmoid'),
    (8, 1, 'relu'),
]


@pytest.fixture
def simple_network():
    """Create a small 3-4-2 network with a fixed seed."""
    set_seed(7)
    return LayeredNeuralNetwork.from_specs([
        (3, 4, 'tanh'),
        (4, 2, 'sigmoid', 0.2),
    ])


@pytest.mark.unit
class TestNetworkConstruction:
    """Test building networks."""

    def test_from_specs(self, simple_network):
        """Test sizes, layer count and per-layer settings."""
        assert simple_network.sizes == [3, 4, 2]
        assert len(simple_network) == 2
        assert simple_network.layers[1].learning_rate == 0.2

    def test_from_layers(self):
        """Test building from already constructed layers."""
        layers = [Layer(2, 3, 'relu'), Layer(3, 1, 'sigmoid')]
        net = LayeredNeuralNetwork(layers)

        assert list(net) == layers

    def test_adjacent_sizes_must_chain(self):
        """Test that layer[i].output_size must equal layer[i+1].input_size."""
        with pytest.raises(DimensionMismatchError):
            LayeredNeuralNetwork([Layer(2, 3, 'relu'), Layer(4, 1, 'relu')])

    def test_empty_network(self):
        """Test that at least one layer is required."""
        with pytest.raises(ValueError):
            LayeredNeuralNetwork([])

    def test_architecture(self, simple_network):
        """Test the per-layer description."""
        assert simple_network.architecture == [
            {'inputSize': 3, 'outputSize': 4, 'activation': 'tanh',
             'learningRate': config.DEFAULT_LEARNING_RATE},
            {'inputSize': 4, 'outputSize': 2, 'activation': 'sigmoid',
             'learningRate': 0.2},
        ]


@pytest.mark.unit
class TestPredictAndTrain:
    """Test inference and single-sample training."""

    def test_predict_matches_manual_forward(self, simple_network):
        """Test that predict chains every layer's forward pass."""
        inputs = [0.2, -0.4, 0.9]
        expected = Matrix.from_array(inputs)
        for layer in simple_network.layers:
            expected = layer.evaluate(expected).outputs

        assert simple_network.predict(inputs) == expected.to_array()

    def test_predict_does_not_train(self, simple_network):
        """Test that predict leaves weights untouched."""
        before = [layer.weights.copy() for layer in simple_network]

        simple_network.predict([1, 2, 3])

        assert [layer.weights for layer in simple_network] == before

    def test_predict_wrong_input_length(self, simple_network):
        """Test that the input length must match the first layer."""
        with pytest.raises(DimensionMismatchError):
            simple_network.predict([1, 2])

    def test_train_returns_pre_update_prediction(self, simple_network):
        """Test that train reports the prediction made before updating."""
        inputs, targets = [0.5, 0.1, -0.3], [1, 0]
        before = simple_network.predict(inputs)

        result = simple_network.train(inputs, targets)

        assert result == before
        assert simple_network.predict(inputs) != before

    def test_train_moves_toward_target(self, simple_network):
        """Test that repeated training reduces the error on one sample."""
        inputs, targets = [0.5, 0.1, -0.3], [1.0, 0.0]

        def error():
            outputs = simple_network.predict(inputs)
            return sum((t - o) ** 2 for t, o in zip(targets, outputs))

        start = error()
        for _ in range(200):
            simple_network.train(inputs, targets)

        assert error() < start

    def test_train_updates_every_layer(self, simple_network):
        """Test that the error reaches the first layer."""
        before = [layer.weights.copy() for layer in simple_network]

        simple_network.train([0.5, 0.1, -0.3], [1, 0])

        for layer, weights in zip(simple_network, before):
            assert layer.weights != weights

    def test_train_matches_layerwise_backward(self):
        """Test that train threads errors from the last layer to the first."""
        set_seed(21)
        net = LayeredNeuralNetwork.from_specs([(2, 3, 'sigmoid'), (3, 1, 'tanh')])
        twin = LayeredNeuralNetwork.deserialize(net.serialize())

        net.train([0.3, 0.7], [0.5])

        first, second = twin.layers
        hidden = first.forward(Matrix.from_array([0.3, 0.7]))
        output = second.forward(hidden)
        errors = Matrix.from_array([0.5]).subtract(output)
        first.backward(second.backward(errors))

        assert net.layers[0].weights == first.weights
        assert net.layers[1].weights == second.weights

    def test_train_wrong_target_length(self, simple_network):
        """Test that the target length must match the last layer."""
        with pytest.raises(DimensionMismatchError):
            simple_network.train([1, 2, 3], [1])

    def test_same_seed_same_training(self):
        """Test that training is reproducible from a seed."""
        results = []
        for _ in range(2):
            set_seed(99)
            net = LayeredNeuralNetwork.from_specs(XOR_SPECS)
            for _ in range(20):
                for inputs, targets in XOR_SAMPLES:
                    net.train(inputs, targets)
            results.append([net.predict(inputs) for inputs, _ in XOR_SAMPLES])

        assert results[0] == results[1]


@pytest.mark.unit
class TestNetworkSerialization:
    """Test network record trees."""

    def test_serialized_layout(self, simple_network):
        """Test that the network is a list of layer records."""
        records = json.loads(simple_network.serialize())

        assert isinstance(records, list)
        assert len(records) == 2
        assert set(records[0]) == {
            'inputSize', 'outputSize', 'activation', 'learningRate',
            'weights', 'bias'
        }

    def test_round_trip_predictions(self, simple_network):
        """Test that a restored network predicts identically."""
        simple_network.train([0.1, 0.2, 0.3], [0, 1])

        restored = LayeredNeuralNetwork.deserialize(simple_network.serialize())

        assert restored.sizes == simple_network.sizes
        assert restored.architecture == simple_network.architecture
        for original, copy in zip(simple_network, restored):
            assert copy.weights == original.weights
            assert copy.bias == original.bias
        assert restored.predict([0.4, 0.5, 0.6]) == simple_network.predict([0.4, 0.5, 0.6])

    def test_round_trip_from_records(self, simple_network):
        """Test that decoded records are accepted."""
        restored = LayeredNeuralNetwork.deserialize(simple_network.to_records())

        assert restored.to_records() == simple_network.to_records()

    def test_nested_layer_strings(self, simple_network):
        """Test records whose layers are themselves JSON strings."""
        nested = json.dumps([layer.serialize() for layer in simple_network])

        restored = LayeredNeuralNetwork.deserialize(nested)

        assert restored.to_records() == simple_network.to_records()

    @pytest.mark.parametrize("data", [
        '{"layers": []}',
        '[]',
        'not json',
    ])
    def test_malformed_network(self, data):
        """Test that invalid network records fail fast."""
        with pytest.raises(MalformedRecordError):
            LayeredNeuralNetwork.deserialize(data)

    def test_unchained_layers_rejected(self):
        """Test that restored layers must chain."""
        records = [Layer(2, 3, 'relu').to_dict(), Layer(2, 1, 'relu').to_dict()]

        with pytest.raises(MalformedRecordError):
            LayeredNeuralNetwork.deserialize(records)


@pytest.mark.integration
class TestXorConvergence:
    """End-to-end training of the 2-8-8-8-1 XOR network."""

    def test_xor_converges(self):
        """Test that the network seeded with 42 fits at least 3 of the 4 XOR pairs."""
        set_seed(42)
        net = LayeredNeuralNetwork.from_specs(XOR_SPECS)
        for _ in range(10000):
            for inputs, targets in XOR_SAMPLES:
                net.train(inputs, targets)

        close = sum(
            abs(net.predict(inputs)[0] - targets[0]) < 0.1
            for inputs, targets in XOR_SAMPLES
        )
        assert close >= 3
        assert np.isfinite(net.predict([0, 1])).all()
