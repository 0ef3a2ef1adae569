"""
test_api_server.py
~~~~~~~~~~~~~~~~~~

Tests for the REST API using the Flask test client.
"""

import pytest

from layered_nn import api_server

SMALL_LAYERS = [
    {'inputSize': 2, 'outputSize': 4, 'activation': 'sigmoid'},
    {'inputSize': 4, 'outputSize': 1, 'activation': 'sigmoid', 'learningRate': 0.5},
]

OR_SAMPLES = [
    {'input': [0, 0], 'target': [0]},
    {'input': [0, 1], 'target': [1]},
    {'input': [1, 0], 'target': [1]},
    {'input': [1, 1], 'target': [1]},
]


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Test client with an empty registry and a temporary model directory."""
    monkeypatch.setitem(api_server.app.config, 'MODEL_DIR', str(tmp_path / "models"))
    monkeypatch.setitem(api_server.app.config, 'TESTING', True)
    api_server.active_networks.clear()
    with api_server.app.test_client() as test_client:
        yield test_client
    api_server.active_networks.clear()


@pytest.fixture
def network_id(client):
    """Create a small network and return its id."""
    response = client.post('/api/networks', json={'layers': SMALL_LAYERS, 'seed': 42})
    assert response.status_code == 201
    return response.get_json()['network_id']


@pytest.mark.unit
class TestNetworkEndpoints:
    """Test creation, listing and deletion."""

    def test_status(self, client):
        """Test the status endpoint."""
        response = client.get('/api/status')

        assert response.status_code == 200
        assert response.get_json() == {'status': 'online', 'active_networks': 0}

    def test_create_network(self, client):
        """Test that a network is created from layer records."""
        response = client.post('/api/networks', json={'layers': SMALL_LAYERS})
        body = response.get_json()

        assert response.status_code == 201
        assert body['sizes'] == [2, 4, 1]
        assert body['architecture'][1]['learningRate'] == 0.5
        assert body['network_id'] in api_server.active_networks

    def test_create_with_seed_is_reproducible(self, client):
        """Test that the same seed yields the same weights."""
        first = client.post('/api/networks', json={'layers': SMALL_LAYERS, 'seed': 5})
        second = client.post('/api/networks', json={'layers': SMALL_LAYERS, 'seed': 5})

        first_export = client.get(f"/api/networks/{first.get_json()['network_id']}/export")
        second_export = client.get(f"/api/networks/{second.get_json()['network_id']}/export")

        assert first_export.get_json()['layers'] == second_export.get_json()['layers']

    @pytest.mark.parametrize("body", [
        {},
        {'layers': []},
        {'layers': [{'inputSize': 2, 'outputSize': 3}]},
        {'layers': [{'inputSize': 2, 'outputSize': 3, 'activation': 'softmax'}]},
        {'layers': [
            {'inputSize': 2, 'outputSize': 3, 'activation': 'relu'},
            {'inputSize': 4, 'outputSize': 1, 'activation': 'relu'},
        ]},
        {'layers': SMALL_LAYERS, 'seed': -1},
    ])
    def test_create_invalid(self, client, body):
        """Test that invalid architectures are rejected with 400."""
        response = client.post('/api/networks', json=body)

        assert response.status_code == 400
        assert 'error' in response.get_json()

    def test_list_networks(self, client, network_id):
        """Test that in-memory networks are listed."""
        response = client.get('/api/networks')
        networks = response.get_json()['networks']

        assert response.status_code == 200
        assert [net['network_id'] for net in networks] == [network_id]

    def test_delete_network(self, client, network_id):
        """Test deleting an in-memory network."""
        response = client.delete(f'/api/networks/{network_id}')

        assert response.status_code == 200
        assert response.get_json()['deleted_from_memory'] is True
        assert network_id not in api_server.active_networks

    def test_delete_unknown(self, client):
        """Test deleting a network that does not exist."""
        assert client.delete('/api/networks/missing').status_code == 404


@pytest.mark.unit
class TestPredictAndTrainEndpoints:
    """Test inference and training over HTTP."""

    def test_predict(self, client, network_id):
        """Test that predict returns the network output."""
        response = client.post(f'/api/networks/{network_id}/predict', json={'input': [0, 1]})
        expected = api_server.active_networks[network_id]['network'].predict([0, 1])

        assert response.status_code == 200
        assert response.get_json()['output'] == expected

    def test_predict_wrong_length(self, client, network_id):
        """Test that a wrong input length is a bad request."""
        response = client.post(f'/api/networks/{network_id}/predict', json={'input': [0, 1, 2]})

        assert response.status_code == 400

    def test_predict_unknown(self, client):
        """Test predicting with an unknown network."""
        response = client.post('/api/networks/missing/predict', json={'input': [0, 1]})

        assert response.status_code == 404

    def test_train_reduces_loss(self, client, network_id):
        """Test that training lowers the reported loss."""
        first = client.post(
            f'/api/networks/{network_id}/train',
            json={'samples': OR_SAMPLES, 'epochs': 1}
        ).get_json()
        later = client.post(
            f'/api/networks/{network_id}/train',
            json={'samples': OR_SAMPLES, 'epochs': 500}
        ).get_json()

        assert first['samples'] == 4
        assert later['epochs'] == 500
        assert later['loss'] < first['loss']
        assert api_server.active_networks[network_id]['trained'] is True

    @pytest.mark.parametrize("body", [
        {'samples': OR_SAMPLES, 'epochs': 0},
        {'samples': OR_SAMPLES, 'epochs': 'ten'},
        {'samples': []},
        {'samples': [{'input': [0, 1]}]},
        {'samples': [{'input': [0, 1], 'target': [1, 0]}]},
    ])
    def test_train_invalid(self, client, network_id, body):
        """Test that invalid training requests are rejected."""
        response = client.post(f'/api/networks/{network_id}/train', json=body)

        assert response.status_code == 400

    @pytest.mark.parametrize("body", [
        {'samples': [{'input': [0, 1], 'target': [None]}]},
        {'samples': [{'input': [0, 'a'], 'target': [1]}]},
        {'samples': [OR_SAMPLES[0], {'input': [1, 1], 'target': [None]}]},
        {'samples': [OR_SAMPLES[0], {'input': [1], 'target': [1]}]},
    ])
    def test_bad_sample_leaves_network_unchanged(self, client, network_id, body):
        """Test that a rejected training request does not touch the weights."""
        predict_url = f'/api/networks/{network_id}/predict'
        before = client.post(predict_url, json={'input': [0, 1]}).get_json()['output']

        response = client.post(f'/api/networks/{network_id}/train', json=body)
        after = client.post(predict_url, json={'input': [0, 1]})

        assert response.status_code == 400
        assert after.status_code == 200
        assert after.get_json()['output'] == before
        assert api_server.active_networks[network_id]['trained'] is False

    def test_predict_non_numeric_input(self, client, network_id):
        """Test that null inputs are a bad request rather than NaN outputs."""
        response = client.post(f'/api/networks/{network_id}/predict', json={'input': [0, None]})

        assert response.status_code == 400


@pytest.mark.integration
class TestPersistenceEndpoints:
    """Test saving and loading through the API."""

    def test_save_and_load(self, client, network_id):
        """Test that a saved network can be reloaded after eviction."""
        client.post(f'/api/networks/{network_id}/train', json={'samples': OR_SAMPLES, 'epochs': 10})
        before = client.post(f'/api/networks/{network_id}/predict', json={'input': [1, 0]}).get_json()

        saved = client.post(f'/api/networks/{network_id}/save', json={'accuracy': 0.5})
        assert saved.status_code == 200

        api_server.active_networks.clear()
        listed = client.get('/api/networks').get_json()['networks']
        assert listed[0]['status'] == 'saved'
        assert listed[0]['trained'] is True

        loaded = client.post(f'/api/networks/load/{network_id}')
        assert loaded.status_code == 200
        assert loaded.get_json()['accuracy'] == 0.5

        after = client.post(f'/api/networks/{network_id}/predict', json={'input': [1, 0]}).get_json()
        assert after['output'] == before['output']

    def test_save_invalid_accuracy(self, client, network_id):
        """Test that an out-of-range accuracy is refused."""
        response = client.post(f'/api/networks/{network_id}/save', json={'accuracy': 2})

        assert response.status_code == 400

    @pytest.mark.parametrize("accuracy", ['high', True, [0.5]])
    def test_save_non_numeric_accuracy(self, client, network_id, accuracy):
        """Test that a non-numeric accuracy is a bad request."""
        response = client.post(f'/api/networks/{network_id}/save', json={'accuracy': accuracy})

        assert response.status_code == 400
        assert api_server.active_networks[network_id]['accuracy'] is None

    def test_load_unknown(self, client):
        """Test loading a network that was never saved."""
        assert client.post('/api/networks/load/missing').status_code == 404

    def test_delete_removes_saved_copy(self, client, network_id):
        """Test that delete also removes the stored network."""
        client.post(f'/api/networks/{network_id}/save')

        response = client.delete(f'/api/networks/{network_id}')

        assert response.get_json()['deleted_from_disk'] is True
        assert client.get('/api/networks').get_json()['networks'] == []
