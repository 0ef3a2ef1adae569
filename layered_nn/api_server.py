"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API for building, training and persisting layered
neural networks.

This module provides endpoints for:
- Creating networks from per-layer descriptions
- Training networks on caller-supplied samples, one sample at a time
- Running predictions
- Persisting networks to/from SQLite database

Each in-memory network is guarded by its own lock, since a layer keeps
forward state between its forward and backward passes and must not be
driven by two requests at once.
"""

import os
import sys
import uuid
import logging
import threading
from typing import Dict, Any, List, Tuple

from flask import Flask, request, jsonify
from flask_cors import CORS

from layered_nn import config
from layered_nn.exceptions import NetworkError
from layered_nn.layer import Layer
from layered_nn.matrix import Matrix, set_seed
from layered_nn.network import LayeredNeuralNetwork
from layered_nn.model_persistence import (
    save_network,
    load_network,
    list_saved_networks,
    delete_network
)

# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('FLASK_ENV') == 'production'

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # In production, silence the request log but keep our logs visible
    if is_production:
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('layered_nn').setLevel(logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})  # Allow requests from any origin
app.config['MODEL_DIR'] = config.MODEL_DIR

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Networks currently loaded in memory: {network_id: network_info}
active_networks: Dict[str, Dict[str, Any]] = {}

# Guards active_networks and the shared random generator during creation
_registry_lock = threading.Lock()


def _register(network_id: str, net: LayeredNeuralNetwork,
              trained: bool = False, accuracy: Any = None) -> None:
    with _registry_lock:
        active_networks[network_id] = {
            'network': net,
            'lock': threading.Lock(),
            'trained': trained,
            'accuracy': accuracy
        }


def _describe(network_id: str, info: Dict[str, Any]) -> Dict[str, Any]:
    net = info['network']
    return {
        'network_id': network_id,
        'sizes': net.sizes,
        'architecture': net.architecture,
        'trained': info['trained'],
        'accuracy': info['accuracy']
    }


def reload_saved_networks() -> None:
    """
    Reload all saved networks from the database into memory.

    Called at startup to restore networks that were saved before the
    application was restarted.
    """
    saved_networks = list_saved_networks(app.config['MODEL_DIR'])

    if not saved_networks:
        logger.info("No saved networks to reload")
        return

    loaded_count = 0
    for net_info in saved_networks:
        network_id = net_info['network_id']
        net = load_network(network_id, app.config['MODEL_DIR'])
        if net is None:
            logger.warning(f"Failed to load network {network_id}")
            continue
        _register(network_id, net, net_info['trained'], net_info['accuracy'])
        loaded_count += 1

    logger.info(f"Reloaded {loaded_count} network(s) from database")


# ============================================================================
# REQUEST PARSING
# ============================================================================

def parse_layers(layer_data: Any) -> List[Layer]:
    """
    Build layers from request records.

    Args:
        layer_data: List of {inputSize, outputSize, activation, learningRate?}

    Returns:
        Constructed layers

    Raises:
        ValueError: If the list or any record is invalid
    """
    if not isinstance(layer_data, list) or not layer_data:
        raise ValueError("layers must be a non-empty list")

    layers = []
    for i, record in enumerate(layer_data):
        if not isinstance(record, dict):
            raise ValueError(f"layers[{i}] must be an object")
        missing = [key for key in ('inputSize', 'outputSize', 'activation')
                   if key not in record]
        if missing:
            raise ValueError(f"layers[{i}] is missing {', '.join(missing)}")
        layers.append(Layer(
            record['inputSize'],
            record['outputSize'],
            record['activation'],
            learning_rate=record.get('learningRate')
        ))
    return layers


def parse_samples(
    sample_data: Any,
    sizes: List[int]
) -> List[Tuple[List[float], List[float]]]:
    """
    Extract (input, target) pairs from a request's sample list.

    Every sample is checked against the network's input and output sizes
    before any of them is trained on, so a bad sample leaves the weights
    untouched.

    Raises:
        ValueError: If a sample is missing, has the wrong length or holds
            a value that is not a number
    """
    if not isinstance(sample_data, list) or not sample_data:
        raise ValueError("samples must be a non-empty list")

    samples = []
    for i, sample in enumerate(sample_data):
        if not isinstance(sample, dict) or 'input' not in sample or 'target' not in sample:
            raise ValueError(f"samples[{i}] must have 'input' and 'target'")
        for key, size in (('input', sizes[0]), ('target', sizes[-1])):
            values = sample[key]
            if not isinstance(values, list):
                raise ValueError(f"samples[{i}].{key} must be a list of numbers")
            try:
                Matrix.from_array(values)
            except (ValueError, TypeError) as e:
                raise ValueError(f"samples[{i}].{key}: {e}") from e
            if len(values) != size:
                raise ValueError(
                    f"samples[{i}].{key} must have {size} values, got {len(values)}"
                )
        samples.append((sample['input'], sample['target']))
    return samples


def _not_found(network_id: str, action: str):
    logger.warning(f"{action} requested for non-existent network: {network_id}")
    return jsonify({'error': 'Network not found'}), 404


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """Return server status and statistics."""
    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks)
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create a new neural network.

    Request body:
        {
            'layers': [
                {'inputSize': 2, 'outputSize': 8, 'activation': 'sigmoid'},
                {'inputSize': 8, 'outputSize': 1, 'activation': 'relu',
                 'learningRate': 0.05}
            ],
            'seed': 42  # optional, reseeds weight initialization
        }

    Returns:
        JSON with network_id, sizes, architecture and status
    """
    data = request.get_json(silent=True) or {}
    seed = data.get('seed')

    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int) or seed < 0):
        return jsonify({'error': 'seed must be a non-negative integer'}), 400

    network_id = str(uuid.uuid4())

    try:
        with _registry_lock:
            if seed is not None:
                set_seed(seed)
            net = LayeredNeuralNetwork(parse_layers(data.get('layers')))
    except (ValueError, TypeError) as e:
        logger.warning(f"Invalid architecture requested: {e}")
        return jsonify({'error': f'Invalid architecture: {e}'}), 400

    _register(network_id, net)
    logger.info(f"Created network {network_id} with sizes {net.sizes}")

    return jsonify({
        'network_id': network_id,
        'sizes': net.sizes,
        'architecture': net.architecture,
        'status': 'created'
    }), 201


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List networks in memory plus saved networks not yet loaded."""
    in_memory = [_describe(nid, info) for nid, info in list(active_networks.items())]

    saved_only = [
        {
            'network_id': saved['network_id'],
            'sizes': saved['sizes'],
            'architecture': saved['architecture'],
            'trained': saved['trained'],
            'accuracy': saved['accuracy'],
            'status': 'saved'
        }
        for saved in list_saved_networks(app.config['MODEL_DIR'])
        if saved['network_id'] not in active_networks
    ]

    logger.debug(f"Listing networks: {len(in_memory)} in memory, {len(saved_only)} saved")
    return jsonify({'networks': in_memory + saved_only}), 200


@app.route('/api/networks/<network_id>/predict', methods=['POST'])
def predict(network_id: str):
    """
    Run a forward pass.

    Request body:
        {'input': [0.0, 1.0]}

    Returns:
        JSON with the output vector
    """
    info = active_networks.get(network_id)
    if info is None:
        return _not_found(network_id, 'Prediction')

    data = request.get_json(silent=True) or {}
    inputs = data.get('input')
    if not isinstance(inputs, list):
        return jsonify({'error': 'input must be a list of numbers'}), 400

    try:
        with info['lock']:
            output = info['network'].predict(inputs)
    except (ValueError, TypeError) as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({'network_id': network_id, 'output': output}), 200


@app.route('/api/networks/<network_id>/train', methods=['POST'])
def train_network(network_id: str):
    """
    Train a network on the given samples.

    Request body:
        {
            'samples': [{'input': [0, 1], 'target': [1]}, ...],
            'epochs': 100  # optional, defaults to 1
        }

    Returns:
        JSON with the mean squared error of the final epoch, measured on
        the predictions made before each sample's update
    """
    info = active_networks.get(network_id)
    if info is None:
        return _not_found(network_id, 'Training')

    data = request.get_json(silent=True) or {}
    epochs = data.get('epochs', 1)

    if isinstance(epochs, bool) or not isinstance(epochs, int) or epochs < 1:
        return jsonify({'error': 'epochs must be a positive integer'}), 400

    try:
        samples = parse_samples(data.get('samples'), info['network'].sizes)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    logger.info(
        f"Training network {network_id}: epochs={epochs}, samples={len(samples)}"
    )

    net = info['network']
    try:
        with info['lock']:
            for _ in range(epochs):
                squared_error = 0.0
                count = 0
                for inputs, targets in samples:
                    outputs = net.train(inputs, targets)
                    squared_error += sum((t - o) ** 2 for t, o in zip(targets, outputs))
                    count += len(outputs)
            info['trained'] = True
    except (ValueError, TypeError) as e:
        logger.warning(f"Training failed for network {network_id}: {e}")
        return jsonify({'error': str(e)}), 400

    loss = squared_error / count
    logger.info(f"Training completed for network {network_id}: loss {loss:.6f}")

    return jsonify({
        'network_id': network_id,
        'epochs': epochs,
        'samples': len(samples),
        'loss': loss
    }), 200


@app.route('/api/networks/<network_id>/export', methods=['GET'])
def export_network(network_id: str):
    """Return the serialized layer records of a network."""
    info = active_networks.get(network_id)
    if info is None:
        return _not_found(network_id, 'Export')

    with info['lock']:
        records = info['network'].to_records()
    return jsonify({'network_id': network_id, 'layers': records}), 200


@app.route('/api/networks/<network_id>/save', methods=['POST'])
def save_network_endpoint(network_id: str):
    """
    Persist an in-memory network.

    Request body (optional):
        {'accuracy': 0.75}
    """
    info = active_networks.get(network_id)
    if info is None:
        return _not_found(network_id, 'Save')

    data = request.get_json(silent=True) or {}
    accuracy = data.get('accuracy', info['accuracy'])

    with info['lock']:
        saved = save_network(
            info['network'],
            network_id,
            model_dir=app.config['MODEL_DIR'],
            trained=info['trained'],
            accuracy=accuracy
        )

    if not saved:
        return jsonify({'error': 'Failed to save network'}), 400

    info['accuracy'] = accuracy
    return jsonify({'network_id': network_id, 'status': 'saved'}), 200


@app.route('/api/networks/load/<network_id>', methods=['POST'])
def load_network_endpoint(network_id: str):
    """Load a saved network into memory."""
    net = load_network(network_id, app.config['MODEL_DIR'])
    if net is None:
        return _not_found(network_id, 'Load')

    saved = next(
        (s for s in list_saved_networks(app.config['MODEL_DIR'])
         if s['network_id'] == network_id),
        {'trained': False, 'accuracy': None}
    )
    _register(network_id, net, saved['trained'], saved['accuracy'])
    logger.info(f"Loaded network {network_id} into memory")

    return jsonify(dict(_describe(network_id, active_networks[network_id]),
                        status='loaded')), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from memory and from the database."""
    with _registry_lock:
        deleted_from_memory = active_networks.pop(network_id, None) is not None
    deleted_from_disk = delete_network(network_id, app.config['MODEL_DIR'])

    if not deleted_from_memory and not deleted_from_disk:
        return _not_found(network_id, 'Delete')

    logger.info(f"Deleted network {network_id}: memory={deleted_from_memory}, disk={deleted_from_disk}")
    return jsonify({
        'network_id': network_id,
        'deleted_from_memory': deleted_from_memory,
        'deleted_from_disk': deleted_from_disk
    }), 200


@app.errorhandler(NetworkError)
def handle_network_error(error: NetworkError):
    """Report engine errors that escaped a route as bad requests."""
    logger.warning(f"Network error: {error}")
    return jsonify({'error': str(error)}), 400


# ============================================================================
# SERVER STARTUP
# ============================================================================

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8000))
    is_production = os.getenv('FLASK_ENV') == 'production'

    reload_saved_networks()
    logger.info(f"Starting server at http://localhost:{port}/")

    try:
        app.run(
            host='0.0.0.0',
            port=port,
            debug=not is_production,
            use_reloader=False,
            threaded=True
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        else:
            raise
