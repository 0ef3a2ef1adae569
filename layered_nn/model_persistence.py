"""
model_persistence.py
~~~~~~~~~~~~~~~~~~~~

SQLite storage for layered neural networks.

A network is stored as its JSON layer records, so whatever is loaded back
through ``LayeredNeuralNetwork.deserialize`` has exactly the weights that
were saved. The layer listing without weights is kept in its own column
for metadata queries.
"""

import numbers
import sqlite3
import json
import os
import logging
from typing import Optional, List, Dict, Any, Iterator
from contextlib import contextmanager

from layered_nn import config
from layered_nn.exceptions import MalformedRecordError
from layered_nn.network import LayeredNeuralNetwork
from layered_nn.serialization import NetworkEncoder

# Configure module logger
logger = logging.getLogger(__name__)

DB_FILENAME = 'networks.db'

_METADATA_COLUMNS = '''
    network_id, architecture, trained, accuracy, created_at, updated_at
'''


def _metadata(row: sqlite3.Row) -> Dict[str, Any]:
    """Turn a metadata row into a dict with sizes and parameter shapes."""
    layers = json.loads(row['architecture'])
    sizes = [layers[0]['inputSize']] + [layer['outputSize'] for layer in layers] if layers else []
    return {
        'network_id': row['network_id'],
        'architecture': layers,
        'sizes': sizes,
        'weights_shape': [[layer['outputSize'], layer['inputSize']] for layer in layers],
        'biases_shape': [[layer['outputSize'], 1] for layer in layers],
        'trained': bool(row['trained']),
        'accuracy': row['accuracy'],
        'created_at': row['created_at'],
        'updated_at': row['updated_at']
    }


class ModelDatabase:
    """
    One SQLite file holding the ``networks`` table.

    Each row keeps the serialized layer records, the layer listing used
    for metadata, a trained flag, an optional accuracy and timestamps.
    """

    def __init__(self, db_path: str = os.path.join('models', DB_FILENAME)):
        """
        Args:
            db_path: Location of the SQLite file; parent directories are
                created on demand
        """
        self.db_path = db_path
        parent = os.path.dirname(db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        self._create_tables()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection that commits on success and rolls back on error."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _create_tables(self) -> None:
        with self._connect() as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS networks (
                    network_id TEXT PRIMARY KEY,
                    architecture TEXT NOT NULL,
                    network_data TEXT NOT NULL,
                    trained INTEGER NOT NULL DEFAULT 0,
                    accuracy REAL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            conn.execute(
                'CREATE INDEX IF NOT EXISTS idx_networks_created '
                'ON networks(created_at DESC)'
            )

    def save_network_to_db(
        self,
        network: LayeredNeuralNetwork,
        network_id: str,
        trained: bool = True,
        accuracy: Optional[float] = None
    ) -> bool:
        """
        Insert or replace a network. Replacing keeps the original creation time.

        Args:
            network: Network to store
            network_id: Key of the stored row
            trained: Whether the network has been trained
            accuracy: Optional accuracy in [0.0, 1.0]

        Returns:
            bool: True once the row is written

        Raises:
            ValueError: If accuracy is not a number in [0.0, 1.0]
        """
        if accuracy is not None:
            if isinstance(accuracy, bool) or not isinstance(accuracy, numbers.Real):
                raise ValueError(f"Accuracy must be a number, got {accuracy!r}")
            if not 0.0 <= accuracy <= 1.0:
                raise ValueError(f"Accuracy must be between 0.0 and 1.0, got {accuracy}")
            accuracy = float(accuracy)

        row = (
            network_id,
            json.dumps(network.architecture, cls=NetworkEncoder),
            network.serialize(),
            int(bool(trained)),
            accuracy
        )
        with self._connect() as conn:
            conn.execute('''
                INSERT INTO networks
                    (network_id, architecture, network_data, trained, accuracy)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(network_id) DO UPDATE SET
                    architecture = excluded.architecture,
                    network_data = excluded.network_data,
                    trained = excluded.trained,
                    accuracy = excluded.accuracy,
                    updated_at = CURRENT_TIMESTAMP
            ''', row)

        logger.info(
            f"Stored network '{network_id}' (sizes={network.sizes}, "
            f"trained={trained}, accuracy={accuracy})"
        )
        return True

    def load_network_from_db(self, network_id: str) -> Optional[LayeredNeuralNetwork]:
        """
        Restore a stored network.

        Returns:
            The network, or None if the id is unknown

        Raises:
            MalformedRecordError: If the stored layer records are invalid
        """
        with self._connect() as conn:
            row = conn.execute(
                'SELECT network_data FROM networks WHERE network_id = ?',
                (network_id,)
            ).fetchone()

        if row is None:
            logger.warning(f"No stored network '{network_id}'")
            return None

        network = LayeredNeuralNetwork.deserialize(row['network_data'])
        logger.info(f"Restored network '{network_id}' with sizes {network.sizes}")
        return network

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        """Metadata of every stored network, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                f'SELECT {_METADATA_COLUMNS} FROM networks ORDER BY created_at DESC'
            ).fetchall()

        networks = [_metadata(row) for row in rows]
        logger.debug(f"Found {len(networks)} stored network(s)")
        return networks

    def get_network_metadata_from_db(self, network_id: str) -> Optional[Dict[str, Any]]:
        """Metadata of one network without restoring its layers."""
        with self._connect() as conn:
            row = conn.execute(
                f'SELECT {_METADATA_COLUMNS} FROM networks WHERE network_id = ?',
                (network_id,)
            ).fetchone()

        if row is None:
            logger.warning(f"No metadata for network '{network_id}'")
            return None
        return _metadata(row)

    def delete_network_from_db(self, network_id: str) -> bool:
        """
        Remove a stored network.

        Returns:
            bool: True if a row was removed
        """
        with self._connect() as conn:
            removed = conn.execute(
                'DELETE FROM networks WHERE network_id = ?', (network_id,)
            ).rowcount > 0

        if removed:
            logger.info(f"Removed stored network '{network_id}'")
        else:
            logger.warning(f"Nothing to remove for network '{network_id}'")
        return removed

    def delete_old_networks_from_db(self, days: float) -> int:
        """
        Remove networks created more than ``days`` days ago.

        Returns:
            int: Number of removed networks

        Raises:
            ValueError: If days is negative
        """
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        with self._connect() as conn:
            removed = conn.execute(
                "DELETE FROM networks "
                "WHERE julianday('now') - julianday(created_at) > ?",
                (days,)
            ).rowcount

        logger.info(f"Removed {removed} network(s) older than {days} day(s)")
        return removed


# Shared instance for the configured model directory
_default_db: Optional[ModelDatabase] = None


def _database(model_dir: Optional[str]) -> ModelDatabase:
    """Shared database for the configured directory, a new one otherwise."""
    global _default_db
    if model_dir is not None and model_dir != config.MODEL_DIR:
        return ModelDatabase(os.path.join(model_dir, DB_FILENAME))
    if _default_db is None:
        _default_db = ModelDatabase(os.path.join(config.MODEL_DIR, DB_FILENAME))
    return _default_db


def _valid_id(network_id: Any) -> bool:
    if isinstance(network_id, str) and network_id:
        return True
    logger.error(f"Invalid network_id {network_id!r}: expected a non-empty string")
    return False


def save_network(
    network: LayeredNeuralNetwork,
    network_id: str,
    model_dir: Optional[str] = None,
    trained: bool = True,
    accuracy: Optional[float] = None
) -> bool:
    """
    Store a network, logging instead of raising on failure.

    Args:
        network: Network to store
        network_id: Non-empty key for the network
        model_dir: Directory of the database, defaults to the configured one
        trained: Whether the network has been trained
        accuracy: Optional accuracy in [0.0, 1.0]

    Returns:
        bool: True if stored, False otherwise

    Example:
        >>> net = LayeredNeuralNetwork.from_specs([(2, 4, 'sigmoid'), (4, 1, 'relu')])
        >>> save_network(net, "xor", trained=False)
        True
    """
    if not _valid_id(network_id):
        return False

    try:
        return _database(model_dir).save_network_to_db(network, network_id, trained, accuracy)
    except ValueError as e:
        logger.error(f"Refused to store network '{network_id}': {e}")
    except sqlite3.Error as e:
        logger.error(f"Database error storing network '{network_id}': {e}")
    return False


def load_network(
    network_id: str,
    model_dir: Optional[str] = None
) -> Optional[LayeredNeuralNetwork]:
    """
    Restore a stored network.

    Returns:
        The network, or None if it is missing or unreadable
    """
    if not _valid_id(network_id):
        return None

    try:
        return _database(model_dir).load_network_from_db(network_id)
    except MalformedRecordError as e:
        logger.error(f"Stored network '{network_id}' is corrupt: {e}")
    except sqlite3.Error as e:
        logger.error(f"Database error restoring network '{network_id}': {e}")
    return None


def list_saved_networks(model_dir: Optional[str] = None) -> List[Dict[str, Any]]:
    """Metadata of every stored network, or an empty list on failure."""
    try:
        return _database(model_dir).list_networks_from_db()
    except sqlite3.Error as e:
        logger.error(f"Database error listing networks: {e}")
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        logger.error(f"Corrupt layer listing while listing networks: {e}")
    return []


def get_network_metadata(
    network_id: str,
    model_dir: Optional[str] = None
) -> Optional[Dict[str, Any]]:
    """
    Metadata of one stored network.

    Example:
        >>> metadata = get_network_metadata("xor")
        >>> metadata['sizes'] if metadata else None
        [2, 4, 1]
    """
    if not _valid_id(network_id):
        return None

    try:
        return _database(model_dir).get_network_metadata_from_db(network_id)
    except sqlite3.Error as e:
        logger.error(f"Database error reading metadata of '{network_id}': {e}")
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        logger.error(f"Corrupt layer listing for '{network_id}': {e}")
    return None


def delete_network(network_id: str, model_dir: Optional[str] = None) -> bool:
    """Remove a stored network; False if it is missing or on failure."""
    if not _valid_id(network_id):
        return False

    try:
        return _database(model_dir).delete_network_from_db(network_id)
    except sqlite3.Error as e:
        logger.error(f"Database error removing network '{network_id}': {e}")
    return False


def delete_old_networks(days: float = 2, model_dir: Optional[str] = None) -> int:
    """
    Remove networks created more than ``days`` days ago.

    Returns:
        int: Number removed, or -1 on a database error

    Raises:
        ValueError: If days is negative
    """
    if days < 0:
        raise ValueError(f"days must be non-negative, got {days}")

    try:
        return _database(model_dir).delete_old_networks_from_db(days)
    except sqlite3.Error as e:
        logger.error(f"Database error removing old networks: {e}")
    return -1
