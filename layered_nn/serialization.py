"""
serialization.py
~~~~~~~~~~~~~~~~

JSON helpers shared by the matrix, layer and network record codecs.
"""

import json
from typing import Any

import numpy as np

from layered_nn.exceptions import MalformedRecordError


class NetworkEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles numpy arrays and scalars."""

    def default(self, obj: Any) -> Any:
        """
        Convert numpy values to plain Python values for JSON serialization.

        Args:
            obj: Object to serialize

        Returns:
            JSON-serializable representation
        """
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.generic):
            return obj.item()
        return super().default(obj)


def dumps(record: Any) -> str:
    """Encode a record tree as a JSON string."""
    return json.dumps(record, cls=NetworkEncoder)


def loads(data: Any, kind: str) -> Any:
    """
    Decode a record that may still be in its string encoding.

    Args:
        data: JSON string/bytes, or an already decoded record
        kind: Record name used in error messages

    Returns:
        The decoded record

    Raises:
        MalformedRecordError: If the bytes are not UTF-8 or the string is
            not valid JSON
    """
    if isinstance(data, (bytes, bytearray)):
        try:
            data = data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise MalformedRecordError(f"Invalid {kind} encoding: {e}") from e
    if isinstance(data, str):
        try:
            return json.loads(data)
        except json.JSONDecodeError as e:
            raise MalformedRecordError(f"Invalid {kind} JSON: {e}") from e
    return data


def require_fields(record: Any, fields, kind: str) -> None:
    """Raise MalformedRecordError unless record is a dict holding every field."""
    if not isinstance(record, dict):
        raise MalformedRecordError(
            f"{kind} record must be an object, got {type(record).__name__}"
        )
    missing = [field for field in fields if field not in record]
    if missing:
        raise MalformedRecordError(
            f"{kind} record is missing field(s): {', '.join(missing)}"
        )
