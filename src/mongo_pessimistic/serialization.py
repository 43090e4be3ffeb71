"""
Object-to-bytes codecs used for queue entries and repository records.
"""

import json
import pickle
from typing import Any


class PickleSerializer:
    """Serializes arbitrary picklable Python objects (the default codec)."""

    def __init__(self, protocol: int = pickle.HIGHEST_PROTOCOL):
        self.protocol = protocol

    def dumps(self, obj: Any) -> bytes:
        return pickle.dumps(obj, protocol=self.protocol)

    def loads(self, data: bytes) -> Any:
        return pickle.loads(data)


class JsonSerializer:
    """Serializes JSON-compatible values as UTF-8 text."""

    def dumps(self, obj: Any) -> bytes:
        return json.dumps(obj, sort_keys=True).encode('utf-8')

    def loads(self, data: bytes) -> Any:
        return json.loads(bytes(data).decode('utf-8'))


def get_serializer(name: str):
    """
    Look up a serializer by name.

    Args:
        name: 'pickle' or 'json'

    Returns:
        Serializer instance
    """
    serializers = {
        'pickle': PickleSerializer,
        'json': JsonSerializer,
    }
    try:
        return serializers[name.lower()]()
    except KeyError:
        raise ValueError(f"Unknown serializer: {name}. Expected one of {sorted(serializers)}")
