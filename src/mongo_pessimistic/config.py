"""
Configuration loading and component factories.

Settings come from a YAML file (MONGO_PESSIMISTIC_CONFIG_PATH, default
./config.yaml), with MONGODB_URI and MONGODB_DATABASE environment variables
taking precedence. A .env file is loaded first if present.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pymongo import MongoClient

from .locking import LockBackoff, MongoLock, MongoPessimisticLocking
from .queue import MongoTailingQueue
from .repo import MongoPessimisticRepo
from .serialization import get_serializer

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    'mongodb': {
        'uri': 'mongodb://localhost:27017',
        'database': 'mongo_pessimistic',
        'server_selection_timeout_ms': 5000,
    },
    'locking': {
        'collection': 'locks',
        'retry_interval_ms': 10,
        'max_retry_interval_ms': 200,
        'backoff_multiplier': 2.0,
    },
    'queue': {
        'max_size': 1000,
        'assumed_max_doc_size': 1024 * 1024,
        'batch_size': 100,
        'failure_backoff_ms': 500,
        'max_await_time_ms': 1000,
        'serializer': 'pickle',
    },
    'repo': {
        'serializer': 'pickle',
    },
    'logging': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """Runtime configuration for locks, repositories and queues."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Load configuration.

        Args:
            config_path: Path to YAML file (overrides MONGO_PESSIMISTIC_CONFIG_PATH)
        """
        load_dotenv()
        self.config_path = config_path or os.environ.get("MONGO_PESSIMISTIC_CONFIG_PATH", "./config.yaml")
        self.config = _merge(DEFAULT_CONFIG, self._load_file(self.config_path))
        self._apply_env_overrides()
        self._client = None

    @staticmethod
    def _load_file(path: str) -> Dict[str, Any]:
        config_file = Path(path)
        if not config_file.exists():
            logger.debug(f"Config file {path} not found, using defaults")
            return {}

        with open(config_file, 'r') as f:
            loaded = yaml.safe_load(f) or {}

        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {path} must contain a mapping, got {type(loaded).__name__}")
        return loaded

    def _apply_env_overrides(self) -> None:
        env_mappings = {
            'uri': os.environ.get('MONGODB_URI'),
            'database': os.environ.get('MONGODB_DATABASE'),
        }
        self.config['mongodb'].update({k: v for k, v in env_mappings.items() if v})

    def get_mongodb_config(self) -> Dict[str, Any]:
        return self.config['mongodb']

    def get_locking_config(self) -> Dict[str, Any]:
        return self.config['locking']

    def get_queue_config(self) -> Dict[str, Any]:
        return self.config['queue']

    def configure_logging(self) -> None:
        """Apply the logging section with logging.basicConfig."""
        log_config = self.config['logging']
        logging.basicConfig(
            level=getattr(logging, str(log_config.get('level', 'INFO')).upper()),
            format=log_config.get('format')
        )

    def get_mongo_client(self):
        """Return a shared MongoClient, connecting lazily."""
        if self._client is None:
            mongo = self.get_mongodb_config()
            self._client = MongoClient(
                mongo['uri'],
                serverSelectionTimeoutMS=mongo.get('server_selection_timeout_ms', 5000)
            )
            logger.info(f"Created MongoDB client for database {mongo['database']}")
        return self._client

    def get_database(self):
        return self.get_mongo_client()[self.get_mongodb_config()['database']]

    def create_locking(self):
        locking = self.get_locking_config()
        backoff = LockBackoff(
            initial_interval_ms=locking['retry_interval_ms'],
            max_interval_ms=locking['max_retry_interval_ms'],
            multiplier=locking['backoff_multiplier']
        )
        return MongoPessimisticLocking(self.get_database()[locking['collection']], backoff=backoff)

    def create_lock(self, key: str, token: Optional[str] = None):
        return MongoLock(self.create_locking(), key, token)

    def create_repo(self, name: str, owner: Optional[str] = None):
        return MongoPessimisticRepo(
            self.get_database()[name],
            self.create_locking(),
            owner=owner,
            serializer=get_serializer(self.config['repo']['serializer'])
        )

    def create_queue(self, name: str, max_size: Optional[int] = None):
        queue = self.get_queue_config()
        return MongoTailingQueue(
            self.get_database(),
            name,
            max_size=max_size or queue['max_size'],
            serializer=get_serializer(queue['serializer']),
            assumed_max_doc_size=queue['assumed_max_doc_size'],
            batch_size=queue['batch_size'],
            failure_backoff_ms=queue['failure_backoff_ms'],
            max_await_time_ms=queue['max_await_time_ms']
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
