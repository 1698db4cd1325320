# apps/board/backends.py

"""
Backend selector

Decides once per process which entity store implementation serves requests:

    UNCONFIGURED --(no MONGODB_URI or USE_MONGODB off)--> RELATIONAL_ONLY
    UNCONFIGURED --(ping ok)----------------------------> DOCUMENT_PREFERRED
    UNCONFIGURED --(connection error)-------------------> RELATIONAL_ONLY

The configuration is frozen when the app loads; the connection attempt
happens on first use so management commands and migrations never wait on
the document store.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from .stores.document import build_document_stores
from .stores.relational import build_relational_stores

logger = logging.getLogger(__name__)


class BackendState(Enum):
    UNCONFIGURED = 'unconfigured'
    RELATIONAL_ONLY = 'relational_only'
    DOCUMENT_PREFERRED = 'document_preferred'


@dataclass(frozen=True)
class BackendConfig:
    mongodb_uri: str = ''
    mongodb_name: str = 'kanban'
    use_mongodb: bool = True
    server_selection_timeout_ms: int = 5000
    use_transactions: bool = False

    @property
    def document_configured(self):
        return bool(self.mongodb_uri) and self.use_mongodb

    @classmethod
    def from_settings(cls, settings):
        return cls(
            mongodb_uri=getattr(settings, 'MONGODB_URI', '') or '',
            mongodb_name=getattr(settings, 'MONGODB_NAME', cls.mongodb_name),
            use_mongodb=getattr(settings, 'USE_MONGODB', True),
            server_selection_timeout_ms=getattr(
                settings, 'MONGODB_SERVER_SELECTION_TIMEOUT_MS', cls.server_selection_timeout_ms
            ),
            use_transactions=getattr(settings, 'MONGODB_USE_TRANSACTIONS', False),
        )


class BackendSelector:
    """Resolves the active backend once and hands out its stores"""

    def __init__(self, config, client_factory=MongoClient):
        self.config = config
        self._client_factory = client_factory
        self._lock = threading.Lock()
        self._state = BackendState.UNCONFIGURED
        self._stores = None
        self._client = None

    @property
    def state(self):
        return self._state

    @property
    def backend(self):
        return self._stores.backend if self._stores is not None else None

    def resolve(self):
        with self._lock:
            if self._state is BackendState.UNCONFIGURED:
                self._resolve()
        return self._state

    def _resolve(self):
        if not self.config.document_configured:
            logger.info('No document store configured, using the relational backend')
            self._settle(BackendState.RELATIONAL_ONLY, build_relational_stores())
            return

        client = None
        try:
            client = self._client_factory(
                self.config.mongodb_uri,
                serverSelectionTimeoutMS=self.config.server_selection_timeout_ms,
                tz_aware=True,
            )
            client.admin.command('ping')
            stores = build_document_stores(
                client,
                self.config.mongodb_name,
                use_transactions=self.config.use_transactions,
            )
        except PyMongoError as exc:
            logger.error('Document store unavailable (%s), falling back to the relational backend', exc)
            if client is not None:
                client.close()
            self._settle(BackendState.RELATIONAL_ONLY, build_relational_stores())
            return

        self._client = client
        logger.info('Connected to document store %r', self.config.mongodb_name)
        self._settle(BackendState.DOCUMENT_PREFERRED, stores)

    def _settle(self, state, stores):
        self._state = state
        self._stores = stores
        logger.info('Backend selected: %s (%s)', stores.backend, state.value)

    def stores(self):
        if self._state is BackendState.UNCONFIGURED:
            self.resolve()
        return self._stores

    def ping(self):
        """Round trip to the document store; a no-op on the relational backend"""
        if self._client is not None:
            self._client.admin.command('ping')

    def close(self):
        if self._client is not None:
            self._client.close()
            self._client = None


def get_selector():
    from django.apps import apps
    return apps.get_app_config('board').selector


def get_stores():
    """Stores of the active backend, for code running outside a request"""
    return get_selector().stores()
