"""Shared fixtures: store bundles for both backends and an API client per backend."""

import json

import mongomock
import pytest
from django.apps import apps
from django.test import Client

from apps.board.backends import BackendConfig, BackendSelector
from apps.board.stores.document import build_document_stores
from apps.board.stores.relational import build_relational_stores

TEST_MONGODB_NAME = 'kanban_test'


@pytest.fixture
def mongo_client():
    client = mongomock.MongoClient(tz_aware=True)
    yield client
    client.drop_database(TEST_MONGODB_NAME)


@pytest.fixture
def relational_stores(db):
    return build_relational_stores()


@pytest.fixture
def document_stores(mongo_client):
    return build_document_stores(mongo_client, TEST_MONGODB_NAME)


@pytest.fixture(params=['relational', 'document'])
def stores(request, db):
    """The same store contract, once per backend"""
    return request.getfixturevalue(f'{request.param}_stores')


@pytest.fixture(params=['relational', 'document'])
def backend(request, db, monkeypatch):
    """Active backend for HTTP tests, resolved through the real selector"""
    if request.param == 'document':
        client = request.getfixturevalue('mongo_client')
        config = BackendConfig(mongodb_uri='mongodb://localhost:27017', mongodb_name=TEST_MONGODB_NAME)
        selector = BackendSelector(config, client_factory=lambda *args, **kwargs: client)
    else:
        selector = BackendSelector(BackendConfig())

    selector.resolve()
    monkeypatch.setattr(apps.get_app_config('board'), 'selector', selector)
    return selector.stores()


class ApiClient:
    """Thin JSON wrapper around Django's test client"""

    def __init__(self, token=None):
        self.client = Client()
        self.token = token

    def _headers(self):
        return {'HTTP_AUTHORIZATION': f'Bearer {self.token}'} if self.token else {}

    def request(self, method, path, data=None):
        body = json.dumps(data) if data is not None else ''
        handler = getattr(self.client, method.lower())
        if method.upper() in ('GET', 'HEAD'):
            return handler(path, **self._headers())
        return handler(path, data=body, content_type='application/json', **self._headers())

    def get(self, path):
        return self.request('GET', path)

    def post(self, path, data=None):
        return self.request('POST', path, data)

    def put(self, path, data=None):
        return self.request('PUT', path, data)

    def patch(self, path, data=None):
        return self.request('PATCH', path, data)

    def delete(self, path):
        return self.request('DELETE', path)


def register(username, password='secret-pass-1'):
    """Register a user over HTTP and return (user, authenticated ApiClient)"""
    anonymous = ApiClient()
    response = anonymous.post('/api/auth/register', {
        'username': username,
        'email': f'{username}@example.com',
        'password': password,
    })
    assert response.status_code == 201, response.content
    payload = response.json()
    return payload['user'], ApiClient(payload['token'])


@pytest.fixture
def alice(backend):
    return register('alice')


@pytest.fixture
def bob(backend):
    return register('bob')
