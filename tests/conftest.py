import os
import sys
from dataclasses import replace

import pytest
import requests

# Ensure project root is on sys.path for module resolution
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from app import create_app
from cache_ofertas import InMemoryOfferCache
from config import Settings
from models import db
from pagamentos_gateway import ParadiseGateway, SandboxGateway

BASE_URL = 'https://paradise.test/api/public/v1'


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text=None):
        self.status_code = status_code
        self._json = json_data
        self.text = text if text is not None else ''

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError('No JSON object could be decoded')
        return self._json

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f'{self.status_code} Error')


class FakeSession:
    """Substitui requests.Session: responde por (método, caminho) e grava as chamadas."""

    def __init__(self, base_url=BASE_URL):
        self.base_url = base_url
        self.headers = {}
        self.calls = []
        self._responses = {}

    @staticmethod
    def _key(method, url, base_url, params=None):
        path = url[len(base_url):] if url.startswith(base_url) else url
        extra = {k: v for k, v in (params or {}).items() if k != 'api_token'}
        if extra:
            path += '?' + '&'.join(f'{k}={v}' for k, v in sorted(extra.items()))
        return (method, path)

    def queue(self, method, path, *responses):
        self._responses.setdefault((method, path), []).extend(responses)

    def calls_to(self, method, path):
        return [c for c in self.calls if c['key'] == (method, path)]

    def _dispatch(self, method, url, json=None, params=None):
        key = self._key(method, url, self.base_url, params)
        self.calls.append({'key': key, 'url': url, 'json': json, 'params': dict(params or {})})
        queue = self._responses.get(key)
        if not queue:
            return FakeResponse(404, {'message': 'Not found'})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url, json=None, params=None, timeout=None):
        return self._dispatch('POST', url, json=json, params=params)

    def get(self, url, params=None, timeout=None):
        return self._dispatch('GET', url, params=params)


@pytest.fixture
def settings():
    return Settings(
        gateway_provider='paradise',
        paradise_base_url=BASE_URL,
        paradise_api_token='test-token',
        paradise_product_hash='prod_anchor',
        postback_url='https://loja.test/webhooks/paradise',
        database_url='sqlite:///:memory:',
        log_file='',
    )


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def paradise(settings, fake_session):
    return ParadiseGateway(
        settings.paradise_base_url, settings.paradise_api_token, settings.paradise_product_hash,
        session=fake_session,
    )


@pytest.fixture
def offer_cache():
    return InMemoryOfferCache()


@pytest.fixture
def test_app(settings, paradise, offer_cache):
    app = create_app(settings=settings, gateway=paradise, offer_cache=offer_cache, testing=True)

    yield app

    # Cleanup
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(test_app):
    return test_app.test_client()


@pytest.fixture
def service(test_app):
    return test_app.extensions['checkout_service']


@pytest.fixture
def sandbox():
    return SandboxGateway()


@pytest.fixture
def sandbox_client(settings, sandbox):
    app = create_app(settings=replace(settings, gateway_provider='sandbox'), gateway=sandbox, testing=True)
    yield app.test_client()
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def checkout_body():
    def make(**overrides):
        body = {
            'items': [
                {'id': 'p1', 'name': 'Camiseta', 'price': 'R$ 49,90', 'quantity': 1},
                {'id': 'p2', 'name': 'Boné', 'price': 29.9, 'quantity': '1'},
            ],
            'customer': {
                'name': 'Maria Silva',
                'email': 'maria@example.com',
                'document': '123.456.789-09',
                'phone': '(11) 99999-8888',
            },
            'metadata': {'origem': 'site'},
        }
        body.update(overrides)
        return body
    return make


@pytest.fixture
def transport_error():
    return requests.ConnectionError('connection refused')
