import importlib
import json
import logging
import sys

from flask import Flask

import config
from app_logging import JSONFormatter, clear_request_context, merge_request_context, redact_sensitive_data
from middleware import HEADER_NAME


def test_health_endpoint(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json() == {'status': 'ok'}


def test_request_id_propagation(client):
    response = client.get('/health', headers={HEADER_NAME: 'test-id-123'})
    assert response.headers.get(HEADER_NAME) == 'test-id-123'


def test_request_id_generated_when_missing(client):
    response = client.get('/health')
    assert response.headers.get(HEADER_NAME)


def test_error_body_carries_kind_and_request_id(client):
    response = client.get('/periods', headers={HEADER_NAME: 'req-42'})
    data = response.get_json()
    assert response.status_code == 401
    assert data['status'] == 401
    assert data['kind'] == 'Unauthenticated'
    assert data['error']
    assert data['requestId'] == 'req-42'


def test_unknown_route_is_json_not_found(client):
    response = client.get('/does-not-exist')
    assert response.status_code == 404
    assert response.get_json()['kind'] == 'NotFound'


def test_redaction_is_recursive_and_case_insensitive():
    payload = {'Password': 'x', 'nested': [{'token': 'abc', 'name': 'kept'}]}
    assert redact_sensitive_data(payload) == {
        'Password': '[REDACTED]',
        'nested': [{'token': '[REDACTED]', 'name': 'kept'}],
    }


def test_json_formatter_merges_context_and_redacts_extra():
    merge_request_context(user_id='u-1', role='ADMIN')
    record = logging.LogRecord('app.test', logging.INFO, __file__, 1, 'hello %s', ('world',), None)
    record.request_payload = {'password': 'hunter2'}

    try:
        line = json.loads(JSONFormatter().format(record))
    finally:
        clear_request_context()

    assert line['msg'] == 'hello world'
    assert line['user_id'] == 'u-1'
    assert line['role'] == 'ADMIN'
    assert line['extra_context']['request_payload'] == {'password': '[REDACTED]'}


def test_wsgi_module_exposes_an_app(monkeypatch):
    monkeypatch.setattr(config.Config, 'SQLALCHEMY_DATABASE_URI', 'sqlite:///:memory:')
    monkeypatch.delitem(sys.modules, 'wsgi', raising=False)

    wsgi = importlib.import_module('wsgi')

    assert isinstance(wsgi.app, Flask)
    assert wsgi.app.test_client().get('/health').status_code == 200
