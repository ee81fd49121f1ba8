import pytest
from werkzeug.exceptions import Forbidden
from roleguard.decorators.auth import assert_discount_allowed
from tests.helpers import jwt_headers, provision


def test_healthz(client):
    assert client.get('/healthz').get_json() == {'status': 'ok'}


def test_unknown_path_returns_error_json(client):
    resp = client.get('/non-existent-path')
    # Flask default 404 should be wrapped by error handler
    assert resp.status_code == 404
    body = resp.get_json()
    assert body['error']['status'] == 404
    assert 'detail' in body['error']


def test_internal_error_shape(client, app_instance, db, monkeypatch):
    roles = provision()
    import roleguard.routes.roles as roles_mod

    def boom():
        raise RuntimeError('explode')
    monkeypatch.setattr(roles_mod, '_store', boom)
    resp = client.get('/roles', headers=jwt_headers(app_instance, roles['admin']))
    assert resp.status_code == 500
    body = resp.get_json()
    assert body['error']['detail'] == 'Unexpected error'


def test_discount_helper_enforces_cap(app_instance, db):
    roles = provision()
    with app_instance.test_request_context(headers=jwt_headers(app_instance, roles['vendedor'])):
        assert assert_discount_allowed(15).limit == 15
        assert assert_discount_allowed(10)
        with pytest.raises(Forbidden) as exc:
            assert_discount_allowed(15.01)
        assert 'bound_exceeded' in exc.value.description
        assert '15' in exc.value.description
        with pytest.raises(Forbidden) as exc:
            assert_discount_allowed(10 ** 400)
        assert exc.value.description == 'bound_exceeded (limit 15)'


def test_discount_helper_without_gate(app_instance, db):
    roles = provision()
    with app_instance.test_request_context(headers=jwt_headers(app_instance, roles['tecnico'])):
        with pytest.raises(Forbidden) as exc:
            assert_discount_allowed(1)
        assert exc.value.description == 'special_flag_false'
