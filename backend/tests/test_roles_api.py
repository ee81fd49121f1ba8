from roleguard.models.audit import AuditLog
from roleguard.services.assignments import assign_role
from roleguard.services.role_store import RoleStore
from tests.helpers import OTHER_TENANT, TENANT, custom_role, jwt_headers, provision


def test_list_roles_paginated_with_etag(client, app_instance, db):
    roles = provision()
    headers = jwt_headers(app_instance, roles['admin'])
    resp = client.get('/roles?limit=2', headers=headers)
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['pagination'] == {'total': 6, 'limit': 2, 'offset': 0, 'returned': 2}
    assert [r['code'] for r in body['data']] == ['admin', 'gerente']
    etag = resp.headers['ETag']
    again = client.get('/roles?limit=2', headers={**headers, 'If-None-Match': etag})
    assert again.status_code == 304


def test_list_roles_filters(client, app_instance, db):
    roles = provision()
    custom_role('caja')
    headers = jwt_headers(app_instance, roles['visualizador'])
    body = client.get('/roles?include_system=false', headers=headers).get_json()
    assert [r['code'] for r in body['data']] == ['caja']
    body = client.get('/roles?search=almac', headers=headers).get_json()
    assert [r['code'] for r in body['data']] == ['almacenero']
    assert client.get('/roles?active=maybe', headers=headers).status_code == 400
    assert client.get('/roles?limit=abc', headers=headers).status_code == 400


def test_read_requires_roles_read(client, app_instance, db):
    roles = provision()
    resp = client.get('/roles', headers=jwt_headers(app_instance, roles['vendedor']))
    assert resp.status_code == 403
    assert resp.get_json()['error']['detail'] == 'resource_not_granted'


def test_missing_token_is_401(client, db):
    assert client.get('/roles').status_code == 401


def test_token_for_unknown_role_is_403(client, app_instance, db):
    roles = provision()
    headers = jwt_headers(app_instance, roles['admin'], tenant_id=OTHER_TENANT)
    assert client.get('/roles', headers=headers).status_code == 403


def test_catalog_templates_and_me(client, app_instance, db):
    roles = provision()
    admin = jwt_headers(app_instance, roles['admin'])
    catalog = client.get('/roles/catalog', headers=admin).get_json()
    assert len(catalog['resources']) == 24
    templates = client.get('/roles/templates', headers=admin).get_json()['data']
    assert [t['code'] for t in templates][0] == 'admin'
    me = client.get('/roles/me', headers=jwt_headers(app_instance, roles['vendedor'])).get_json()
    assert me['code'] == 'vendedor'
    assert me['special']['max_discount_percent'] == 15
    assert me['grant']['facturas'] == ['create', 'read']


def test_create_role_and_audit(client, app_instance, db):
    roles = provision()
    headers = jwt_headers(app_instance, roles['admin'], user_id='u-42')
    resp = client.post('/roles', json={
        'code': 'Caja',
        'name': 'Caja',
        'grant': {'facturas': ['create', 'read']},
        'special': {'apply_discounts': True, 'max_discount_percent': 5},
    }, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['code'] == 'caja'
    assert body['created_by'] == 'u-42'
    assert body['sort_order'] == 7
    log = db.query(AuditLog).filter(AuditLog.action == 'ROLE.CREATE').one()
    assert log.tenant_id == TENANT
    assert log.actor_user_id == 'u-42'
    assert log.actor_role_id == roles['admin'].id
    assert log.entity_id == str(body['id'])
    assert log.meta == {'code': 'caja', 'base_template': None}


def test_create_from_template_over_http(client, app_instance, db):
    roles = provision()
    resp = client.post('/roles', json={
        'template': 'vendedor', 'code': 'vendedor-2', 'special': {'max_discount_percent': 20},
    }, headers=jwt_headers(app_instance, roles['admin']))
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['base_template'] == 'vendedor'
    assert body['is_system'] is False
    assert body['special']['max_discount_percent'] == 20


def test_create_errors(client, app_instance, db):
    roles = provision()
    headers = jwt_headers(app_instance, roles['admin'])
    dup = client.post('/roles', json={'code': 'admin', 'name': 'Again'}, headers=headers)
    assert dup.status_code == 409
    assert dup.get_json()['error']['title'] == 'Conflict'
    bad = client.post('/roles', json={'code': 'x', 'name': 'X', 'grant': {'widgets': ['read']}}, headers=headers)
    assert bad.status_code == 400
    assert "unknown resource 'widgets'" in bad.get_json()['error']['detail']
    assert client.post('/roles', json=['x'], headers=headers).status_code == 400
    # failed requests leave no audit trail
    assert db.query(AuditLog).count() == 0


def test_create_requires_manage_roles(client, app_instance, db):
    roles = provision()
    # gerente may read roles but lacks the manage_roles flag
    resp = client.post('/roles', json={'code': 'x', 'name': 'X'}, headers=jwt_headers(app_instance, roles['gerente']))
    assert resp.status_code == 403
    assert resp.get_json()['error']['detail'] == 'special_flag_false'
    # the flag alone is not enough without roles:create
    half = custom_role('half-admin', grant={'roles': ['read', 'update']}, special={'manage_roles': True})
    resp = client.post('/roles', json={'code': 'y', 'name': 'Y'}, headers=jwt_headers(app_instance, half))
    assert resp.status_code == 403
    assert resp.get_json()['error']['detail'] == 'action_not_granted'


def test_update_role_records_diff(client, app_instance, db):
    roles = provision()
    role = custom_role('caja', grant={'clientes': ['read']})
    resp = client.patch(f'/roles/{role.id}', json={'name': 'Caja 1', 'grant': {'facturas': ['read']}},
                        headers=jwt_headers(app_instance, roles['admin']))
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['grant'] == {'clientes': ['read'], 'facturas': ['read']}
    log = db.query(AuditLog).filter(AuditLog.action == 'ROLE.UPDATE').one()
    assert log.entity_id == str(role.id)
    assert log.meta['changes']['name'] == {'before': 'Caja', 'after': 'Caja 1'}
    assert 'facturas' in log.meta['changes']['grant']['after']


def test_system_role_cannot_be_changed_over_http(client, app_instance, db):
    roles = provision()
    headers = jwt_headers(app_instance, roles['admin'])
    target = roles['vendedor'].id
    resp = client.patch(f'/roles/{target}', json={'name': 'Sales'}, headers=headers)
    assert resp.status_code == 409
    assert resp.get_json()['error']['title'] == 'Immutable Role'
    assert client.post(f'/roles/{target}/deactivate', headers=headers).status_code == 409
    assert client.delete(f'/roles/{target}', headers=headers).status_code == 409


def test_deactivated_caller_loses_access(client, app_instance, db):
    roles = provision()
    deputy = custom_role('deputy', grant={'roles': ['read', 'update']}, special={'manage_roles': True})
    deputy_headers = jwt_headers(app_instance, deputy)
    assert client.get('/roles', headers=deputy_headers).status_code == 200
    resp = client.post(f'/roles/{deputy.id}/deactivate', headers=jwt_headers(app_instance, roles['admin']))
    assert resp.status_code == 200
    assert resp.get_json()['is_active'] is False
    denied = client.get('/roles', headers=deputy_headers)
    assert denied.status_code == 403
    assert denied.get_json()['error']['detail'] == 'role_inactive'


def test_delete_role(client, app_instance, db):
    roles = provision()
    headers = jwt_headers(app_instance, roles['admin'])
    used = custom_role('used')
    unused = custom_role('unused')
    assign_role(db, TENANT, 'u-5', used.id)
    resp = client.delete(f'/roles/{used.id}', headers=headers)
    assert resp.status_code == 409
    assert resp.get_json()['error']['title'] == 'Role In Use'
    resp = client.delete(f'/roles/{unused.id}', headers=headers)
    assert resp.status_code == 200
    assert RoleStore(db).get_by_tenant_and_code(TENANT, 'unused') is None
    assert db.query(AuditLog).filter(AuditLog.action == 'ROLE.DELETE').one().meta == {'code': 'unused'}


def test_duplicate_over_http(client, app_instance, db):
    roles = provision()
    resp = client.post(f"/roles/{roles['tecnico'].id}/duplicate", json={'code': 'tecnico-2', 'name': 'Técnico 2'},
                       headers=jwt_headers(app_instance, roles['admin']))
    assert resp.status_code == 201, resp.get_json()
    assert resp.get_json()['description'] == 'Basado en Técnico'


def test_roles_are_tenant_scoped(client, app_instance, db):
    roles = provision()
    foreign = custom_role('ajeno', tenant_id=OTHER_TENANT)
    headers = jwt_headers(app_instance, roles['admin'])
    assert client.get(f'/roles/{foreign.id}', headers=headers).status_code == 404
    assert client.patch(f'/roles/{foreign.id}', json={'name': 'x'}, headers=headers).status_code == 404


def test_huge_discount_cap_is_rejected_with_400(client, app_instance, db):
    roles = provision()
    resp = client.post('/roles', json={
        'code': 'caja', 'name': 'Caja', 'special': {'apply_discounts': True, 'max_discount_percent': 10 ** 400},
    }, headers=jwt_headers(app_instance, roles['admin']))
    assert resp.status_code == 400
    assert 'max_discount_percent' in resp.get_json()['error']['detail']
