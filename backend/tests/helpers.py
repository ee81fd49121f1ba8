"""Shared test helpers: tenant seeding and JWT headers for a tenant role."""
from __future__ import annotations
from typing import Dict, Optional
from flask_jwt_extended import create_access_token
from roleguard import get_db
from roleguard.models.role import Role
from roleguard.services.role_store import RoleStore

TENANT = 'acme'
OTHER_TENANT = 'globex'


def provision(tenant_id: str = TENANT) -> Dict[str, Role]:
    """System roles of ``tenant_id`` keyed by code."""
    return {r.code: r for r in RoleStore(get_db()).provision_tenant(tenant_id)}


def jwt_headers(app, role: Role, user_id: str = 'u-1', tenant_id: Optional[str] = None):
    with app.app_context():
        token = create_access_token(identity=str(user_id), additional_claims={
            'tenant_id': tenant_id or role.tenant_id,
            'role_id': role.id,
        })
    return {'Authorization': f'Bearer {token}'}


def custom_role(code: str, grant=None, special=None, tenant_id: str = TENANT, **extra) -> Role:
    data = {'code': code, 'name': code.title(), 'grant': grant or {}, 'special': special or {}}
    data.update(extra)
    return RoleStore(get_db()).create(tenant_id, data)
