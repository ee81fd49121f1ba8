from functools import wraps
from typing import Union
from flask import abort, g
from flask_jwt_extended import verify_jwt_in_request, get_jwt
from roleguard import get_db
from roleguard.constants.catalog import Action, BoundedPermission, Resource, SpecialFlag
from roleguard.errors import NotFoundError
from roleguard.services.evaluator import (
    authorize_bounded_numeric, authorize_resource_action, authorize_special,
)
from roleguard.services.permissions import RoleSnapshot
from roleguard.services.role_store import RoleStore


def load_current_role() -> RoleSnapshot:
    """Snapshot of the caller's role, resolved from the token once per request."""
    cached = g.get('current_role')
    if cached is not None:
        return cached
    verify_jwt_in_request()
    claims = get_jwt()
    tenant_id, role_id = claims.get('tenant_id'), claims.get('role_id')
    if not tenant_id or role_id is None:
        abort(403, description='token carries no tenant role')
    try:
        role = RoleStore(get_db()).get(str(tenant_id), int(role_id))
    except (NotFoundError, TypeError, ValueError):
        abort(403, description='role not found for tenant')
    g.current_role = role.snapshot()
    return g.current_role


def _deny(decision):
    abort(403, description=decision.reason.value)


def require_permission(resource: Union[Resource, str], action: Union[Action, str]):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            decision = authorize_resource_action(load_current_role(), resource, action)
            if not decision:
                _deny(decision)
            return fn(*args, **kwargs)
        return wrapper
    return outer


def require_special(flag: Union[SpecialFlag, str]):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            decision = authorize_special(load_current_role(), flag)
            if not decision:
                _deny(decision)
            return fn(*args, **kwargs)
        return wrapper
    return outer


def assert_discount_allowed(value):
    """For document endpoints: abort 403 unless the caller's role may apply ``value`` percent."""
    decision = authorize_bounded_numeric(load_current_role(), BoundedPermission.DISCOUNT, value)
    if not decision:
        if decision.limit is None:
            _deny(decision)
        abort(403, description=f'{decision.reason.value} (limit {decision.limit})')
    return decision
