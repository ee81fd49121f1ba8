from flask import Blueprint, request, abort
from roleguard import get_db
from roleguard.constants.catalog import SpecialFlag
from roleguard.decorators.audit import audit_log
from roleguard.decorators.auth import load_current_role, require_special
from roleguard.services.assignments import assign_role

users_bp = Blueprint('users', __name__)


@users_bp.put('/<user_id>/role')
@require_special(SpecialFlag.MANAGE_USERS)
@audit_log('USER.ROLE.SET', entity='User', entity_id_key='user_id', meta_keys=['role_id', 'role_code'])
def set_user_role(user_id: str):
    data = request.get_json(silent=True) or {}
    role_id = data.get('role_id')
    if isinstance(role_id, bool) or not isinstance(role_id, int):
        abort(400, description='role_id must be an integer')
    session = get_db()
    assignment = assign_role(session, load_current_role().tenant_id, user_id, role_id)
    return {'user_id': assignment.user_id, 'role_id': assignment.role_id, 'role_code': assignment.role.code}
