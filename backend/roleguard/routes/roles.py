from flask import Blueprint, request, abort
from flask_jwt_extended import get_jwt_identity
from roleguard import get_db
from roleguard.config.pagination import normalize_pagination, parse_bool_arg
from roleguard.constants.catalog import Action, Resource, SpecialFlag, catalog_descriptor
from roleguard.decorators.audit import audit_log
from roleguard.decorators.auth import load_current_role, require_permission, require_special
from roleguard.services.role_store import RoleStore
from roleguard.services.templates import list_templates
from roleguard.utils.listing import make_cached_list_response

roles_bp = Blueprint('roles', __name__)

ROLE_DIFF_KEYS = ['name', 'description', 'grant', 'special', 'color', 'icon', 'sort_order', 'is_active']


def _store() -> RoleStore:
    return RoleStore(get_db())


def _tenant_id() -> str:
    return load_current_role().tenant_id


def _actor():
    ident = get_jwt_identity()
    return str(ident) if ident is not None else None


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        abort(400, description='JSON object body required')
    return data


def _role_before(args, kwargs):
    return _store().get(_tenant_id(), kwargs['role_id']).to_dict()


@roles_bp.get('')
@require_permission(Resource.ROLES, Action.READ)
def list_roles():
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
        active = parse_bool_arg(request.args.get('active'))
        include_system = parse_bool_arg(request.args.get('include_system'), default=True)
    except ValueError as e:
        abort(400, description=str(e))
    rows, total = _store().page_by_tenant(
        _tenant_id(), limit, offset,
        active=active, include_system=include_system, search=request.args.get('search') or None,
    )
    return make_cached_list_response([r.to_dict() for r in rows], total, limit, offset)


@roles_bp.get('/catalog')
@require_permission(Resource.ROLES, Action.READ)
def get_catalog():
    return catalog_descriptor()


@roles_bp.get('/templates')
@require_permission(Resource.ROLES, Action.READ)
def get_templates():
    return {'data': [t.to_dict() for t in list_templates()]}


@roles_bp.get('/me')
def get_my_role():
    # any authenticated caller may see its own effective permissions
    return load_current_role().to_dict()


@roles_bp.get('/<int:role_id>')
@require_permission(Resource.ROLES, Action.READ)
def get_role(role_id: int):
    return _store().get(_tenant_id(), role_id).to_dict()


@roles_bp.post('')
@require_special(SpecialFlag.MANAGE_ROLES)
@require_permission(Resource.ROLES, Action.CREATE)
@audit_log('ROLE.CREATE', entity='Role', entity_id_key='id', meta_keys=['code', 'base_template'])
def create_role():
    data = _body()
    template = data.pop('template', None)
    store = _store()
    if template is not None:
        role = store.create_from_template(_tenant_id(), template, data, actor_id=_actor())
    else:
        role = store.create(_tenant_id(), data, actor_id=_actor())
    return role.to_dict(), 201


@roles_bp.post('/<int:role_id>/duplicate')
@require_special(SpecialFlag.MANAGE_ROLES)
@require_permission(Resource.ROLES, Action.CREATE)
@audit_log(
    'ROLE.DUPLICATE',
    entity='Role',
    entity_id_key='id',
    meta_builder=lambda data, rv, a, kw: {'source_id': kw.get('role_id'), 'code': data.get('code')},
)
def duplicate_role(role_id: int):
    data = _body()
    role = _store().duplicate(_tenant_id(), role_id, data.get('code'), data.get('name'), actor_id=_actor())
    return role.to_dict(), 201


@roles_bp.patch('/<int:role_id>')
@require_special(SpecialFlag.MANAGE_ROLES)
@require_permission(Resource.ROLES, Action.UPDATE)
@audit_log('ROLE.UPDATE', entity='Role', entity_id_arg='role_id', diff_keys=ROLE_DIFF_KEYS, pre_fetch=_role_before)
def update_role(role_id: int):
    role = _store().update(_tenant_id(), role_id, _body(), actor_id=_actor())
    return role.to_dict()


@roles_bp.post('/<int:role_id>/deactivate')
@require_special(SpecialFlag.MANAGE_ROLES)
@require_permission(Resource.ROLES, Action.UPDATE)
@audit_log('ROLE.DEACTIVATE', entity='Role', entity_id_arg='role_id', diff_keys=['is_active'], pre_fetch=_role_before)
def deactivate_role(role_id: int):
    role = _store().deactivate(_tenant_id(), role_id, actor_id=_actor())
    return role.to_dict()


@roles_bp.delete('/<int:role_id>')
@require_special(SpecialFlag.MANAGE_ROLES)
@require_permission(Resource.ROLES, Action.DELETE)
@audit_log('ROLE.DELETE', entity='Role', entity_id_arg='role_id', meta_keys=['code'])
def delete_role(role_id: int):
    store = _store()
    code = store.get(_tenant_id(), role_id).code
    store.delete(_tenant_id(), role_id)
    return {'id': role_id, 'code': code, 'deleted': True}
