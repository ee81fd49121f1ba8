"""Tenant-scoped persistence of Role rows.

Invariants enforced here (and backed by the database):
  - ``(tenant_id, code)`` is unique: the unique constraint decides, an IntegrityError
    on commit becomes ConflictError. No check-then-write.
  - system roles (template copies) cannot be updated, deactivated or deleted.
  - grants and special permissions only hold catalog names; the discount cap stays in [0, 100].
  - ``code`` never changes after creation.

Every lookup is filtered by tenant; a role id belonging to another tenant is NotFoundError.
"""
from __future__ import annotations
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError

from roleguard.errors import ConflictError, ImmutableError, InUseError, NotFoundError, RoleError, ValidationError
from roleguard.models.role import (
    Role, CODE_MAX_LENGTH, DEFAULT_COLOR, DESCRIPTION_MAX_LENGTH, NAME_MAX_LENGTH,
)
from roleguard.services.assignments import count_assignments
from roleguard.services.permissions import (
    SpecialPermissions, dump_grant, merge, parse_grant, validate_special,
)
from roleguard.services.templates import TEMPLATES, TEMPLATE_CODES, get_template, instantiate

logger = logging.getLogger(__name__)

AssignmentCounter = Callable[[Role], int]

CREATE_FIELDS = frozenset({
    'code', 'name', 'description', 'base_template', 'grant', 'special', 'color', 'icon', 'sort_order', 'is_system',
})
PATCH_FIELDS = frozenset({'name', 'description', 'grant', 'special', 'color', 'icon', 'sort_order', 'is_active'})
FROZEN_FIELDS = frozenset({'code', 'is_system', 'tenant_id', 'base_template'})


def _normalize_code(code: Any) -> str:
    if not isinstance(code, str) or not code.strip():
        raise ValidationError('code required')
    code = code.strip().lower()
    if len(code) > CODE_MAX_LENGTH:
        raise ValidationError(f'code cannot exceed {CODE_MAX_LENGTH} characters')
    return code


def _text(field: str, value: Any, max_length: int, required: bool = False) -> Optional[str]:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f'{field} required')
        return None
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be a string')
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f'{field} cannot exceed {max_length} characters')
    return value


def _sort_order(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError('sort_order must be an integer')
    return value


def _check_fields(data: Mapping[str, Any], allowed: frozenset) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValidationError(f'Unknown fields: {unknown}')


class RoleStore:
    def __init__(self, session, assignment_counter: Optional[AssignmentCounter] = None):
        self.session = session
        self.assignment_counter = assignment_counter or (lambda role: count_assignments(session, role))

    # --- reads ---

    def get(self, tenant_id: str, role_id: int) -> Role:
        role = self.session.execute(
            select(Role).where(Role.id == role_id, Role.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if not role:
            raise NotFoundError(f'role {role_id} not found')
        return role

    def get_by_tenant_and_code(self, tenant_id: str, code: str) -> Optional[Role]:
        if not isinstance(code, str):
            return None
        return self.session.execute(
            select(Role).where(Role.tenant_id == tenant_id, Role.code == code.strip().lower())
        ).scalar_one_or_none()

    def _tenant_query(self, tenant_id: str, active: Optional[bool] = None, include_system: bool = True,
                      search: Optional[str] = None):
        stmt = select(Role).where(Role.tenant_id == tenant_id)
        if active is not None:
            stmt = stmt.where(Role.is_active == active)
        if not include_system:
            stmt = stmt.where(Role.is_system.is_(False))
        if search:
            # % and _ in the search text match literally
            escaped = search.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
            pattern = f'%{escaped}%'
            stmt = stmt.where(or_(
                Role.name.ilike(pattern, escape='\\'),
                Role.code.ilike(pattern, escape='\\'),
                Role.description.ilike(pattern, escape='\\'),
            ))
        return stmt

    def list_by_tenant(self, tenant_id: str, *, active: Optional[bool] = None, include_system: bool = True,
                       search: Optional[str] = None) -> List[Role]:
        stmt = self._tenant_query(tenant_id, active, include_system, search)
        return list(self.session.execute(stmt.order_by(Role.sort_order.asc(), Role.name.asc())).scalars())

    def page_by_tenant(self, tenant_id: str, limit: int, offset: int, **filters) -> Tuple[List[Role], int]:
        stmt = self._tenant_query(tenant_id, **filters)
        total = self.session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        rows = self.session.execute(
            stmt.order_by(Role.sort_order.asc(), Role.name.asc()).offset(offset).limit(limit)
        ).scalars().all()
        return list(rows), total

    def _next_sort_order(self, tenant_id: str) -> int:
        current = self.session.execute(
            select(func.max(Role.sort_order)).where(Role.tenant_id == tenant_id)
        ).scalar_one_or_none()
        return (current or 0) + 1

    # --- writes ---

    def _commit(self, role: Role, deleting: bool = False) -> None:
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            if deleting:
                # role_assignments.role_id is ON DELETE RESTRICT
                raise InUseError(f"role '{role.code}' is still assigned") from e
            raise ConflictError(f"a role with code '{role.code}' already exists") from e
        except RoleError:
            self.session.rollback()
            raise

    def create(self, tenant_id: str, data: Mapping[str, Any], actor_id: Optional[str] = None) -> Role:
        """Create a tenant-defined role. System roles come only from ``provision_tenant``."""
        data = dict(data or {})
        _check_fields(data, CREATE_FIELDS)
        if data.get('is_system'):
            raise ValidationError('system roles are only created by tenant provisioning')
        code = _normalize_code(data.get('code'))
        name = _text('name', data.get('name'), NAME_MAX_LENGTH, required=True)
        description = _text('description', data.get('description'), DESCRIPTION_MAX_LENGTH)
        base_template = data.get('base_template')
        if base_template is not None and base_template not in TEMPLATE_CODES:
            raise ValidationError(f"unknown base_template '{base_template}'")
        grant = parse_grant(data.get('grant') or {})
        special = SpecialPermissions.from_dict(data.get('special'))
        color = _text('color', data.get('color'), 16) or DEFAULT_COLOR
        icon = _text('icon', data.get('icon'), 64)
        sort_order = data.get('sort_order')
        sort_order = self._next_sort_order(tenant_id) if sort_order is None else _sort_order(sort_order)

        role = Role(
            tenant_id=tenant_id,
            code=code,
            name=name,
            description=description,
            base_template=base_template,
            resource_grants=dump_grant(grant),
            special_permissions=special.to_dict(),
            color=color,
            icon=icon,
            sort_order=sort_order,
            is_active=True,
            is_system=False,
            created_by=actor_id,
            modified_by=actor_id,
        )
        self.session.add(role)
        self._commit(role)
        logger.info('Created role %s/%s (id=%s)', tenant_id, role.code, role.id)
        return role

    def create_from_template(self, tenant_id: str, template_code: str, data: Mapping[str, Any],
                             actor_id: Optional[str] = None) -> Role:
        """Create a tenant role starting from a template's permissions.

        ``grant`` entries in ``data`` replace the template's entry for that resource whole;
        ``special`` entries override single fields. The result is a copy, not a link.
        """
        try:
            template = get_template(template_code)
        except NotFoundError as e:
            raise ValidationError(e.detail) from e
        data = dict(data or {})
        _check_fields(data, CREATE_FIELDS)
        special_override = data.get('special') or {}
        validate_special(special_override)
        grant = merge(template.grant, parse_grant(data.get('grant') or {}))
        special = template.special.replace(**special_override)
        data.update({
            'grant': dump_grant(grant),
            'special': special.to_dict(),
            'base_template': template.code,
        })
        data.setdefault('name', template.name)
        data.setdefault('description', template.description)
        data.setdefault('color', template.color)
        return self.create(tenant_id, data, actor_id)

    def duplicate(self, tenant_id: str, role_id: int, code: str, name: str, actor_id: Optional[str] = None) -> Role:
        source = self.get(tenant_id, role_id)
        return self.create(tenant_id, {
            'code': code,
            'name': name,
            'description': f'Basado en {source.name}',
            'base_template': source.base_template,
            'grant': dump_grant(source.grant),
            'special': source.special.to_dict(),
            'color': source.color,
            'icon': source.icon,
        }, actor_id)

    def update(self, tenant_id: str, role_id: int, patch: Mapping[str, Any], actor_id: Optional[str] = None) -> Role:
        role = self.get(tenant_id, role_id)
        if role.is_system:
            raise ImmutableError(f"system role '{role.code}' cannot be modified")
        patch = dict(patch or {})
        frozen = sorted(set(patch) & FROZEN_FIELDS)
        if frozen:
            raise ValidationError(f'{frozen} cannot be changed after creation')
        _check_fields(patch, PATCH_FIELDS)

        # validate the whole patch before touching the row
        changes: Dict[str, Any] = {}
        if 'name' in patch:
            changes['name'] = _text('name', patch['name'], NAME_MAX_LENGTH, required=True)
        if 'description' in patch:
            changes['description'] = _text('description', patch['description'], DESCRIPTION_MAX_LENGTH)
        if 'color' in patch:
            changes['color'] = _text('color', patch['color'], 16) or DEFAULT_COLOR
        if 'icon' in patch:
            changes['icon'] = _text('icon', patch['icon'], 64)
        if 'sort_order' in patch:
            changes['sort_order'] = _sort_order(patch['sort_order'])
        if 'is_active' in patch:
            if not isinstance(patch['is_active'], bool):
                raise ValidationError('is_active must be a boolean')
            changes['is_active'] = patch['is_active']
        if 'grant' in patch:
            changes['resource_grants'] = dump_grant(merge(role.grant, parse_grant(patch['grant'])))
        if 'special' in patch:
            validate_special(patch['special'])
            changes['special_permissions'] = role.special.replace(**patch['special']).to_dict()

        for attr, value in changes.items():
            setattr(role, attr, value)
        role.modified_by = actor_id
        self._commit(role)
        logger.info('Updated role %s/%s fields=%s', tenant_id, role.code, sorted(patch))
        return role

    def deactivate(self, tenant_id: str, role_id: int, actor_id: Optional[str] = None) -> Role:
        """Soft-retire a role; existing assignments stay, new ones are refused. Idempotent."""
        role = self.get(tenant_id, role_id)
        if role.is_system:
            raise ImmutableError(f"system role '{role.code}' cannot be modified")
        if not role.is_active:
            return role
        role.is_active = False
        role.modified_by = actor_id
        self._commit(role)
        logger.info('Deactivated role %s/%s', tenant_id, role.code)
        return role

    def delete(self, tenant_id: str, role_id: int) -> None:
        role = self.get(tenant_id, role_id)
        if role.is_system:
            raise ImmutableError(f"system role '{role.code}' cannot be deleted")
        assigned = self.assignment_counter(role)
        if assigned:
            raise InUseError(f"role '{role.code}' is assigned to {assigned} user(s)")
        code = role.code
        self.session.delete(role)
        self._commit(role, deleting=True)
        logger.info('Deleted role %s/%s', tenant_id, code)

    def provision_tenant(self, tenant_id: str) -> List[Role]:
        """Copy every template into the tenant as a system role.

        Upsert keyed on ``(tenant_id, code)``: re-running it, even concurrently, never
        creates a second row for a template.
        """
        roles: List[Role] = []
        created = 0
        for template in TEMPLATES:
            existing = self.get_by_tenant_and_code(tenant_id, template.code)
            if existing:
                roles.append(existing)
                continue
            role = instantiate(template.code, tenant_id)
            self.session.add(role)
            try:
                self.session.commit()
                created += 1
            except IntegrityError:
                # another provisioning run inserted it first
                self.session.rollback()
                role = self.get_by_tenant_and_code(tenant_id, template.code)
                if role is None:
                    raise
            roles.append(role)
        logger.info('Provisioned tenant %s: %d system role(s) created, %d already present',
                    tenant_id, created, len(roles) - created)
        return roles


__all__ = ['RoleStore', 'AssignmentCounter', 'CREATE_FIELDS', 'PATCH_FIELDS', 'FROZEN_FIELDS']
