"""User -> role assignments (minimal footprint of the user module).

The role store only needs ``count_assignments``; ``assign_role`` exists so retired
roles can be refused for new assignments.
"""
from __future__ import annotations
import logging
from typing import Optional
from sqlalchemy import select, func

from roleguard.errors import NotFoundError, ValidationError
from roleguard.models.role import Role, RoleAssignment

logger = logging.getLogger(__name__)


def count_assignments(session, role: Role) -> int:
    return session.execute(
        select(func.count(RoleAssignment.id)).where(RoleAssignment.role_id == role.id)
    ).scalar_one()


def assigned_role(session, tenant_id: str, user_id: str) -> Optional[Role]:
    return session.execute(
        select(Role)
        .join(RoleAssignment, RoleAssignment.role_id == Role.id)
        .where(RoleAssignment.tenant_id == tenant_id, RoleAssignment.user_id == str(user_id))
    ).scalar_one_or_none()


def assign_role(session, tenant_id: str, user_id: str, role_id: int) -> RoleAssignment:
    """Point ``user_id`` at ``role_id`` (replacing any previous role). Commits."""
    role = session.execute(
        select(Role).where(Role.id == role_id, Role.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if not role:
        raise NotFoundError(f'role {role_id} not found')
    if not role.is_active:
        raise ValidationError(f"role '{role.code}' is inactive and cannot be assigned")
    assignment = session.execute(
        select(RoleAssignment).where(RoleAssignment.tenant_id == tenant_id, RoleAssignment.user_id == str(user_id))
    ).scalar_one_or_none()
    if assignment is None:
        assignment = RoleAssignment(tenant_id=tenant_id, user_id=str(user_id), role=role)
        session.add(assignment)
    else:
        assignment.role = role
    session.commit()
    logger.info('Assigned role %s/%s to user %s', tenant_id, role.code, user_id)
    return assignment


__all__ = ['count_assignments', 'assigned_role', 'assign_role']
