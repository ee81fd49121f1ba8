from __future__ import annotations
from datetime import datetime
from typing import Optional, Dict, Any
from sqlalchemy.orm import declarative_base, Mapped, mapped_column, object_session, relationship
from sqlalchemy import String, Integer, Boolean, ForeignKey, JSON, UniqueConstraint, Index, DateTime, event, func, inspect

from roleguard.errors import ImmutableError
from roleguard.services.permissions import (
    ResourceGrant, RoleSnapshot, SpecialPermissions, dump_grant, load_grant, load_special,
)

Base = declarative_base()

DEFAULT_COLOR = '#6b7280'
DEFAULT_SORT_ORDER = 100
CODE_MAX_LENGTH = 50
NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500


# --- Core Models ---
class Role(Base):
    __tablename__ = 'roles'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(CODE_MAX_LENGTH), nullable=False)
    name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(DESCRIPTION_MAX_LENGTH))
    # informational only: which template this role was copied from
    base_template: Mapped[Optional[str]] = mapped_column(String(32))
    resource_grants: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    special_permissions: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    color: Mapped[str] = mapped_column(String(16), nullable=False, default=DEFAULT_COLOR)
    icon: Mapped[Optional[str]] = mapped_column(String(64))
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_SORT_ORDER)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(64))
    modified_by: Mapped[Optional[str]] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_roles_tenant_code'),
        Index('ix_roles_tenant_active', 'tenant_id', 'is_active'),
    )

    @property
    def grant(self) -> ResourceGrant:
        return load_grant(self.resource_grants)

    @property
    def special(self) -> SpecialPermissions:
        return load_special(self.special_permissions)

    def snapshot(self) -> RoleSnapshot:
        """Parse the stored permissions once into the value the evaluator reads."""
        return RoleSnapshot.build(
            id=self.id,
            tenant_id=self.tenant_id,
            code=self.code,
            is_active=self.is_active,
            is_system=self.is_system,
            grant=self.grant,
            special=self.special,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'code': self.code,
            'name': self.name,
            'description': self.description,
            'base_template': self.base_template,
            'grant': dump_grant(self.grant),
            'special': self.special.to_dict(),
            'color': self.color,
            'icon': self.icon,
            'sort_order': self.sort_order,
            'is_active': self.is_active,
            'is_system': self.is_system,
            'created_by': self.created_by,
            'modified_by': self.modified_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class RoleAssignment(Base):
    """One role per user per tenant. Owned by the user module; counted before role deletion."""
    __tablename__ = 'role_assignments'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role_id: Mapped[int] = mapped_column(ForeignKey('roles.id', ondelete='RESTRICT'), nullable=False, index=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    role: Mapped[Role] = relationship()

    __table_args__ = (UniqueConstraint('tenant_id', 'user_id', name='uq_role_assignment_user'),)


# System roles are frozen at the persistence boundary too, not only in RoleStore.
@event.listens_for(Role, 'before_update')
def _reject_system_role_update(mapper, connection, target: Role):
    session = object_session(target)
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    history = inspect(target).attrs.is_system.history
    was_system = history.deleted[0] if history.deleted else target.is_system
    if was_system or target.is_system:
        raise ImmutableError(f"system role '{target.code}' cannot be modified")


@event.listens_for(Role, 'before_delete')
def _reject_system_role_delete(mapper, connection, target: Role):
    if target.is_system:
        raise ImmutableError(f"system role '{target.code}' cannot be deleted")


__all__ = ['Base', 'Role', 'RoleAssignment', 'DEFAULT_COLOR', 'DEFAULT_SORT_ORDER',
           'CODE_MAX_LENGTH', 'NAME_MAX_LENGTH', 'DESCRIPTION_MAX_LENGTH']
