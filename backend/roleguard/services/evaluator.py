"""Authorization evaluator.

Pure functions over a RoleSnapshot: dict and frozenset lookups, no I/O, no locks. Safe to
call from any number of request threads. A deny is a normal return value carrying a
DenyReason, never an exception. There is no superuser short-circuit: an administrator
is allowed things only because its grant data lists them.
"""
from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Union

from roleguard.constants.catalog import (
    Action, BoundedPermission, Resource, SpecialFlag, BOUNDED_PERMISSIONS,
    coerce_action, coerce_bounded_permission, coerce_resource, coerce_special_flag,
)
from roleguard.errors import CatalogError
from roleguard.services.permissions import RoleSnapshot

logger = logging.getLogger(__name__)


class DenyReason(str, Enum):
    ROLE_INACTIVE = 'role_inactive'
    UNKNOWN_RESOURCE = 'unknown_resource'
    UNKNOWN_ACTION = 'unknown_action'
    RESOURCE_NOT_GRANTED = 'resource_not_granted'
    ACTION_NOT_GRANTED = 'action_not_granted'
    SPECIAL_FLAG_FALSE = 'special_flag_false'
    BOUND_EXCEEDED = 'bound_exceeded'
    INVALID_VALUE = 'invalid_value'
    UNKNOWN_PERMISSION = 'unknown_permission'


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None
    # bounded checks report the role's cap so callers can tell the user the limit
    limit: Optional[Union[int, float]] = None

    def __bool__(self) -> bool:
        return self.allowed

    def to_dict(self) -> Dict[str, Any]:
        return {
            'allowed': self.allowed,
            'reason': self.reason.value if self.reason else None,
            'limit': self.limit,
        }


ALLOW = Decision(True)
_DENY: Dict[DenyReason, Decision] = {reason: Decision(False, reason) for reason in DenyReason}

_strict_catalog = False


def set_strict_catalog(enabled: bool) -> None:
    """Raise CatalogError on unknown permission names instead of deny-and-log."""
    global _strict_catalog
    _strict_catalog = bool(enabled)


def strict_catalog_enabled() -> bool:
    return _strict_catalog


def _deny(reason: DenyReason, role: RoleSnapshot, subject: Any) -> Decision:
    logger.debug('Denied %s for role %s/%s: %s', subject, role.tenant_id, role.code, reason.value)
    return _DENY[reason]


def _catalog_violation(kind: str, name: Any) -> Decision:
    message = f'unknown {kind} {name!r}'
    if _strict_catalog:
        raise CatalogError(message)
    logger.error('Catalog violation: %s; denying', message)
    return _DENY[DenyReason.UNKNOWN_PERMISSION]


def authorize_resource_action(role: RoleSnapshot, resource: Union[Resource, str], action: Union[Action, str]) -> Decision:
    if not role.is_active:
        return _deny(DenyReason.ROLE_INACTIVE, role, resource)
    res = coerce_resource(resource)
    if res is None:
        logger.warning('Authorization requested for unknown resource %r; denying', resource)
        return _DENY[DenyReason.UNKNOWN_RESOURCE]
    act = coerce_action(action)
    if act is None:
        logger.warning('Authorization requested for unknown action %r on %s; denying', action, res.value)
        return _DENY[DenyReason.UNKNOWN_ACTION]
    granted = role.grant.get(res)
    if not granted:
        return _deny(DenyReason.RESOURCE_NOT_GRANTED, role, res.value)
    if act not in granted:
        return _deny(DenyReason.ACTION_NOT_GRANTED, role, f'{res.value}:{act.value}')
    return ALLOW


def authorize_special(role: RoleSnapshot, flag: Union[SpecialFlag, str]) -> Decision:
    special_flag = coerce_special_flag(flag)
    if special_flag is None:
        return _catalog_violation('special permission', flag)
    if not role.is_active:
        return _deny(DenyReason.ROLE_INACTIVE, role, special_flag.value)
    if not role.special.allows(special_flag):
        return _deny(DenyReason.SPECIAL_FLAG_FALSE, role, special_flag.value)
    return ALLOW


def _is_number(value: Any) -> bool:
    # ints compare exactly against the cap however large; floats and Decimals must be finite
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return False
    if isinstance(value, Decimal):
        return value.is_finite()
    if isinstance(value, float):
        return math.isfinite(value)
    return True


def authorize_bounded_numeric(role: RoleSnapshot, name: Union[BoundedPermission, str], requested_value: Any) -> Decision:
    """Check a numeric request (e.g. a discount percentage) against the role's cap.

    A value above the cap is denied, not clamped; the cap is returned in ``limit``.
    """
    bounded = coerce_bounded_permission(name)
    if bounded is None:
        return _catalog_violation('bounded permission', name)
    if not role.is_active:
        return _deny(DenyReason.ROLE_INACTIVE, role, bounded.value)
    gate, cap_field = BOUNDED_PERMISSIONS[bounded]
    if not role.special.allows(gate):
        return _deny(DenyReason.SPECIAL_FLAG_FALSE, role, gate.value)
    cap = getattr(role.special, cap_field)
    if not _is_number(requested_value) or requested_value < 0:
        return Decision(False, DenyReason.INVALID_VALUE, limit=cap)
    if requested_value > cap:
        logger.debug('Denied %s=%s for role %s/%s: cap %s', bounded.value, requested_value, role.tenant_id, role.code, cap)
        return Decision(False, DenyReason.BOUND_EXCEEDED, limit=cap)
    return Decision(True, limit=cap)


__all__ = [
    'DenyReason', 'Decision', 'ALLOW', 'set_strict_catalog', 'strict_catalog_enabled',
    'authorize_resource_action', 'authorize_special', 'authorize_bounded_numeric',
]
