"""Permission model: a role's resource grants and its special permissions.

Grants are ``Dict[Resource, FrozenSet[Action]]``; special permissions are a fixed-field
frozen dataclass. Raw JSON-shaped input (request bodies, stored columns) goes through
``parse_grant`` / ``SpecialPermissions.from_dict`` which reject anything outside the catalog.
"""
from __future__ import annotations
import logging
import math
from dataclasses import dataclass, asdict, fields, replace as dc_replace
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

from roleguard.constants.catalog import (
    Action, Resource, SpecialFlag, ALL_ACTIONS, ALL_RESOURCES, DISCOUNT_RANGE, MAX_DISCOUNT_FIELD,
    SPECIAL_PERMISSION_FIELDS, coerce_action, coerce_resource,
)
from roleguard.errors import ValidationError

logger = logging.getLogger(__name__)

ResourceGrant = Dict[Resource, FrozenSet[Action]]


@dataclass(frozen=True)
class SpecialPermissions:
    view_costs: bool = False
    view_margins: bool = False
    view_billing_data: bool = False
    modify_sale_price: bool = False
    modify_purchase_price: bool = False
    apply_discounts: bool = False
    max_discount_percent: float = 0
    access_configuration: bool = False
    manage_users: bool = False
    manage_roles: bool = False
    export_data: bool = False
    import_data: bool = False
    void_documents: bool = False
    delete_documents: bool = False
    view_change_history: bool = False
    access_sales: bool = False
    access_purchasing: bool = False
    access_warehouse: bool = False
    access_accounting: bool = False
    access_pos: bool = False

    def __post_init__(self):
        validate_special({f.name: getattr(self, f.name) for f in fields(self)})

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> 'SpecialPermissions':
        """Build from a (possibly partial) mapping; missing fields take the all-denied default."""
        raw = {} if raw is None else raw
        validate_special(raw)
        return cls(**dict(raw))

    @classmethod
    def all_granted(cls) -> 'SpecialPermissions':
        values: Dict[str, Any] = {flag.value: True for flag in SpecialFlag}
        values[MAX_DISCOUNT_FIELD] = DISCOUNT_RANGE[1]
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def replace(self, **changes: Any) -> 'SpecialPermissions':
        validate_special(changes)
        return dc_replace(self, **changes)

    def allows(self, flag: SpecialFlag) -> bool:
        return getattr(self, flag.value) is True


if tuple(f.name for f in fields(SpecialPermissions)) != SPECIAL_PERMISSION_FIELDS:
    raise RuntimeError('SpecialPermissions fields out of sync with the catalog')


def validate_special(raw: Any) -> None:
    if not isinstance(raw, Mapping):
        raise ValidationError('special permissions must be an object')
    for name, value in raw.items():
        if name not in SPECIAL_PERMISSION_FIELDS:
            raise ValidationError(f"unknown special permission '{name}'")
        if name == MAX_DISCOUNT_FIELD:
            _validate_discount_cap(value)
        elif not isinstance(value, bool):
            raise ValidationError(f"special permission '{name}' must be a boolean")


def _validate_discount_cap(value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f'{MAX_DISCOUNT_FIELD} must be a number')
    # ints of any size compare exactly; only floats can be nan/inf
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(f'{MAX_DISCOUNT_FIELD} must be a number')
    low, high = DISCOUNT_RANGE
    if value < low or value > high:
        raise ValidationError(f'{MAX_DISCOUNT_FIELD} must be between {low} and {high}')


def parse_grant(raw: Any) -> ResourceGrant:
    """Convert ``{resource: [actions]}`` into a ResourceGrant, rejecting unknown names.

    Empty action lists are kept (they matter when a grant is used as a merge override).
    """
    if not isinstance(raw, Mapping):
        raise ValidationError('grant must be an object of resource -> actions')
    grant: ResourceGrant = {}
    for key, actions in raw.items():
        resource = coerce_resource(key)
        if resource is None:
            raise ValidationError(f"unknown resource '{key}'")
        if isinstance(actions, (str, bytes)) or not isinstance(actions, Iterable):
            raise ValidationError(f"actions for '{resource.value}' must be a list")
        parsed = set()
        for item in actions:
            action = coerce_action(item)
            if action is None:
                raise ValidationError(f"unknown action '{item}' for resource '{resource.value}'")
            parsed.add(action)
        grant[resource] = frozenset(parsed)
    return grant


def load_grant(raw: Any) -> ResourceGrant:
    """Read a stored grant, dropping entries outside the catalog instead of raising.

    A damaged row loses authority for the damaged entries; it never gains any.
    """
    grant: ResourceGrant = {}
    if not isinstance(raw, Mapping):
        if raw is not None:
            logger.warning('Stored grant is not an object; treating as empty')
        return grant
    for key, actions in raw.items():
        resource = coerce_resource(key)
        if resource is None or isinstance(actions, (str, bytes)) or not isinstance(actions, Iterable):
            logger.warning('Dropping stored grant entry %r', key)
            continue
        parsed = frozenset(a for a in (coerce_action(item) for item in actions) if a is not None)
        grant[resource] = parsed
    return grant


def load_special(raw: Any) -> SpecialPermissions:
    """Read stored special permissions; unknown or mistyped fields fall back to the denied default."""
    if not isinstance(raw, Mapping):
        return SpecialPermissions()
    values: Dict[str, Any] = {}
    for name, value in raw.items():
        try:
            validate_special({name: value})
        except ValidationError as e:
            logger.warning('Dropping stored special permission: %s', e.detail)
            continue
        values[name] = value
    return SpecialPermissions(**values)


def validate(grant: Any = None, special: Any = None) -> None:
    """Check raw grant and special-permission payloads; raises ValidationError on the first violation."""
    if grant is not None:
        parse_grant(grant)
    if special is not None:
        validate_special(special)


def dump_grant(grant: Mapping[Resource, Iterable[Action]]) -> Dict[str, list]:
    """JSON form with resources and actions in catalog order."""
    out: Dict[str, list] = {}
    for resource in ALL_RESOURCES:
        if resource not in grant:
            continue
        actions = frozenset(grant[resource])
        out[resource.value] = [a.value for a in ALL_ACTIONS if a in actions]
    return out


def merge(base: Mapping[Resource, FrozenSet[Action]], override: Mapping[Resource, FrozenSet[Action]]) -> ResourceGrant:
    """Template cloning merge: an override entry replaces the base entry for that resource whole."""
    merged: ResourceGrant = dict(base)
    merged.update(override)
    return merged


def full_grant() -> ResourceGrant:
    return {resource: frozenset(ALL_ACTIONS) for resource in ALL_RESOURCES}


@dataclass(frozen=True)
class RoleSnapshot:
    """Immutable, already-parsed view of a role; what the evaluator reads."""
    id: Optional[int]
    tenant_id: str
    code: str
    is_active: bool
    is_system: bool
    grant: Mapping[Resource, FrozenSet[Action]]
    special: SpecialPermissions

    @classmethod
    def build(cls, *, id: Optional[int], tenant_id: str, code: str, is_active: bool, is_system: bool,
              grant: Mapping[Resource, FrozenSet[Action]], special: SpecialPermissions) -> 'RoleSnapshot':
        return cls(
            id=id,
            tenant_id=tenant_id,
            code=code,
            is_active=bool(is_active),
            is_system=bool(is_system),
            grant=MappingProxyType(dict(grant)),
            special=special,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'code': self.code,
            'is_active': self.is_active,
            'is_system': self.is_system,
            'grant': dump_grant(self.grant),
            'special': self.special.to_dict(),
        }


__all__ = [
    'ResourceGrant', 'SpecialPermissions', 'RoleSnapshot', 'validate', 'validate_special', 'parse_grant',
    'load_grant', 'load_special', 'dump_grant', 'merge', 'full_grant',
]
