import math
import pytest
from roleguard.constants.catalog import Action, Resource, SpecialFlag
from roleguard.errors import ValidationError
from roleguard.services.permissions import (
    RoleSnapshot, SpecialPermissions, dump_grant, full_grant, load_grant, load_special, merge,
    parse_grant, validate,
)


def test_special_permissions_default_to_denied():
    sp = SpecialPermissions()
    assert not any(sp.allows(flag) for flag in SpecialFlag)
    assert sp.max_discount_percent == 0


def test_all_granted_caps_discount_at_100():
    sp = SpecialPermissions.all_granted()
    assert all(sp.allows(flag) for flag in SpecialFlag)
    assert sp.max_discount_percent == 100


@pytest.mark.parametrize('cap', [-1, 100.5, 'ten', True, math.nan, math.inf, 10 ** 400, -10 ** 400])
def test_discount_cap_out_of_range_is_rejected(cap):
    with pytest.raises(ValidationError):
        SpecialPermissions(apply_discounts=True, max_discount_percent=cap)


def test_special_from_dict_rejects_unknown_and_mistyped_fields():
    with pytest.raises(ValidationError):
        SpecialPermissions.from_dict({'fly': True})
    with pytest.raises(ValidationError):
        SpecialPermissions.from_dict({'view_costs': 'yes'})
    sp = SpecialPermissions.from_dict({'view_costs': True, 'max_discount_percent': 12.5})
    assert sp.view_costs is True and sp.max_discount_percent == 12.5
    assert sp.view_margins is False


def test_replace_validates_and_returns_new_value():
    sp = SpecialPermissions()
    changed = sp.replace(manage_roles=True)
    assert changed.manage_roles and not sp.manage_roles
    with pytest.raises(ValidationError):
        sp.replace(max_discount_percent=101)


def test_parse_grant_rejects_names_outside_catalog():
    grant = parse_grant({'facturas': ['create', 'read'], 'clientes': []})
    assert grant[Resource.INVOICES] == frozenset({Action.CREATE, Action.READ})
    assert grant[Resource.CUSTOMERS] == frozenset()
    with pytest.raises(ValidationError):
        parse_grant({'widgets': ['read']})
    with pytest.raises(ValidationError):
        parse_grant({'facturas': ['approve']})
    with pytest.raises(ValidationError):
        parse_grant({'facturas': 'read'})
    with pytest.raises(ValidationError):
        parse_grant(['facturas'])


def test_validate_checks_both_parts():
    validate(grant={'roles': ['read']}, special={'manage_roles': True})
    with pytest.raises(ValidationError):
        validate(special={'max_discount_percent': 150})


def test_load_grant_drops_corrupt_entries_instead_of_widening():
    grant = load_grant({'facturas': ['read', 'approve'], 'widgets': ['read'], 'clientes': 'read'})
    assert grant == {Resource.INVOICES: frozenset({Action.READ})}
    assert load_grant(None) == {}
    assert load_grant('garbage') == {}


def test_load_special_falls_back_to_denied_per_field():
    sp = load_special({'view_costs': True, 'manage_roles': 'yes', 'max_discount_percent': 10 ** 400, 'bogus': True})
    assert sp.view_costs is True
    assert sp.manage_roles is False
    assert sp.max_discount_percent == 0


def test_merge_replaces_whole_resource_entries():
    base = {Resource.INVOICES: frozenset({Action.CREATE, Action.READ, Action.DELETE}), Resource.CUSTOMERS: frozenset({Action.READ})}
    merged = merge(base, {Resource.INVOICES: frozenset({Action.READ})})
    assert merged[Resource.INVOICES] == frozenset({Action.READ})
    assert merged[Resource.CUSTOMERS] == frozenset({Action.READ})
    # inputs untouched
    assert Action.DELETE in base[Resource.INVOICES]


def test_dump_grant_uses_catalog_order():
    dumped = dump_grant({Resource.INVOICES: {Action.READ, Action.CREATE}, Resource.CUSTOMERS: {Action.EXPORT}})
    assert list(dumped) == ['clientes', 'facturas']
    assert dumped['facturas'] == ['create', 'read']
    assert len(dump_grant(full_grant())) == len(Resource)


def test_snapshot_is_read_only():
    snap = RoleSnapshot.build(id=1, tenant_id='t', code='x', is_active=True, is_system=False,
                              grant={Resource.ROLES: frozenset({Action.READ})}, special=SpecialPermissions())
    with pytest.raises(TypeError):
        snap.grant[Resource.USERS] = frozenset({Action.READ})
    assert snap.to_dict()['grant'] == {'roles': ['read']}
