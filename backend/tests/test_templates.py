import pytest
from roleguard.constants.catalog import Action, Resource, SpecialFlag
from roleguard.errors import NotFoundError
from roleguard.services.templates import TEMPLATE_CODES, get_template, instantiate, list_templates


def test_six_templates_in_display_order():
    assert TEMPLATE_CODES == ('admin', 'gerente', 'vendedor', 'tecnico', 'almacenero', 'visualizador')
    assert [t.sort_order for t in list_templates()] == [1, 2, 3, 4, 5, 6]


def test_admin_template_grants_everything():
    admin = get_template('admin')
    for resource in Resource:
        assert admin.grant[resource] == frozenset(Action)
    assert all(admin.special.allows(flag) for flag in SpecialFlag)
    assert admin.special.max_discount_percent == 100


def test_salesperson_template():
    t = get_template('vendedor')
    assert t.grant[Resource.INVOICES] == frozenset({Action.CREATE, Action.READ})
    assert t.special.apply_discounts and t.special.max_discount_percent == 15
    assert not t.special.view_costs
    assert Resource.ROLES not in t.grant


def test_read_only_template_reads_everything_and_nothing_else():
    t = get_template('visualizador')
    assert set(t.grant) == set(Resource)
    assert all(actions == frozenset({Action.READ}) for actions in t.grant.values())
    granted = [flag for flag in SpecialFlag if t.special.allows(flag)]
    assert granted == [SpecialFlag.VIEW_BILLING_DATA]


def test_manager_cap_and_role_management():
    t = get_template('gerente')
    assert t.special.max_discount_percent == 50
    assert not t.special.manage_roles
    assert t.grant[Resource.ROLES] == frozenset({Action.READ})


def test_unknown_template_raises():
    with pytest.raises(NotFoundError):
        get_template('superuser')


def test_instantiate_returns_independent_system_copy():
    role = instantiate('vendedor', 'acme')
    assert role.id is None
    assert role.is_system and role.is_active
    assert role.base_template == 'vendedor'
    role.resource_grants['facturas'].append('delete')
    # the template is untouched by edits to the copy
    assert Action.DELETE not in get_template('vendedor').grant[Resource.INVOICES]
    assert 'delete' not in instantiate('vendedor', 'acme').resource_grants['facturas']
