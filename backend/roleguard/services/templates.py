"""Default role templates seeded into every tenant.

Templates are compiled-in and never mutated at runtime; changing a default permission set
is a deployment. ``instantiate`` returns an independent copy: later template edits never
reach roles that were already created from it.
"""
from __future__ import annotations
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

from roleguard.constants.catalog import Action, Resource
from roleguard.errors import NotFoundError
from roleguard.models.role import Role
from roleguard.services.permissions import SpecialPermissions, dump_grant, full_grant

C, R, U, D, E, I = Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE, Action.EXPORT, Action.IMPORT


def _grant(entries: Mapping[Resource, Iterable[Action]]) -> Mapping[Resource, FrozenSet[Action]]:
    return MappingProxyType({resource: frozenset(actions) for resource, actions in entries.items() if actions})


@dataclass(frozen=True)
class RoleTemplate:
    code: str
    name: str
    description: str
    color: str
    sort_order: int
    grant: Mapping[Resource, FrozenSet[Action]]
    special: SpecialPermissions

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'name': self.name,
            'description': self.description,
            'color': self.color,
            'sort_order': self.sort_order,
            'grant': dump_grant(self.grant),
            'special': self.special.to_dict(),
        }


ADMIN = RoleTemplate(
    code='admin',
    name='Administrador',
    description='Acceso completo al sistema',
    color='#dc2626',
    sort_order=1,
    grant=_grant(full_grant()),
    special=SpecialPermissions.all_granted(),
)

MANAGER = RoleTemplate(
    code='gerente',
    name='Gerente',
    description='Gestión completa de ventas y compras con visibilidad de costes',
    color='#ea580c',
    sort_order=2,
    grant=_grant({
        Resource.CUSTOMERS: (C, R, U, E),
        Resource.SUPPLIERS: (C, R, U, E),
        Resource.PRODUCTS: (C, R, U, E),
        Resource.PRODUCT_FAMILIES: (C, R, U),
        Resource.WAREHOUSES: (R, U),
        Resource.QUOTES: (C, R, U, D, E),
        Resource.SALES_ORDERS: (C, R, U, D, E),
        Resource.DELIVERY_NOTES: (C, R, U, D, E),
        Resource.INVOICES: (C, R, U, E),
        Resource.PURCHASE_QUOTES: (C, R, U, D, E),
        Resource.PURCHASE_ORDERS: (C, R, U, D, E),
        Resource.PURCHASE_DELIVERY_NOTES: (C, R, U, D, E),
        Resource.PURCHASE_INVOICES: (C, R, U, E),
        Resource.USERS: (R,),
        Resource.ROLES: (R,),
        Resource.CONFIGURATION: (R,),
        Resource.REPORTS: (R, E),
        Resource.PROJECTS: (C, R, U, D),
        Resource.SALES_AGENTS: (C, R, U),
        Resource.PAYMENT_METHODS: (R,),
        Resource.TAX_TYPES: (R,),
        Resource.WORK_ORDERS: (C, R, U, D, E),
        Resource.MACHINERY: (C, R, U, D),
        Resource.EXPENSE_TYPES: (C, R, U, D),
    }),
    special=SpecialPermissions(
        view_costs=True,
        view_margins=True,
        view_billing_data=True,
        modify_sale_price=True,
        modify_purchase_price=True,
        apply_discounts=True,
        max_discount_percent=50,
        export_data=True,
        void_documents=True,
        view_change_history=True,
        access_sales=True,
        access_purchasing=True,
        access_warehouse=True,
        access_accounting=True,
        access_pos=True,
    ),
)

SALESPERSON = RoleTemplate(
    code='vendedor',
    name='Vendedor',
    description='Gestión de ventas sin visibilidad de costes',
    color='#16a34a',
    sort_order=3,
    grant=_grant({
        Resource.CUSTOMERS: (C, R, U),
        Resource.SUPPLIERS: (R,),
        Resource.PRODUCTS: (R,),
        Resource.PRODUCT_FAMILIES: (R,),
        Resource.WAREHOUSES: (R,),
        Resource.QUOTES: (C, R, U),
        Resource.SALES_ORDERS: (C, R, U),
        Resource.DELIVERY_NOTES: (C, R, U),
        Resource.INVOICES: (C, R),
        Resource.REPORTS: (R,),
        Resource.PROJECTS: (C, R, U),
        Resource.SALES_AGENTS: (R,),
        Resource.PAYMENT_METHODS: (R,),
        Resource.TAX_TYPES: (R,),
        Resource.WORK_ORDERS: (R,),
    }),
    special=SpecialPermissions(
        apply_discounts=True,
        max_discount_percent=15,
        access_sales=True,
        access_pos=True,
    ),
)

TECHNICIAN = RoleTemplate(
    code='tecnico',
    name='Técnico',
    description='Acceso a productos y pedidos para servicio técnico',
    color='#2563eb',
    sort_order=4,
    grant=_grant({
        Resource.CUSTOMERS: (R,),
        Resource.SUPPLIERS: (R,),
        Resource.PRODUCTS: (R, U),
        Resource.PRODUCT_FAMILIES: (R,),
        Resource.WAREHOUSES: (R,),
        Resource.QUOTES: (R,),
        Resource.SALES_ORDERS: (R,),
        Resource.DELIVERY_NOTES: (R,),
        Resource.PURCHASE_ORDERS: (R,),
        Resource.PURCHASE_DELIVERY_NOTES: (R,),
        Resource.PROJECTS: (R,),
        Resource.WORK_ORDERS: (C, R, U),
        Resource.MACHINERY: (R,),
        Resource.EXPENSE_TYPES: (R,),
    }),
    special=SpecialPermissions(access_warehouse=True),
)

WAREHOUSE_CLERK = RoleTemplate(
    code='almacenero',
    name='Almacenero',
    description='Gestión de almacén y stock',
    color='#7c3aed',
    sort_order=5,
    grant=_grant({
        Resource.SUPPLIERS: (R,),
        Resource.PRODUCTS: (R, U),
        Resource.PRODUCT_FAMILIES: (R,),
        Resource.WAREHOUSES: (R, U),
        Resource.SALES_ORDERS: (R, U),
        Resource.DELIVERY_NOTES: (R, U),
        Resource.PURCHASE_ORDERS: (R, U),
        Resource.PURCHASE_DELIVERY_NOTES: (R, U),
        Resource.WORK_ORDERS: (R,),
        Resource.MACHINERY: (R,),
        Resource.EXPENSE_TYPES: (R,),
    }),
    special=SpecialPermissions(
        view_costs=True,
        access_purchasing=True,
        access_warehouse=True,
    ),
)

READ_ONLY = RoleTemplate(
    code='visualizador',
    name='Solo Lectura',
    description='Acceso de solo lectura a toda la información',
    color='#6b7280',
    sort_order=6,
    grant=_grant({resource: (R,) for resource in Resource}),
    special=SpecialPermissions(view_billing_data=True),
)

TEMPLATES = (ADMIN, MANAGER, SALESPERSON, TECHNICIAN, WAREHOUSE_CLERK, READ_ONLY)
TEMPLATE_CODES = tuple(t.code for t in TEMPLATES)
_TEMPLATES_BY_CODE: Dict[str, RoleTemplate] = {t.code: t for t in TEMPLATES}


def list_templates() -> List[RoleTemplate]:
    return list(TEMPLATES)


def get_template(code: Optional[str]) -> RoleTemplate:
    template = _TEMPLATES_BY_CODE.get(code) if isinstance(code, str) else None
    if template is None:
        raise NotFoundError(f"unknown role template '{code}'")
    return template


def instantiate(template_code: str, tenant_id: str) -> Role:
    """Unsaved system Role for ``tenant_id`` holding its own copy of the template's permissions."""
    template = get_template(template_code)
    return Role(
        tenant_id=tenant_id,
        code=template.code,
        name=template.name,
        description=template.description,
        base_template=template.code,
        resource_grants=dump_grant(template.grant),
        special_permissions=template.special.to_dict(),
        color=template.color,
        sort_order=template.sort_order,
        is_active=True,
        is_system=True,
    )


__all__ = ['RoleTemplate', 'TEMPLATES', 'TEMPLATE_CODES', 'list_templates', 'get_template', 'instantiate']
