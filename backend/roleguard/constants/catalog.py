"""Closed catalogs for the authorization engine: resources, actions and special permissions.

Everything here is a module-level constant. Nothing registers new entries at runtime;
a name that is not in these enums is invalid wherever it shows up.
Never rename a persisted value silently: tenants' stored grants reference them.
"""
from __future__ import annotations
from enum import Enum
from typing import Dict, Optional, Tuple, Union


class Resource(str, Enum):
    CUSTOMERS = 'clientes'
    SUPPLIERS = 'proveedores'
    PRODUCTS = 'productos'
    PRODUCT_FAMILIES = 'familias'
    WAREHOUSES = 'almacenes'
    QUOTES = 'presupuestos'
    SALES_ORDERS = 'pedidos'
    DELIVERY_NOTES = 'albaranes'
    INVOICES = 'facturas'
    PURCHASE_QUOTES = 'presupuestos-compra'
    PURCHASE_ORDERS = 'pedidos-compra'
    PURCHASE_DELIVERY_NOTES = 'albaranes-compra'
    PURCHASE_INVOICES = 'facturas-compra'
    USERS = 'usuarios'
    ROLES = 'roles'
    CONFIGURATION = 'configuracion'
    REPORTS = 'reportes'
    PROJECTS = 'proyectos'
    SALES_AGENTS = 'agentes'
    PAYMENT_METHODS = 'formas-pago'
    TAX_TYPES = 'tipos-impuesto'
    WORK_ORDERS = 'partes-trabajo'
    MACHINERY = 'maquinaria'
    EXPENSE_TYPES = 'tipos-gasto'


class Action(str, Enum):
    CREATE = 'create'
    READ = 'read'
    UPDATE = 'update'
    DELETE = 'delete'
    EXPORT = 'export'
    IMPORT = 'import'


class SpecialFlag(str, Enum):
    """Boolean permissions outside the resource/action matrix.

    Values are the SpecialPermissions field names.
    """
    # financial visibility
    VIEW_COSTS = 'view_costs'
    VIEW_MARGINS = 'view_margins'
    VIEW_BILLING_DATA = 'view_billing_data'
    # pricing
    MODIFY_SALE_PRICE = 'modify_sale_price'
    MODIFY_PURCHASE_PRICE = 'modify_purchase_price'
    APPLY_DISCOUNTS = 'apply_discounts'
    # system management
    ACCESS_CONFIGURATION = 'access_configuration'
    MANAGE_USERS = 'manage_users'
    MANAGE_ROLES = 'manage_roles'
    # bulk operations
    EXPORT_DATA = 'export_data'
    IMPORT_DATA = 'import_data'
    # destructive operations
    VOID_DOCUMENTS = 'void_documents'
    DELETE_DOCUMENTS = 'delete_documents'
    VIEW_CHANGE_HISTORY = 'view_change_history'
    # module access
    ACCESS_SALES = 'access_sales'
    ACCESS_PURCHASING = 'access_purchasing'
    ACCESS_WAREHOUSE = 'access_warehouse'
    ACCESS_ACCOUNTING = 'access_accounting'
    ACCESS_POS = 'access_pos'


class BoundedPermission(str, Enum):
    DISCOUNT = 'discount'


MAX_DISCOUNT_FIELD = 'max_discount_percent'
DISCOUNT_RANGE: Tuple[float, float] = (0, 100)

# bounded permission -> (gate flag, numeric cap field)
BOUNDED_PERMISSIONS: Dict[BoundedPermission, Tuple[SpecialFlag, str]] = {
    BoundedPermission.DISCOUNT: (SpecialFlag.APPLY_DISCOUNTS, MAX_DISCOUNT_FIELD),
}

ALL_RESOURCES: Tuple[Resource, ...] = tuple(Resource)
ALL_ACTIONS: Tuple[Action, ...] = tuple(Action)

# Field order of SpecialPermissions; the numeric cap sits right after its gate.
SPECIAL_PERMISSION_FIELDS: Tuple[str, ...] = tuple(
    name
    for flag in SpecialFlag
    for name in ((flag.value, MAX_DISCOUNT_FIELD) if flag is SpecialFlag.APPLY_DISCOUNTS else (flag.value,))
)

# Enum members hash by name, so lookups by raw string go through these maps.
_RESOURCES_BY_VALUE: Dict[str, Resource] = {r.value: r for r in Resource}
_ACTIONS_BY_VALUE: Dict[str, Action] = {a.value: a for a in Action}
_FLAGS_BY_VALUE: Dict[str, SpecialFlag] = {f.value: f for f in SpecialFlag}
_BOUNDED_BY_VALUE: Dict[str, BoundedPermission] = {b.value: b for b in BoundedPermission}


def coerce_resource(value: Union[Resource, str, None]) -> Optional[Resource]:
    if isinstance(value, Resource):
        return value
    if isinstance(value, str):
        return _RESOURCES_BY_VALUE.get(value)
    return None


def coerce_action(value: Union[Action, str, None]) -> Optional[Action]:
    if isinstance(value, Action):
        return value
    if isinstance(value, str):
        return _ACTIONS_BY_VALUE.get(value)
    return None


def coerce_special_flag(value: Union[SpecialFlag, str, None]) -> Optional[SpecialFlag]:
    if isinstance(value, SpecialFlag):
        return value
    if isinstance(value, str):
        return _FLAGS_BY_VALUE.get(value)
    return None


def coerce_bounded_permission(value: Union[BoundedPermission, str, None]) -> Optional[BoundedPermission]:
    if isinstance(value, BoundedPermission):
        return value
    if isinstance(value, str):
        return _BOUNDED_BY_VALUE.get(value)
    return None


# --- Display descriptors for the role editor ---

RESOURCE_LABELS: Dict[Resource, str] = {
    Resource.CUSTOMERS: 'Clientes',
    Resource.SUPPLIERS: 'Proveedores',
    Resource.PRODUCTS: 'Productos',
    Resource.PRODUCT_FAMILIES: 'Familias',
    Resource.WAREHOUSES: 'Almacenes',
    Resource.QUOTES: 'Presupuestos (Ventas)',
    Resource.SALES_ORDERS: 'Pedidos (Ventas)',
    Resource.DELIVERY_NOTES: 'Albaranes (Ventas)',
    Resource.INVOICES: 'Facturas (Ventas)',
    Resource.PURCHASE_QUOTES: 'Presupuestos (Compras)',
    Resource.PURCHASE_ORDERS: 'Pedidos (Compras)',
    Resource.PURCHASE_DELIVERY_NOTES: 'Albaranes (Compras)',
    Resource.PURCHASE_INVOICES: 'Facturas (Compras)',
    Resource.USERS: 'Usuarios',
    Resource.ROLES: 'Roles',
    Resource.CONFIGURATION: 'Configuración',
    Resource.REPORTS: 'Informes',
    Resource.PROJECTS: 'Proyectos',
    Resource.SALES_AGENTS: 'Agentes/Comerciales',
    Resource.PAYMENT_METHODS: 'Formas de Pago',
    Resource.TAX_TYPES: 'Tipos de Impuesto',
    Resource.WORK_ORDERS: 'Partes de Trabajo',
    Resource.MACHINERY: 'Maquinaria',
    Resource.EXPENSE_TYPES: 'Tipos de Gasto',
}

# field -> (label, description, kind)
SPECIAL_PERMISSION_INFO: Dict[str, Tuple[str, str, str]] = {
    'view_costs': ('Ver Costes', 'Ver precios de compra y costes de productos', 'boolean'),
    'view_margins': ('Ver Márgenes', 'Ver márgenes de beneficio en productos y documentos', 'boolean'),
    'view_billing_data': ('Ver Datos Facturación', 'Ver CIF, direcciones y datos fiscales de clientes', 'boolean'),
    'modify_sale_price': ('Modificar PVP', 'Modificar precios de venta en documentos', 'boolean'),
    'modify_purchase_price': ('Modificar Precio Compra', 'Modificar precios de compra en documentos', 'boolean'),
    'apply_discounts': ('Aplicar Descuentos', 'Aplicar descuentos en líneas de documentos', 'boolean'),
    'max_discount_percent': ('Descuento Máximo (%)', 'Porcentaje máximo de descuento permitido', 'number'),
    'access_configuration': ('Acceder Configuración', 'Acceder a la configuración de la empresa', 'boolean'),
    'manage_users': ('Gestionar Usuarios', 'Crear, editar y eliminar usuarios', 'boolean'),
    'manage_roles': ('Gestionar Roles', 'Crear y modificar roles personalizados', 'boolean'),
    'export_data': ('Exportar Datos', 'Exportar datos a Excel/CSV', 'boolean'),
    'import_data': ('Importar Datos', 'Importar datos masivamente', 'boolean'),
    'void_documents': ('Anular Documentos', 'Anular facturas, albaranes y otros documentos', 'boolean'),
    'delete_documents': ('Eliminar Documentos', 'Eliminar documentos completamente', 'boolean'),
    'view_change_history': ('Ver Historial', 'Ver historial de modificaciones de documentos', 'boolean'),
    'access_sales': ('Acceso Ventas', 'Acceder al módulo de ventas', 'boolean'),
    'access_purchasing': ('Acceso Compras', 'Acceder al módulo de compras', 'boolean'),
    'access_warehouse': ('Acceso Almacén', 'Acceder al módulo de almacén', 'boolean'),
    'access_accounting': ('Acceso Contabilidad', 'Acceder a informes financieros', 'boolean'),
    'access_pos': ('Acceso TPV', 'Acceder al terminal punto de venta', 'boolean'),
}


def catalog_descriptor() -> Dict[str, list]:
    """JSON-ready view of the catalogs for the role editor."""
    return {
        'resources': [{'resource': r.value, 'name': RESOURCE_LABELS[r]} for r in Resource],
        'actions': [a.value for a in Action],
        'special_permissions': [
            {'code': field, 'name': info[0], 'description': info[1], 'kind': info[2]}
            for field, info in ((f, SPECIAL_PERMISSION_INFO[f]) for f in SPECIAL_PERMISSION_FIELDS)
        ],
    }


__all__ = [
    'Resource', 'Action', 'SpecialFlag', 'BoundedPermission', 'BOUNDED_PERMISSIONS',
    'MAX_DISCOUNT_FIELD', 'DISCOUNT_RANGE', 'ALL_RESOURCES', 'ALL_ACTIONS', 'SPECIAL_PERMISSION_FIELDS',
    'coerce_resource', 'coerce_action', 'coerce_special_flag', 'coerce_bounded_permission',
    'RESOURCE_LABELS', 'SPECIAL_PERMISSION_INFO', 'catalog_descriptor',
]
