#!/usr/bin/env python
"""Idempotent provisioning of a tenant's system roles (one per template).

Usage:
    python backend/scripts/provision_tenant.py ACME                # create missing system roles
    python backend/scripts/provision_tenant.py ACME --dry-run      # report what would be created, write nothing
    python backend/scripts/provision_tenant.py ACME --show-roles   # print the tenant's roles afterwards
    python backend/scripts/provision_tenant.py ACME --validate     # check stored permissions against the catalog
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from sqlalchemy import inspect

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from roleguard import create_app, get_db  # type: ignore
from roleguard.errors import ValidationError
from roleguard.models.role import Base, Role
import roleguard.models.audit  # noqa: F401
from roleguard.services.permissions import parse_grant, validate_special
from roleguard.services.role_store import RoleStore
from roleguard.services.templates import TEMPLATE_CODES


def ensure_schema(session):
    # Lightweight fallback if migrations have not run yet; in real env prefer alembic upgrade
    engine = session.get_bind()
    if not inspect(engine).has_table(Role.__tablename__):
        Base.metadata.create_all(engine)


def missing_templates(store: RoleStore, tenant_id: str):
    return [code for code in TEMPLATE_CODES if store.get_by_tenant_and_code(tenant_id, code) is None]


def validate_roles(roles):
    problems = []
    for role in roles:
        try:
            parse_grant(role.resource_grants or {})
            validate_special(role.special_permissions or {})
        except ValidationError as e:
            problems.append(f"Role '{role.code}': {e.detail}")
    return problems


def print_role_summary(roles):
    if not roles:
        print("[INFO] No roles present.")
        return
    code_w = max(len(r.code) for r in roles)
    print(f"{'Code'.ljust(code_w)} | System | Active | Resources | Discount cap")
    print('-' * (code_w + 48))
    for r in roles:
        special = r.special
        cap = special.max_discount_percent if special.apply_discounts else '-'
        print(f"{r.code.ljust(code_w)} | {str(r.is_system).ljust(6)} | {str(r.is_active).ljust(6)} | "
              f"{str(len(r.grant)).rjust(9)} | {cap}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Provision the system roles of a tenant",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  provision: provision_tenant.py ACME\n  dry run: provision_tenant.py ACME --dry-run\n  show roles: provision_tenant.py ACME --show-roles\n""")
    )
    p.add_argument('tenant_id', help='Tenant identifier')
    p.add_argument('--show-roles', action='store_true', help="Print the tenant's roles after provisioning")
    p.add_argument('--dry-run', action='store_true', help='Only report which system roles are missing (no writes)')
    p.add_argument('--validate', action='store_true', help='Check stored permissions of every role; exits 2 on problems')
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    app = create_app()
    with app.app_context():
        session = get_db()
        ensure_schema(session)
        store = RoleStore(session)
        missing = missing_templates(store, args.tenant_id)
        if args.dry_run:
            print(f"[DRY-RUN] System roles would create: {len(missing)} {missing}")
        else:
            store.provision_tenant(args.tenant_id)
            print(f"[DONE] System roles created: {len(missing)}, tenant: {args.tenant_id}")
        roles = store.list_by_tenant(args.tenant_id)
        if args.show_roles:
            print_role_summary(roles)
        if args.validate:
            problems = validate_roles(roles)
            if problems:
                print('\n[VALIDATION] FAIL:')
                for problem in problems:
                    print(' -', problem)
                return 2
            print('[VALIDATION] OK: all stored permissions are inside the catalog.')
    return 0


if __name__ == '__main__':
    sys.exit(main())
