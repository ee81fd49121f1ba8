from __future__ import annotations
from typing import Any, Dict, Optional
from flask_jwt_extended import get_jwt_identity, get_jwt
from roleguard import get_db
from roleguard.models.audit import AuditLog


def _claims() -> Dict[str, Any]:
    try:
        return get_jwt() or {}
    except RuntimeError:
        # outside a verified request (scripts, direct service calls)
        return {}


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[str] = None,
              meta: Optional[Dict[str, Any]] = None, tenant_id: Optional[str] = None):
    """Persist an audit log entry within the current DB session.

    Parameters:
      action: short action code e.g. ROLE.CREATE, ROLE.UPDATE, USER.ROLE.SET
      entity: optional entity name (Role, User)
      entity_id: optional primary key string
      meta: additional JSON-safe dictionary (will be shallow copied)
      tenant_id: defaults to the ``tenant_id`` claim of the current token
    """
    session = get_db()
    claims = _claims()
    actor = get_jwt_identity() if claims else None
    log = AuditLog(
        tenant_id=tenant_id or claims.get('tenant_id'),
        actor_user_id=str(actor) if actor is not None else None,
        actor_role_id=claims.get('role_id'),
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log
