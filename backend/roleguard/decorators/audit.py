from __future__ import annotations
"""Audit logging decorator to keep add_audit() calls out of route handlers.

Usage examples:

@audit_log('ROLE.CREATE', entity='Role', entity_id_key='id', meta_keys=['code', 'base_template'])
def create_role():
    ... return role.to_dict(), 201

@audit_log('ROLE.UPDATE', entity='Role', entity_id_arg='role_id',
           diff_keys=['name', 'grant', 'special'], pre_fetch=_role_before)
def update_role(role_id): ...

Parameters:
  action: required audit action code (e.g. ROLE.CREATE)
  entity: optional entity label (Role, User)
  entity_id_key: key in the returned JSON object whose value becomes entity_id.
  entity_id_arg: name of the path parameter to use for entity_id (fallback if entity_id_key absent).
  meta_keys: list of keys to project from returned JSON into meta dict (shallow copy).
  meta_builder: callable returning a meta dict; receives (data, original_return_value, args, kwargs).
  diff_keys / pre_fetch: pre_fetch(args, kwargs) snapshots the entity before the call; keys whose
    value differs afterwards are recorded under meta['changes'] as {'before', 'after'}.

Only successful responses (status < 400) are audited. The wrapped handler commits its own
work first; the audit row is committed separately so a failing audit write is logged and
never turns a completed mutation into an error response.
"""

import logging
from functools import wraps
from typing import Any, Callable, Iterable, Optional, Dict

from roleguard.services.audit import add_audit
from roleguard import get_db

logger = logging.getLogger(__name__)


def _extract_payload(rv: Any):
    """Return (data, status) where data is the JSON-able dict for inspection."""
    if isinstance(rv, tuple) and rv:
        status = rv[1] if len(rv) > 1 and isinstance(rv[1], int) else 200
        return rv[0], status
    return rv, 200


def _diff(before: Dict[str, Any], after: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Any]:
    changes = {}
    for k in keys:
        if k in before and k in after and before.get(k) != after.get(k):
            changes[k] = {'before': before.get(k), 'after': after.get(k)}
    return changes


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before_snapshot = pre_fetch(args, kwargs) if (diff_keys and pre_fetch) else None
            rv = fn(*args, **kwargs)
            data, status = _extract_payload(rv)
            if status >= 400:
                return rv
            if not isinstance(data, dict):
                data = {}
            entity_id = None
            if entity_id_key and entity_id_key in data:
                entity_id = data.get(entity_id_key)
            elif entity_id_arg and entity_id_arg in kwargs:
                entity_id = kwargs.get(entity_id_arg)
            if meta_builder:
                meta = meta_builder(data, rv, args, kwargs) or {}
            else:
                meta = {k: data.get(k) for k in (meta_keys or ()) if k in data}
            if diff_keys and isinstance(before_snapshot, dict):
                changes = _diff(before_snapshot, data, diff_keys)
                if changes:
                    meta['changes'] = changes
            session = get_db()
            try:
                add_audit(action, entity, entity_id, meta)
                session.commit()
            except Exception:
                session.rollback()
                logger.exception('Failed to write audit entry %s for %s %s', action, entity, entity_id)
            return rv
        return wrapper
    return outer
