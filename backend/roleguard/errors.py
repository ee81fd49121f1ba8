"""Role store and catalog errors.

Each error carries the HTTP status the app's error handler renders it with,
using the same ``{'error': {status, title, detail}}`` shape as HTTPException.
Evaluator denies are not errors; see services.evaluator.Decision.
"""
from __future__ import annotations


class RoleError(Exception):
    status_code = 400
    title = 'Bad Request'

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(RoleError):
    status_code = 400
    title = 'Validation Error'


class NotFoundError(RoleError):
    status_code = 404
    title = 'Not Found'


class ConflictError(RoleError):
    status_code = 409
    title = 'Conflict'


class ImmutableError(RoleError):
    status_code = 409
    title = 'Immutable Role'


class InUseError(RoleError):
    status_code = 409
    title = 'Role In Use'


class CatalogError(RoleError):
    """A caller passed a permission name outside the catalog (programming error)."""
    status_code = 500
    title = 'Catalog Violation'


__all__ = ['RoleError', 'ValidationError', 'NotFoundError', 'ConflictError', 'ImmutableError', 'InUseError', 'CatalogError']
