"""Declarative, role-based access policy for storage operations.

Components:
    Policy Model:
        - SecurityPolicy: global limits plus optional role-based access
        - RoleBasedAccess / RolePermissions: per-role permission bundles
        - OperationKind: closed set of operations a policy can grant

    Validation:
        - OperationRequest: one operation as seen by the validator
        - Decision / PolicyRule: allow, or deny tagged with the failing rule
        - validate: pure (policy, request) -> Decision
        - ensure_allowed: raising form used by the storage service

Example:
    >>> from storage_guard.core.policy import (
    ...     OperationKind, OperationRequest, SecurityPolicy, validate,
    ... )
    >>> policy = SecurityPolicy.model_validate({
    ...     "roleBasedAccess": {
    ...         "roles": {"viewer": {"allowedOperations": ["read", "list"]}},
    ...     },
    ... })
    >>> decision = validate(
    ...     policy,
    ...     OperationRequest(OperationKind.WRITE, "docs/a.txt", role="viewer"),
    ... )
    >>> decision.allowed, decision.rule
    (False, <PolicyRule.OPERATION_NOT_ALLOWED: 'operation_not_allowed'>)
"""

from __future__ import annotations

from storage_guard.core.policy.models import (
    Decision,
    OperationKind,
    OperationRequest,
    PolicyRule,
    RoleBasedAccess,
    RolePermissions,
    SecurityPolicy,
)
from storage_guard.core.policy.validator import ensure_allowed, validate

__all__ = [
    "Decision",
    "OperationKind",
    "OperationRequest",
    "PolicyRule",
    "RoleBasedAccess",
    "RolePermissions",
    "SecurityPolicy",
    "ensure_allowed",
    "validate",
]
