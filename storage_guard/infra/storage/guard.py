"""Policy gate shared by the storage service and the presigned URL issuer.

``authorize`` is the single place where a storage call becomes an
``OperationRequest``: it substitutes the default role, runs the validator,
counts the decision and raises on deny. Nothing here talks to the store.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from storage_guard.core.policy import OperationKind, OperationRequest, SecurityPolicy, ensure_allowed

from .backends.protocol import CannedACL
from .exceptions import PolicyViolationError, StorageValidationError
from .metrics import record_policy_decision

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)


def resolve_role(policy: SecurityPolicy | None, role: str | None) -> str | None:
    """Return the effective role for a call.

    An explicit role wins. Otherwise the policy's default role applies, if
    one is configured. An empty string counts as "no role given".
    """
    if role:
        return role
    if policy is None:
        return None
    return policy.default_role


def authorize(
    policy: SecurityPolicy | None,
    operation: OperationKind,
    key: str,
    *,
    role: str | None = None,
    content_type: str | None = None,
    content_length: int | None = None,
    metadata: Mapping[str, str] | None = None,
) -> OperationRequest:
    """Validate one operation, raising before anything reaches the store.

    Returns:
        The validated request, with the effective role filled in.

    Raises:
        PolicyViolationError: If the policy denies the operation.
    """
    request = OperationRequest(
        operation=operation,
        key=key,
        role=resolve_role(policy, role),
        content_type=content_type,
        content_length=content_length,
        metadata=metadata,
    )

    try:
        ensure_allowed(policy, request)
    except PolicyViolationError as e:
        record_policy_decision(operation.value, allowed=False, rule=str(e.rule))
        raise

    record_policy_decision(operation.value, allowed=True)
    logger.debug("Storage operation allowed by policy", extra=request.as_log_extra())
    return request


def coerce_acl(acl: CannedACL | str) -> CannedACL:
    """Turn a canned ACL name into ``CannedACL``.

    Raises:
        StorageValidationError: If ``acl`` is not a known canned ACL.
    """
    try:
        return CannedACL(acl)
    except ValueError:
        raise StorageValidationError(
            f"Invalid ACL {acl!r}",
            metadata={"acl": str(acl), "allowed": [a.value for a in CannedACL]},
        ) from None
