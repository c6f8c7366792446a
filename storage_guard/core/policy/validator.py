"""Operation validator: decides whether a request is allowed by a policy.

``validate`` is a pure function. It reads the policy and the request, holds
no state between calls and performs no I/O, so it can be called from any
number of coroutines or threads at once without locking.

Checks run in a fixed order and the first failing one decides:

1. content type against the global allow-list
2. content length against the global size limit
3. key against the global allowed prefixes
4. key against the global denied prefixes
5. role checks, only when the request names a role and role-based access is
   configured: role exists, operation granted, role prefixes, role content
   types, role size limit

Checks 3 and 4 are independent. A key has to match an allowed prefix *and*
match no denied prefix; being allowed never overrides being denied.

Prefix matching is a literal ``str.startswith``. No globbing, no path
normalisation: ``"public/../private/x"`` starts with ``"public/"``.

The validator never applies the default role. Callers that want default-role
behaviour substitute it into the request before calling ``validate``.
"""

from __future__ import annotations

from collections.abc import Callable, Collection, Iterable
import logging

from .models import Decision, OperationRequest, PolicyRule, SecurityPolicy

__all__ = ["ensure_allowed", "validate"]

logger = logging.getLogger(__name__)

_Check = Callable[[SecurityPolicy, OperationRequest], Decision | None]


def _restricts(values: Collection[str] | None) -> bool:
    """True when a constraint collection is set and non-empty."""
    return bool(values)


def _first_match(key: str, prefixes: Iterable[str]) -> str | None:
    for prefix in prefixes:
        if key.startswith(prefix):
            return prefix
    return None


def _check_content_type(policy: SecurityPolicy, request: OperationRequest) -> Decision | None:
    allowed = policy.allowed_content_types
    if request.content_type is None or not _restricts(allowed):
        return None
    if request.content_type in allowed:  # type: ignore[operator]
        return None
    return Decision.deny(
        PolicyRule.CONTENT_TYPE,
        f"Content type {request.content_type} is not allowed",
    )


def _check_file_size(policy: SecurityPolicy, request: OperationRequest) -> Decision | None:
    limit = policy.max_file_size
    if request.content_length is None or limit is None:
        return None
    if request.content_length <= limit:
        return None
    return Decision.deny(
        PolicyRule.FILE_SIZE,
        f"File size {request.content_length} exceeds maximum allowed size of {limit} bytes",
    )


def _check_allowed_prefixes(policy: SecurityPolicy, request: OperationRequest) -> Decision | None:
    prefixes = policy.allowed_prefixes
    if not _restricts(prefixes):
        return None
    if _first_match(request.key, prefixes) is not None:  # type: ignore[arg-type]
        return None
    return Decision.deny(
        PolicyRule.PREFIX_NOT_ALLOWED,
        f"Access to prefix in key {request.key} is not allowed",
    )


def _check_denied_prefixes(policy: SecurityPolicy, request: OperationRequest) -> Decision | None:
    prefixes = policy.denied_prefixes
    if not _restricts(prefixes):
        return None
    matched = _first_match(request.key, prefixes)  # type: ignore[arg-type]
    if matched is None:
        return None
    return Decision.deny(
        PolicyRule.PREFIX_DENIED,
        f"Access to prefix {matched!r} in key {request.key} is denied",
    )


def _check_role(policy: SecurityPolicy, request: OperationRequest) -> Decision | None:
    if request.role is None or policy.role_based_access is None:
        return None

    role = request.role
    permissions = policy.get_role(role)
    if permissions is None:
        return Decision.deny(
            PolicyRule.ROLE_NOT_CONFIGURED,
            f"Role {role} is not configured",
        )

    if not permissions.allows(request.operation):
        return Decision.deny(
            PolicyRule.OPERATION_NOT_ALLOWED,
            f"Operation {request.operation.value} is not allowed for role {role}",
        )

    if _restricts(permissions.allowed_prefixes) and (
        _first_match(request.key, permissions.allowed_prefixes) is None  # type: ignore[arg-type]
    ):
        return Decision.deny(
            PolicyRule.ROLE_PREFIX_NOT_ALLOWED,
            f"Access to key {request.key} is not allowed for role {role}",
        )

    if (
        request.content_type is not None
        and _restricts(permissions.allowed_content_types)
        and request.content_type not in permissions.allowed_content_types  # type: ignore[operator]
    ):
        return Decision.deny(
            PolicyRule.ROLE_CONTENT_TYPE,
            f"Content type {request.content_type} is not allowed for role {role}",
        )

    if (
        request.content_length is not None
        and permissions.max_file_size is not None
        and request.content_length > permissions.max_file_size
    ):
        return Decision.deny(
            PolicyRule.ROLE_FILE_SIZE,
            f"File size {request.content_length} exceeds maximum allowed size of "
            f"{permissions.max_file_size} bytes for role {role}",
        )

    return None


# Order matters: the first failing check decides.
_CHECKS: tuple[_Check, ...] = (
    _check_content_type,
    _check_file_size,
    _check_allowed_prefixes,
    _check_denied_prefixes,
    _check_role,
)


def validate(policy: SecurityPolicy | None, request: OperationRequest) -> Decision:
    """Decide whether ``request`` is allowed under ``policy``.

    Args:
        policy: The security policy, or None for permissive mode.
        request: The operation to check, with any default role already applied.

    Returns:
        ``Decision.allow()`` or a deny decision naming the failing rule.

    Example:
        >>> from storage_guard.core.policy import (
        ...     OperationKind, OperationRequest, SecurityPolicy, validate,
        ... )
        >>> policy = SecurityPolicy(allowed_prefixes=("public/",))
        >>> validate(policy, OperationRequest(OperationKind.READ, "private/x.txt")).rule
        <PolicyRule.PREFIX_NOT_ALLOWED: 'prefix_not_allowed'>
    """
    if policy is None:
        return Decision.allow()

    for check in _CHECKS:
        decision = check(policy, request)
        if decision is not None:
            return decision
    return Decision.allow()


def ensure_allowed(policy: SecurityPolicy | None, request: OperationRequest) -> Decision:
    """Validate ``request`` and raise on deny.

    Returns:
        The allow decision.

    Raises:
        PolicyViolationError: If the policy denies the request.
    """
    from storage_guard.infra.storage.exceptions import PolicyViolationError

    decision = validate(policy, request)
    if not decision.allowed:
        logger.warning(
            "Storage operation denied by policy",
            extra={**request.as_log_extra(), "rule": str(decision.rule), "reason": decision.reason},
        )
        raise PolicyViolationError.from_decision(decision, request)
    return decision
