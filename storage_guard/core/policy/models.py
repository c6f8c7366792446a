"""Policy model for storage access control.

The policy is declarative configuration: global limits that apply to every
request plus optional per-role permission bundles. It is built once when the
client is configured and shared read-only afterwards.

Invariant (unset-means-unconstrained):
    Every constraint field is optional. A field that is ``None`` and a field
    holding an empty collection both mean "no restriction on this axis".
    Neither ever means "deny all". The validator relies on this, so keep it
    in mind when adding fields.

Policies accept both snake_case and camelCase keys, so a document written as::

    {
        "maxFileSize": 10485760,
        "allowedPrefixes": ["public/", "uploads/"],
        "roleBasedAccess": {
            "defaultRole": "viewer",
            "roles": {"viewer": {"allowedOperations": ["read", "list"]}}
        }
    }

loads the same as its snake_case equivalent.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

__all__ = [
    "Decision",
    "OperationKind",
    "OperationRequest",
    "PolicyRule",
    "RoleBasedAccess",
    "RolePermissions",
    "SecurityPolicy",
]


class OperationKind(StrEnum):
    """Closed set of operations the policy can grant or refuse."""

    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    LIST = "list"
    ACL_READ = "acl_read"
    ACL_WRITE = "acl_write"
    PRESIGNED_UPLOAD = "presigned_upload"
    PRESIGNED_DOWNLOAD = "presigned_download"
    PRESIGNED_DELETE = "presigned_delete"
    PRESIGNED_LIST = "presigned_list"


class PolicyRule(StrEnum):
    """Tag identifying which constraint produced a deny decision."""

    CONTENT_TYPE = "content_type"
    FILE_SIZE = "file_size"
    PREFIX_NOT_ALLOWED = "prefix_not_allowed"
    PREFIX_DENIED = "prefix_denied"
    ROLE_NOT_CONFIGURED = "role_not_configured"
    OPERATION_NOT_ALLOWED = "operation_not_allowed"
    ROLE_PREFIX_NOT_ALLOWED = "role_prefix_not_allowed"
    ROLE_CONTENT_TYPE = "role_content_type"
    ROLE_FILE_SIZE = "role_file_size"


def _unique(values: Iterable[str]) -> tuple[str, ...]:
    """Deduplicate while keeping first-seen order."""
    return tuple(dict.fromkeys(values))


class _PolicyBase(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="forbid",
    )


class RolePermissions(_PolicyBase):
    """Permissions granted to one role.

    Per-role limits only narrow the global policy: a request has to satisfy
    both the global checks and the role checks.
    """

    allowed_operations: frozenset[OperationKind]
    allowed_prefixes: tuple[str, ...] | None = None
    max_file_size: int | None = Field(default=None, ge=0)
    allowed_content_types: frozenset[str] | None = None

    @field_validator("allowed_operations")
    @classmethod
    def _require_operations(cls, value: frozenset[OperationKind]) -> frozenset[OperationKind]:
        if not value:
            raise ValueError("allowed_operations must contain at least one operation")
        return value

    @field_validator("allowed_prefixes")
    @classmethod
    def _dedupe_prefixes(cls, value: tuple[str, ...] | None) -> tuple[str, ...] | None:
        return _unique(value) if value is not None else None

    def allows(self, operation: OperationKind) -> bool:
        """Check whether the role may perform ``operation``."""
        return operation in self.allowed_operations


class RoleBasedAccess(_PolicyBase):
    """Role name to permissions mapping with an optional fallback role."""

    roles: dict[str, RolePermissions] = Field(default_factory=dict)
    default_role: str | None = None

    @model_validator(mode="after")
    def _default_role_must_exist(self) -> RoleBasedAccess:
        if self.default_role is not None and self.default_role not in self.roles:
            raise ValueError(
                f"default_role {self.default_role!r} is not one of the configured roles"
            )
        return self


class SecurityPolicy(_PolicyBase):
    """Global security limits and optional role-based access rules."""

    max_file_size: int | None = Field(default=None, ge=0)
    allowed_content_types: frozenset[str] | None = None
    allowed_prefixes: tuple[str, ...] | None = None
    denied_prefixes: tuple[str, ...] | None = None
    role_based_access: RoleBasedAccess | None = None

    @field_validator("allowed_prefixes", "denied_prefixes")
    @classmethod
    def _dedupe_prefixes(cls, value: tuple[str, ...] | None) -> tuple[str, ...] | None:
        return _unique(value) if value is not None else None

    @property
    def default_role(self) -> str | None:
        """Role applied to requests that do not name one, if configured."""
        if self.role_based_access is None:
            return None
        return self.role_based_access.default_role

    def get_role(self, name: str) -> RolePermissions | None:
        """Look up a role's permissions, or None when it is not configured."""
        if self.role_based_access is None:
            return None
        return self.role_based_access.roles.get(name)


@dataclass(frozen=True)
class OperationRequest:
    """A single operation as seen by the validator.

    Created per call and discarded after validation.
    """

    operation: OperationKind
    key: str
    role: str | None = None
    content_type: str | None = None
    content_length: int | None = None
    metadata: Mapping[str, str] | None = field(default=None, hash=False)

    def with_role(self, role: str | None) -> OperationRequest:
        """Return a copy of the request carrying ``role``."""
        return replace(self, role=role)

    def as_log_extra(self) -> dict[str, Any]:
        """Fields worth attaching to log records about this request."""
        return {
            "operation": self.operation.value,
            "key": self.key,
            "role": self.role,
            "content_type": self.content_type,
            "content_length": self.content_length,
        }


@dataclass(frozen=True)
class Decision:
    """Outcome of validating one request.

    A deny carries the rule that failed and a human-readable reason.
    """

    allowed: bool
    rule: PolicyRule | None = None
    reason: str | None = None

    @classmethod
    def allow(cls) -> Decision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, rule: PolicyRule, reason: str) -> Decision:
        return cls(allowed=False, rule=rule, reason=reason)

    def __bool__(self) -> bool:
        return self.allowed
