"""
Base types shared by the Healthylinkx resource clients and provisioners.

Remote calls never leak "not found" or "already exists" errors to the
provisioners: they come back as a ResourceOutcome whose kind the caller
switches on. Anything else is raised as a ProvisionerException subclass.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from healthylinkx.models.enums import OutcomeKind, ResourceStatus


class ProvisionerException(Exception):
    """
    Base exception for provisioner errors.

    Attributes:
        message: Error message
        provider: Provider type where error occurred
        resource_id: Resource ID if applicable
        original_error: Original exception if wrapped
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        resource_id: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        self.message = message
        self.provider = provider
        self.resource_id = resource_id
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.provider:
            parts.append(f"Provider: {self.provider}")
        if self.resource_id:
            parts.append(f"Resource: {self.resource_id}")
        if self.original_error:
            parts.append(f"Original error: {str(self.original_error)}")
        return " | ".join(parts)


class RemoteServiceError(ProvisionerException):
    """A remote call failed for a reason other than not-found or conflict."""


class InvariantViolation(ProvisionerException):
    """The remote service refused a call because a resource invariant still holds.

    Raised for example when deleting a role that still has policies attached,
    or a security group still referenced by a database instance.
    """


class ProvisioningTimeout(ProvisionerException):
    """A resource did not reach the desired state within the polling limits."""


class ConfigurationError(ProvisionerException):
    """Configuration is missing or invalid."""


@dataclass
class ResourceOutcome:
    """
    Normalized result of a remote call.

    Attributes:
        kind: OK, NOT_FOUND or CONFLICT
        data: Call specific payload (identifiers, status, endpoint, ...)
    """
    kind: OutcomeKind
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **data: Any) -> 'ResourceOutcome':
        return cls(OutcomeKind.OK, data)

    @classmethod
    def not_found(cls, **data: Any) -> 'ResourceOutcome':
        return cls(OutcomeKind.NOT_FOUND, data)

    @classmethod
    def conflict(cls, **data: Any) -> 'ResourceOutcome':
        return cls(OutcomeKind.CONFLICT, data)

    @property
    def is_ok(self) -> bool:
        return self.kind is OutcomeKind.OK

    @property
    def is_not_found(self) -> bool:
        return self.kind is OutcomeKind.NOT_FOUND

    @property
    def is_conflict(self) -> bool:
        return self.kind is OutcomeKind.CONFLICT

    @property
    def status(self) -> ResourceStatus:
        """Observed status for describe calls; ABSENT when not found."""
        if self.is_not_found:
            return ResourceStatus.ABSENT
        return self.data.get('status', ResourceStatus.AVAILABLE)
