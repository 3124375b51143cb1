"""Healthylinkx Enumeration Types"""

from enum import Enum


class ResourceStatus(Enum):
    """Observed status of a remote resource"""
    ABSENT = "absent"
    CREATING = "creating"
    AVAILABLE = "available"
    DELETING = "deleting"
    FAILED = "failed"


class OutcomeKind(Enum):
    """Result of a single remote call after error normalization"""
    OK = "ok"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


class PollState(Enum):
    """State reported by a readiness check or returned by the poller"""
    READY = "ready"
    NOT_READY = "not_ready"
    ERRORED = "errored"
    TIMEOUT = "timeout"


class ProvisionAction(Enum):
    """What a provisioning run did to reach the desired state"""
    CREATED = "created"
    REUSED = "reused"
    DELETED = "deleted"
    ALREADY_ABSENT = "already_absent"
