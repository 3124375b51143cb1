"""Healthylinkx Models Package"""

from .enums import OutcomeKind, PollState, ProvisionAction, ResourceStatus

__all__ = [
    'OutcomeKind',
    'PollState',
    'ProvisionAction',
    'ResourceStatus',
]
