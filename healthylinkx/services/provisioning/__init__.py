"""
Provisioning services for the Healthylinkx AWS resources.

This package manages a fixed topology:
- RDS MySQL instance with its EC2 security group
- Lambda function with an IAM execution role and a public function URL
"""

from .base import (
    ConfigurationError,
    InvariantViolation,
    ProvisionerException,
    ProvisioningTimeout,
    RemoteServiceError,
    ResourceOutcome,
)

__all__ = [
    'ConfigurationError',
    'InvariantViolation',
    'ProvisionerException',
    'ProvisioningTimeout',
    'RemoteServiceError',
    'ResourceOutcome',
]
