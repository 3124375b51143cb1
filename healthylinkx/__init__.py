"""Healthylinkx infrastructure: datastore and MCP function provisioning."""

__version__ = '1.0.0'
