"""
Process entry points for the Healthylinkx provisioning runs.

Each entry point loads the configuration once, builds the aioboto3 session
and clients from it, runs one linear sequence and returns an exit code.
"""

import asyncio
import logging
import sys
from typing import Optional

import aioboto3

from healthylinkx.config import AppConfig, configure_logging, load_config
from healthylinkx.services.loader import DataLoader, LoadResult
from healthylinkx.services.provisioning.aws import (
    DatabaseClient,
    FunctionClient,
    NetworkRuleClient,
    RoleClient,
)
from healthylinkx.services.provisioning.base import ProvisionerException
from healthylinkx.services.provisioning.datastore import DatastoreProvisioner
from healthylinkx.services.provisioning.function import FunctionProvisioner

logger = logging.getLogger(__name__)


def build_datastore_provisioner(config: AppConfig) -> DatastoreProvisioner:
    session = aioboto3.Session(**config.credentials)
    return DatastoreProvisioner(
        config,
        DatabaseClient(session, config),
        NetworkRuleClient(session, config),
    )


def build_function_provisioner(config: AppConfig) -> FunctionProvisioner:
    session = aioboto3.Session(**config.credentials)
    return FunctionProvisioner(
        config,
        FunctionClient(session, config),
        RoleClient(session, config),
    )


async def create_datastore(
    config: AppConfig,
    provisioner: Optional[DatastoreProvisioner] = None,
    loader: Optional[DataLoader] = None
) -> LoadResult:
    """Provision (or reuse) the datastore, then load the dump into it."""
    config.datastore.validate()
    provisioner = provisioner or build_datastore_provisioner(config)
    loader = loader or DataLoader(config)

    result = await provisioner.create()
    if not result.endpoint:
        raise ProvisionerException(
            "Datastore is available but reports no endpoint",
            provider='aws',
            resource_id=result.resource_id
        )
    return await loader.load(result.endpoint, result.port)


def _run(description: str, coro_factory) -> int:
    try:
        config = load_config()
    except ProvisionerException as e:
        logging.basicConfig()
        logger.error(f"Error loading configuration: {e}")
        return 1
    configure_logging(config)

    try:
        outcome = asyncio.run(coro_factory(config))
    except ProvisionerException as e:
        logger.error(f"Error {description}: {e}")
        return 1
    except Exception as e:
        logger.error(f"Unexpected error {description}: {e}", exc_info=True)
        return 1
    if isinstance(outcome, LoadResult) and not outcome.success:
        return 1
    return 0


def ds_create() -> int:
    """Create the datastore and load the initial data."""
    return _run("creating datastore", create_datastore)


def ds_delete() -> int:
    """Delete the datastore and its ingress rule."""
    async def run(config: AppConfig):
        return await build_datastore_provisioner(config).delete()
    return _run("deleting datastore", run)


def mcp_deploy() -> int:
    """Deploy the MCP server function and record its public URL."""
    async def run(config: AppConfig):
        config.function.validate()
        config.datastore.validate()
        return await build_function_provisioner(config).deploy()
    return _run("deploying MCP function", run)


def mcp_delete() -> int:
    """Delete the MCP server function, its URL and execution role."""
    async def run(config: AppConfig):
        config.function.validate()
        return await build_function_provisioner(config).delete()
    return _run("deleting MCP function", run)


def main() -> int:
    """Dispatch ``python -m healthylinkx <command>``."""
    commands = {
        'ds-create': ds_create,
        'ds-delete': ds_delete,
        'mcp-deploy': mcp_deploy,
        'mcp-delete': mcp_delete,
    }
    if len(sys.argv) != 2 or sys.argv[1] not in commands:
        print(f"usage: python -m healthylinkx {{{','.join(commands)}}}", file=sys.stderr)
        return 2
    return commands[sys.argv[1]]()
