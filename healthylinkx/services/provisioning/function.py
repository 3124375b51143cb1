"""
Function provisioner: Lambda hosting the Healthylinkx MCP server.

Deploy order is execution role -> function (create or update code) ->
function URL (create or update) -> public invoke permission -> local
endpoint artifact. Delete removes the permission, the URL and the function,
then detaches every policy from the role before deleting it.
"""

import asyncio
import io
import json
import logging
import os
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import healthylinkx
from healthylinkx.config import AppConfig
from healthylinkx.models.enums import ProvisionAction
from .aws import FunctionClient, RoleClient
from .base import ConfigurationError, ProvisionerException

logger = logging.getLogger(__name__)

ENDPOINT_ARTIFACT_KEY = 'LAMBDA_FUNCTION_URL'


@dataclass
class DeployResult:
    """
    Result of a function deploy run.

    Attributes:
        function_url: Public invocation URL
        role_arn: Execution role ARN
        function_created: True when the function was created, False when updated
        artifact_path: Where the endpoint artifact was written
    """
    function_url: str
    role_arn: str
    function_created: bool
    artifact_path: str


PACKAGE_DIR = Path(healthylinkx.__file__).parent


def _add_tree(archive: zipfile.ZipFile, root: Path, prefix: str = '') -> int:
    count = 0
    for path in sorted(root.rglob('*')):
        if path.is_dir() or '__pycache__' in path.parts:
            continue
        # ZipFile.write keeps the file mode, run.sh must stay executable
        archive.write(path, prefix + path.relative_to(root).as_posix())
        count += 1
    return count


def build_code_archive(source_dir: str, include_package: bool = True) -> bytes:
    """
    Zip a source directory into an in-memory deployment package.

    The ``healthylinkx`` package itself is added under ``healthylinkx/`` so
    the launcher can run the MCP server, unless the source directory already
    carries a copy of it.

    Args:
        source_dir: Directory whose contents become the archive root
        include_package: Bundle the ``healthylinkx`` package

    Returns:
        Zip archive bytes

    Raises:
        ConfigurationError: If the directory does not exist or is empty
    """
    root = Path(source_dir)
    if not root.is_dir():
        raise ConfigurationError(f"Function source directory not found: {source_dir}")

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        count = _add_tree(archive, root)
        if count == 0:
            raise ConfigurationError(f"Function source directory is empty: {source_dir}")

        bundled = 0
        if include_package and not (root / PACKAGE_DIR.name).exists():
            bundled = _add_tree(archive, PACKAGE_DIR, f"{PACKAGE_DIR.name}/")

    logger.info(f"Packaged {count} file(s) from {source_dir} and {bundled} package file(s)")
    return buffer.getvalue()


def write_endpoint_artifact(path: str, function_url: str) -> None:
    """Record the public endpoint for downstream tool configuration."""
    Path(path).write_text(
        json.dumps({ENDPOINT_ARTIFACT_KEY: function_url}, indent=2),
        encoding='utf-8'
    )
    logger.info(f"Lambda url file updated at {path}")


def read_endpoint_artifact(path: str) -> Optional[str]:
    """Return the recorded public endpoint, or None when no artifact exists."""
    artifact = Path(path)
    if not artifact.exists():
        return None
    return json.loads(artifact.read_text(encoding='utf-8')).get(ENDPOINT_ARTIFACT_KEY)


class FunctionProvisioner:
    """Deploys and deletes the function, its public URL and execution role."""

    def __init__(
        self,
        config: AppConfig,
        functions: FunctionClient,
        roles: RoleClient,
        sleep=asyncio.sleep
    ):
        """
        Initialize the provisioner.

        Args:
            config: Application configuration
            functions: Lambda client
            roles: IAM client
            sleep: Sleep coroutine used for the role propagation delay
        """
        self.config = config
        self.functions = functions
        self.roles = roles
        self._sleep = sleep

    @property
    def function_name(self) -> str:
        return self.config.function.function_name

    async def deploy(self) -> DeployResult:
        """
        Deploy the function and expose it through a public URL.

        Returns:
            DeployResult with the public URL

        Raises:
            ProvisionerException: If any step fails
            ConfigurationError: If the source directory cannot be packaged
        """
        archive = build_code_archive(self.config.function.source_dir)
        role_arn = await self.ensure_role()

        created = await self.functions.create(role_arn, archive)
        if created.is_conflict:
            logger.info("Lambda function already exists. Updating code...")
            await self.functions.update_code(archive)

        function_url = await self._ensure_endpoint()

        granted = await self.functions.grant_public_invoke()
        if granted.is_conflict:
            logger.info("Function URL permission already exists")

        artifact_path = self.config.function.endpoint_artifact
        write_endpoint_artifact(artifact_path, function_url)

        return DeployResult(
            function_url=function_url,
            role_arn=role_arn,
            function_created=created.is_ok,
            artifact_path=artifact_path,
        )

    async def ensure_role(self) -> str:
        """
        Return the execution role ARN, creating the role when missing.

        A new role gets the managed policy set attached and then a fixed
        propagation delay, since IAM exposes no signal for when a new role
        becomes assumable by Lambda.
        """
        described = await self.roles.describe()
        if described.is_ok:
            return described.data['role_arn']

        created = await self.roles.create()
        if created.is_conflict:
            # Created concurrently between describe and create
            described = await self.roles.describe()
            if not described.is_ok:
                raise ProvisionerException(
                    "Role reported as existing but could not be read",
                    provider='aws',
                    resource_id=self.config.function.role_name
                )
            return described.data['role_arn']

        for policy_arn in self.config.function.managed_policies:
            await self.roles.attach_policy(policy_arn)

        delay = self.config.function.role_propagation_delay
        logger.info(f"Waiting {delay}s for role propagation")
        await self._sleep(delay)
        return created.data['role_arn']

    async def _ensure_endpoint(self) -> str:
        existing = await self.functions.describe_endpoint()
        if existing.is_ok:
            endpoint = await self.functions.update_endpoint()
        else:
            endpoint = await self.functions.create_endpoint()
            if endpoint.is_conflict:
                endpoint = await self.functions.update_endpoint()

        if not endpoint.is_ok:
            raise ProvisionerException(
                "Function URL could not be created or updated",
                provider='aws',
                resource_id=self.function_name
            )
        return endpoint.data['function_url']

    async def delete(self) -> ProvisionAction:
        """
        Delete the function, its URL and permission, then the execution role.

        Returns:
            DELETED when anything was removed, ALREADY_ABSENT otherwise

        Raises:
            InvariantViolation: If the role still has policies attached on delete
            ProvisionerException: If any other remote call fails
        """
        removed_any = False

        described = await self.functions.describe()
        if described.is_not_found:
            logger.info(f"Lambda function {self.function_name} not found. Skipping deletion.")
        else:
            revoked = await self.functions.revoke_public_invoke()
            if revoked.is_not_found:
                logger.info("No function URL permission found. Skipping removal.")

            endpoint = await self.functions.delete_endpoint()
            if endpoint.is_not_found:
                logger.info("No function URL found. Skipping deletion.")

            deleted = await self.functions.delete()
            removed_any = removed_any or deleted.is_ok

        removed_any = await self._delete_role() or removed_any

        artifact = self.config.function.endpoint_artifact
        previous_url = read_endpoint_artifact(artifact)
        if previous_url is not None:
            logger.info(f"Retiring function URL {previous_url}")
        if os.path.exists(artifact):
            os.remove(artifact)
            logger.info(f"Removed {artifact}")

        return ProvisionAction.DELETED if removed_any else ProvisionAction.ALREADY_ABSENT

    async def _delete_role(self) -> bool:
        role_name = self.config.function.role_name
        attached = await self.roles.list_attached_policies()
        if attached.is_not_found:
            logger.info(f"Role {role_name} not found. Skipping deletion.")
            return False

        for policy_arn in attached.data['policy_arns']:
            await self.roles.detach_policy(policy_arn)

        deleted = await self.roles.delete()
        return deleted.is_ok
