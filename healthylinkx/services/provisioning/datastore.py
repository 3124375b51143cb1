"""
Datastore provisioner: RDS MySQL instance behind a public ingress rule.

Create order is security group -> ingress rule -> database -> wait for
available. Delete runs in reverse and only removes the security group once
the database is confirmed gone. Each run re-describes remote state first, so
re-running after a partial failure converges instead of duplicating work.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from healthylinkx.config import AppConfig
from healthylinkx.models.enums import PollState, ProvisionAction, ResourceStatus
from .aws import DatabaseClient, NetworkRuleClient
from .base import ProvisionerException, ProvisioningTimeout
from .poller import PollOutcome, PollResult, await_condition

logger = logging.getLogger(__name__)


@dataclass
class ProvisionResult:
    """
    Result of a datastore create or delete run.

    Attributes:
        action: What the run did (created, reused, deleted, already_absent)
        resource_id: Database instance identifier
        endpoint: Database endpoint address when available
        port: Database port when available
        security_group_id: Ingress security group identifier
    """
    action: ProvisionAction
    resource_id: str
    endpoint: Optional[str] = None
    port: Optional[int] = None
    security_group_id: Optional[str] = None


class DatastoreProvisioner:
    """Creates and deletes the database instance and its ingress rule."""

    def __init__(
        self,
        config: AppConfig,
        database: DatabaseClient,
        network: NetworkRuleClient,
        sleep=None
    ):
        """
        Initialize the provisioner.

        Args:
            config: Application configuration
            database: RDS client
            network: Security group client
            sleep: Optional sleep coroutine handed to the poller
        """
        self.config = config
        self.database = database
        self.network = network
        self._sleep = sleep

    @property
    def instance_id(self) -> str:
        return self.config.datastore.instance_id

    async def create(self) -> ProvisionResult:
        """
        Create the datastore, or reuse it when already available.

        Returns:
            ProvisionResult with action CREATED or REUSED and the endpoint

        Raises:
            ProvisionerException: If any step fails; earlier steps are not rolled back
            ProvisioningTimeout: If the instance does not become available in time
        """
        described = await self.database.describe()
        status = described.status

        if status is ResourceStatus.AVAILABLE:
            logger.info(f"{self.instance_id} already exists.")
            return ProvisionResult(
                action=ProvisionAction.REUSED,
                resource_id=self.instance_id,
                endpoint=described.data.get('endpoint'),
                port=described.data.get('port'),
            )

        if status is ResourceStatus.DELETING:
            raise ProvisionerException(
                "Database deletion in progress, re-run once it completes",
                provider='aws',
                resource_id=self.instance_id
            )

        security_group_id = None
        if status is ResourceStatus.CREATING:
            logger.info(f"{self.instance_id} is {described.data.get('raw_status')}, waiting.")
        else:
            logger.info("Datastore doesn't exist, creating one.")
            security_group_id = await self._ensure_ingress_rule()

            created = await self.database.create(security_group_id)
            if created.is_conflict:
                logger.warning(f"{self.instance_id} already requested, waiting for it.")
            else:
                logger.info(f"Success. {self.instance_id} requested.")

        result = await self._wait(self._check_available, f"{self.instance_id} creation")
        self._raise_unless_ready(result, "creation")

        final = await self.database.describe()
        logger.info(f"Success. {self.instance_id} provisioned.")
        return ProvisionResult(
            action=ProvisionAction.CREATED,
            resource_id=self.instance_id,
            endpoint=final.data.get('endpoint'),
            port=final.data.get('port'),
            security_group_id=security_group_id,
        )

    async def delete(self) -> ProvisionResult:
        """
        Delete the datastore and then its ingress rule.

        Resources that are already absent are skipped without mutating calls.

        Returns:
            ProvisionResult with action DELETED or ALREADY_ABSENT

        Raises:
            ProvisionerException: If a remote call fails
            ProvisioningTimeout: If the instance is not gone in time
            InvariantViolation: If the security group is still referenced
        """
        removed_any = False

        described = await self.database.describe()
        if described.is_not_found:
            logger.info(f"{self.instance_id} does not exist, skipping deletion.")
        else:
            requested = await self.database.delete()
            if requested.is_conflict:
                logger.info(f"{self.instance_id} deletion already in progress.")
            elif requested.is_ok:
                logger.info(f"Success. {self.instance_id} deletion requested.")

            if not requested.is_not_found:
                result = await self._wait(self._check_absent, f"{self.instance_id} deletion")
                self._raise_unless_ready(result, "deletion")
                removed_any = True
            logger.info(f"Success. {self.instance_id} deleted.")

        group = await self.network.describe()
        group_id = None
        if group.is_not_found:
            logger.info(f"{self.config.datastore.security_group_name} does not exist, skipping.")
        else:
            group_id = group.data['group_id']
            deleted = await self.network.delete(group_id)
            if deleted.is_ok:
                logger.info(f"Success. {group_id} deleted.")
                removed_any = True

        return ProvisionResult(
            action=ProvisionAction.DELETED if removed_any else ProvisionAction.ALREADY_ABSENT,
            resource_id=self.instance_id,
            security_group_id=group_id,
        )

    async def _ensure_ingress_rule(self) -> str:
        """Create the security group and its allow rule, tolerating duplicates."""
        group = await self.network.create()
        group_id = group.data['group_id']
        if group.is_conflict:
            logger.info(f"Security group {group_id} already exists, reusing it.")
        else:
            logger.info(f"Success. {group_id} created.")

        authorized = await self.network.authorize_ingress(group_id)
        if authorized.is_conflict:
            logger.info(f"Ingress rule on {group_id} already authorized.")
        else:
            logger.info(f"Success. {group_id} authorized.")
        return group_id

    async def _check_available(self) -> PollOutcome:
        described = await self.database.describe()
        raw_status = described.data.get('raw_status')
        status = described.status

        if status is ResourceStatus.AVAILABLE:
            return PollOutcome.ready(raw_status)
        if status is ResourceStatus.FAILED:
            return PollOutcome.errored(f"instance entered status {raw_status}", raw_status)
        if status in (ResourceStatus.ABSENT, ResourceStatus.DELETING):
            return PollOutcome.errored(f"instance is {status.value} while waiting for creation")
        return PollOutcome.not_ready(raw_status)

    async def _check_absent(self) -> PollOutcome:
        described = await self.database.describe()
        if described.is_not_found:
            return PollOutcome.ready(ResourceStatus.ABSENT.value)
        return PollOutcome.not_ready(described.data.get('raw_status'))

    async def _wait(self, check, description: str) -> PollResult:
        polling = self.config.polling
        kwargs = {}
        if self._sleep is not None:
            kwargs['sleep'] = self._sleep
        return await await_condition(
            check,
            interval_seconds=polling.interval_seconds,
            max_attempts=polling.max_attempts,
            description=description,
            **kwargs
        )

    def _raise_unless_ready(self, result: PollResult, phase: str) -> None:
        if result.state is PollState.READY:
            return
        if result.state is PollState.TIMEOUT:
            raise ProvisioningTimeout(
                f"Timed out waiting for {phase}: {result.reason}",
                provider='aws',
                resource_id=self.instance_id
            )
        raise ProvisionerException(
            f"Database {phase} failed: {result.reason}",
            provider='aws',
            resource_id=self.instance_id
        )
