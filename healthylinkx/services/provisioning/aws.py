"""
AWS resource clients for Healthylinkx.

Thin async wrappers over aioboto3 for the four resource families the
provisioners manage:
- RDS database instance
- EC2 security group (network ingress rule)
- IAM execution role
- Lambda function, its function URL and the public invoke permission

Each call returns a ResourceOutcome. Error codes meaning "not found" or
"already exists" are mapped to NOT_FOUND / CONFLICT per call; every other
remote failure is raised as RemoteServiceError.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from healthylinkx.config import AppConfig
from healthylinkx.models.enums import ResourceStatus
from .base import ConfigurationError, InvariantViolation, RemoteServiceError, ResourceOutcome

logger = logging.getLogger(__name__)

MANAGED_BY_TAG = {'ManagedBy': 'Healthylinkx'}

LAMBDA_TRUST_POLICY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Effect": "Allow",
            "Principal": {
                "Service": "lambda.amazonaws.com"
            },
            "Action": "sts:AssumeRole"
        }
    ]
}


def error_code(error: ClientError) -> str:
    """Extract the service error code from a botocore ClientError."""
    return error.response.get('Error', {}).get('Code', '')


def _format_tags(tags: Dict[str, str]) -> List[Dict[str, str]]:
    """Format tags dict to AWS tag list format."""
    return [{'Key': k, 'Value': v} for k, v in {**tags, **MANAGED_BY_TAG}.items()]


class AWSResourceClient:
    """Common plumbing for the per-service clients."""

    service_name = ''

    def __init__(self, session: Any, config: AppConfig):
        """
        Initialize the client.

        Args:
            session: aioboto3 Session (or any object exposing ``client(name)``
                as an async context manager)
            config: Application configuration
        """
        self.session = session
        self.config = config

    async def _call(
        self,
        operation: str,
        resource_id: str,
        not_found: Iterable[str] = (),
        conflict: Iterable[str] = (),
        invariant: Iterable[str] = (),
        **params: Any
    ) -> ResourceOutcome:
        """
        Invoke one API operation and normalize its result.

        Args:
            operation: boto3 method name (e.g. ``describe_db_instances``)
            resource_id: Identifier used in log and error messages
            not_found: Error codes that mean the target does not exist
            conflict: Error codes that mean the target already exists
            invariant: Error codes raised as InvariantViolation
            **params: API parameters

        Returns:
            ResourceOutcome with the raw response under ``data['response']``
            for OK, or the error code under ``data['error_code']``

        Raises:
            InvariantViolation: If the error code is listed in ``invariant``
            RemoteServiceError: For any other remote failure
        """
        try:
            async with self.session.client(self.service_name) as client:
                response = await getattr(client, operation)(**params)
        except ClientError as e:
            code = error_code(e)
            if code in not_found:
                logger.debug(f"{operation} {resource_id}: not found ({code})")
                return ResourceOutcome.not_found(error_code=code)
            if code in conflict:
                logger.debug(f"{operation} {resource_id}: conflict ({code})")
                return ResourceOutcome.conflict(error_code=code)
            if code in invariant:
                logger.error(f"{operation} {resource_id} refused: {e}")
                raise InvariantViolation(
                    f"{operation} refused by {self.service_name}: {code}",
                    provider='aws',
                    resource_id=resource_id,
                    original_error=e
                )
            logger.error(f"AWS API error in {operation} for {resource_id}: {e}")
            raise RemoteServiceError(
                f"{operation} failed",
                provider='aws',
                resource_id=resource_id,
                original_error=e
            )
        except BotoCoreError as e:
            logger.error(f"AWS client error in {operation} for {resource_id}: {e}")
            raise RemoteServiceError(
                f"{operation} failed",
                provider='aws',
                resource_id=resource_id,
                original_error=e
            )
        return ResourceOutcome.ok(response=response)


class DatabaseClient(AWSResourceClient):
    """RDS client for the single managed database instance."""

    service_name = 'rds'

    NOT_FOUND_CODES = ('DBInstanceNotFound', 'DBInstanceNotFoundFault')

    # RDS instance states grouped into the statuses the provisioners act on.
    # Anything not listed is a transitional state on the way to available.
    STATUS_MAPPING = {
        'available': ResourceStatus.AVAILABLE,
        'deleting': ResourceStatus.DELETING,
        'failed': ResourceStatus.FAILED,
        'incompatible-network': ResourceStatus.FAILED,
        'incompatible-option-group': ResourceStatus.FAILED,
        'incompatible-parameters': ResourceStatus.FAILED,
        'incompatible-restore': ResourceStatus.FAILED,
        'inaccessible-encryption-credentials': ResourceStatus.FAILED,
        'restore-error': ResourceStatus.FAILED,
        'storage-full': ResourceStatus.FAILED,
        'stopped': ResourceStatus.FAILED,
        'stopping': ResourceStatus.FAILED,
    }

    @property
    def instance_id(self) -> str:
        return self.config.datastore.instance_id

    @classmethod
    def map_status(cls, rds_status: str) -> ResourceStatus:
        """Map an RDS instance status to a ResourceStatus."""
        return cls.STATUS_MAPPING.get(rds_status, ResourceStatus.CREATING)

    async def describe(self) -> ResourceOutcome:
        """Describe the instance; data carries status, raw_status, endpoint and port."""
        outcome = await self._call(
            'describe_db_instances',
            self.instance_id,
            not_found=self.NOT_FOUND_CODES,
            DBInstanceIdentifier=self.instance_id
        )
        if not outcome.is_ok:
            return outcome

        instances = outcome.data['response'].get('DBInstances', [])
        if not instances:
            return ResourceOutcome.not_found()

        instance = instances[0]
        raw_status = instance['DBInstanceStatus']
        endpoint = instance.get('Endpoint') or {}
        return ResourceOutcome.ok(
            status=self.map_status(raw_status),
            raw_status=raw_status,
            endpoint=endpoint.get('Address'),
            port=endpoint.get('Port'),
        )

    async def create(self, security_group_id: str) -> ResourceOutcome:
        """Request the instance with the ingress security group attached."""
        ds = self.config.datastore
        params = {
            'DBInstanceIdentifier': ds.instance_id,
            'DBName': ds.db_name,
            'Engine': ds.engine,
            'DBInstanceClass': ds.instance_class,
            'AllocatedStorage': ds.allocated_storage,
            'BackupRetentionPeriod': ds.backup_retention,
            'MasterUsername': ds.user,
            'MasterUserPassword': ds.password,
            'PubliclyAccessible': ds.publicly_accessible,
            'VpcSecurityGroupIds': [security_group_id],
            'Tags': _format_tags({}),
        }
        outcome = await self._call(
            'create_db_instance',
            ds.instance_id,
            conflict=('DBInstanceAlreadyExists', 'DBInstanceAlreadyExistsFault'),
            **params
        )
        if outcome.is_ok:
            instance = outcome.data['response']['DBInstance']
            logger.info(f"Requested DB instance: {instance['DBInstanceIdentifier']}")
            return ResourceOutcome.ok(raw_status=instance.get('DBInstanceStatus'))
        return outcome

    async def delete(self) -> ResourceOutcome:
        """Request deletion; an instance already being deleted is CONFLICT."""
        outcome = await self._call(
            'delete_db_instance',
            self.instance_id,
            not_found=self.NOT_FOUND_CODES,
            conflict=('InvalidDBInstanceState', 'InvalidDBInstanceStateFault'),
            DBInstanceIdentifier=self.instance_id,
            SkipFinalSnapshot=True,
            DeleteAutomatedBackups=True
        )
        if outcome.is_ok:
            logger.info(f"Requested deletion of DB instance: {self.instance_id}")
        return outcome


class NetworkRuleClient(AWSResourceClient):
    """EC2 client for the database ingress security group."""

    service_name = 'ec2'

    NOT_FOUND_CODES = ('InvalidGroup.NotFound', 'InvalidGroupId.NotFound')

    def __init__(self, session: Any, config: AppConfig):
        super().__init__(session, config)
        self._vpc_id: Optional[str] = config.datastore.vpc_id

    @property
    def group_name(self) -> str:
        return self.config.datastore.security_group_name

    async def vpc_id(self) -> str:
        """
        VPC holding the security group: the configured one, else the default VPC.

        Raises:
            ConfigurationError: If no VPC is configured and the account has no default VPC
        """
        if self._vpc_id:
            return self._vpc_id

        outcome = await self._call(
            'describe_vpcs',
            'default-vpc',
            Filters=[{'Name': 'isDefault', 'Values': ['true']}]
        )
        vpcs = outcome.data['response'].get('Vpcs', [])
        if not vpcs:
            raise ConfigurationError(
                "No default VPC found, set datastore vpc_id",
                provider='aws',
                resource_id=self.group_name
            )
        self._vpc_id = vpcs[0]['VpcId']
        logger.debug(f"Using default VPC {self._vpc_id}")
        return self._vpc_id

    async def describe(self) -> ResourceOutcome:
        """Look the group up by name within the target VPC; data carries group_id."""
        vpc_id = await self.vpc_id()
        outcome = await self._call(
            'describe_security_groups',
            self.group_name,
            not_found=self.NOT_FOUND_CODES,
            Filters=[
                {'Name': 'group-name', 'Values': [self.group_name]},
                {'Name': 'vpc-id', 'Values': [vpc_id]},
            ]
        )
        if not outcome.is_ok:
            return outcome

        groups = [
            group for group in outcome.data['response'].get('SecurityGroups', [])
            if group.get('VpcId') == vpc_id
        ]
        if not groups:
            return ResourceOutcome.not_found()
        return ResourceOutcome.ok(group_id=groups[0]['GroupId'])

    async def create(self) -> ResourceOutcome:
        """
        Create the security group.

        Returns:
            OK with group_id, or CONFLICT with the existing group's group_id
        """
        ds = self.config.datastore
        params = {
            'GroupName': ds.security_group_name,
            'Description': ds.security_group_description,
            'TagSpecifications': [{
                'ResourceType': 'security-group',
                'Tags': _format_tags({})
            }],
            'VpcId': await self.vpc_id(),
        }

        outcome = await self._call(
            'create_security_group',
            ds.security_group_name,
            conflict=('InvalidGroup.Duplicate',),
            **params
        )
        if outcome.is_ok:
            group_id = outcome.data['response']['GroupId']
            logger.info(f"Created security group: {group_id}")
            return ResourceOutcome.ok(group_id=group_id)

        existing = await self.describe()
        if not existing.is_ok:
            raise RemoteServiceError(
                "Security group reported as duplicate but could not be found",
                provider='aws',
                resource_id=ds.security_group_name
            )
        return ResourceOutcome.conflict(group_id=existing.data['group_id'])

    async def authorize_ingress(self, group_id: str) -> ResourceOutcome:
        """Add the single allow rule; an existing identical rule is CONFLICT."""
        ds = self.config.datastore
        outcome = await self._call(
            'authorize_security_group_ingress',
            group_id,
            conflict=('InvalidPermission.Duplicate',),
            GroupId=group_id,
            IpPermissions=[{
                'IpProtocol': ds.ingress_protocol,
                'FromPort': ds.ingress_port,
                'ToPort': ds.ingress_port,
                'IpRanges': [{'CidrIp': ds.ingress_cidr}],
            }]
        )
        if outcome.is_ok:
            logger.info(f"Authorized ingress on {group_id}")
        return outcome

    async def delete(self, group_id: str) -> ResourceOutcome:
        """Delete the group; still being referenced raises InvariantViolation."""
        outcome = await self._call(
            'delete_security_group',
            group_id,
            not_found=self.NOT_FOUND_CODES,
            invariant=('DependencyViolation',),
            GroupId=group_id
        )
        if outcome.is_ok:
            logger.info(f"Deleted security group: {group_id}")
        return outcome


class RoleClient(AWSResourceClient):
    """IAM client for the function execution role."""

    service_name = 'iam'

    NOT_FOUND_CODES = ('NoSuchEntity', 'NoSuchEntityException')

    @property
    def role_name(self) -> str:
        return self.config.function.role_name

    async def describe(self) -> ResourceOutcome:
        """Get the role; data carries role_arn."""
        outcome = await self._call(
            'get_role',
            self.role_name,
            not_found=self.NOT_FOUND_CODES,
            RoleName=self.role_name
        )
        if outcome.is_ok:
            return ResourceOutcome.ok(role_arn=outcome.data['response']['Role']['Arn'])
        return outcome

    async def create(self) -> ResourceOutcome:
        """Create the role with the Lambda trust policy; data carries role_arn."""
        outcome = await self._call(
            'create_role',
            self.role_name,
            conflict=('EntityAlreadyExists', 'EntityAlreadyExistsException'),
            RoleName=self.role_name,
            AssumeRolePolicyDocument=json.dumps(LAMBDA_TRUST_POLICY),
            Description=f"Execution role for {self.config.function.function_name}",
            Tags=_format_tags({})
        )
        if outcome.is_ok:
            role_arn = outcome.data['response']['Role']['Arn']
            logger.info(f"Created IAM role: {role_arn}")
            return ResourceOutcome.ok(role_arn=role_arn)
        return outcome

    async def attach_policy(self, policy_arn: str) -> ResourceOutcome:
        outcome = await self._call(
            'attach_role_policy',
            self.role_name,
            RoleName=self.role_name,
            PolicyArn=policy_arn
        )
        logger.info(f"Attached policy {policy_arn} to role {self.role_name}")
        return outcome

    async def list_attached_policies(self) -> ResourceOutcome:
        """List every managed policy attached to the role; data carries policy_arns."""
        policy_arns: List[str] = []
        marker: Optional[str] = None

        while True:
            params: Dict[str, Any] = {'RoleName': self.role_name}
            if marker:
                params['Marker'] = marker
            outcome = await self._call(
                'list_attached_role_policies',
                self.role_name,
                not_found=self.NOT_FOUND_CODES,
                **params
            )
            if not outcome.is_ok:
                return outcome

            response = outcome.data['response']
            policy_arns.extend(p['PolicyArn'] for p in response.get('AttachedPolicies', []))
            if not response.get('IsTruncated'):
                break
            marker = response.get('Marker')

        return ResourceOutcome.ok(policy_arns=policy_arns)

    async def detach_policy(self, policy_arn: str) -> ResourceOutcome:
        outcome = await self._call(
            'detach_role_policy',
            self.role_name,
            not_found=self.NOT_FOUND_CODES,
            RoleName=self.role_name,
            PolicyArn=policy_arn
        )
        if outcome.is_ok:
            logger.info(f"Detached policy {policy_arn} from role {self.role_name}")
        return outcome

    async def delete(self) -> ResourceOutcome:
        """Delete the role; attached policies raise InvariantViolation."""
        outcome = await self._call(
            'delete_role',
            self.role_name,
            not_found=self.NOT_FOUND_CODES,
            invariant=('DeleteConflict', 'DeleteConflictException'),
            RoleName=self.role_name
        )
        if outcome.is_ok:
            logger.info(f"Role {self.role_name} deleted successfully")
        return outcome


class FunctionClient(AWSResourceClient):
    """Lambda client for the function, its URL config and invoke permission."""

    service_name = 'lambda'

    NOT_FOUND_CODES = ('ResourceNotFoundException',)
    CONFLICT_CODES = ('ResourceConflictException',)

    @property
    def function_name(self) -> str:
        return self.config.function.function_name

    async def describe(self) -> ResourceOutcome:
        outcome = await self._call(
            'get_function',
            self.function_name,
            not_found=self.NOT_FOUND_CODES,
            FunctionName=self.function_name
        )
        if outcome.is_ok:
            configuration = outcome.data['response'].get('Configuration', {})
            return ResourceOutcome.ok(
                function_arn=configuration.get('FunctionArn'),
                state=configuration.get('State'),
            )
        return outcome

    async def create(self, role_arn: str, archive: bytes) -> ResourceOutcome:
        """Create the function; an existing function is CONFLICT."""
        fn = self.config.function
        params = {
            'FunctionName': fn.function_name,
            'Runtime': fn.runtime,
            'Role': role_arn,
            'Handler': fn.handler,
            'Code': {'ZipFile': archive},
            'Timeout': fn.timeout,
            'MemorySize': fn.memory_size,
            'Environment': {'Variables': self._environment()},
            'Tags': {**MANAGED_BY_TAG},
        }
        if fn.adapter_layer:
            params['Layers'] = [fn.adapter_layer.format(region=self.config.region)]

        outcome = await self._call(
            'create_function',
            fn.function_name,
            conflict=self.CONFLICT_CODES,
            **params
        )
        if outcome.is_ok:
            logger.info(f"Lambda function {fn.function_name} created successfully")
            return ResourceOutcome.ok(
                function_arn=outcome.data['response'].get('FunctionArn')
            )
        return outcome

    async def update_code(self, archive: bytes) -> ResourceOutcome:
        outcome = await self._call(
            'update_function_code',
            self.function_name,
            FunctionName=self.function_name,
            ZipFile=archive
        )
        logger.info(f"Lambda function {self.function_name} code updated successfully")
        return outcome

    async def delete(self) -> ResourceOutcome:
        outcome = await self._call(
            'delete_function',
            self.function_name,
            not_found=self.NOT_FOUND_CODES,
            FunctionName=self.function_name
        )
        if outcome.is_ok:
            logger.info(f"Lambda function {self.function_name} deleted successfully")
        return outcome

    async def describe_endpoint(self) -> ResourceOutcome:
        """Get the function URL config; data carries function_url."""
        outcome = await self._call(
            'get_function_url_config',
            self.function_name,
            not_found=self.NOT_FOUND_CODES,
            FunctionName=self.function_name
        )
        if outcome.is_ok:
            return ResourceOutcome.ok(function_url=outcome.data['response']['FunctionUrl'])
        return outcome

    async def create_endpoint(self) -> ResourceOutcome:
        outcome = await self._call(
            'create_function_url_config',
            self.function_name,
            conflict=self.CONFLICT_CODES,
            FunctionName=self.function_name,
            AuthType='NONE',
            Cors=self.config.function.cors
        )
        if outcome.is_ok:
            function_url = outcome.data['response']['FunctionUrl']
            logger.info(f"Function URL created: {function_url}")
            return ResourceOutcome.ok(function_url=function_url)
        return outcome

    async def update_endpoint(self) -> ResourceOutcome:
        outcome = await self._call(
            'update_function_url_config',
            self.function_name,
            not_found=self.NOT_FOUND_CODES,
            FunctionName=self.function_name,
            AuthType='NONE',
            Cors=self.config.function.cors
        )
        if outcome.is_ok:
            function_url = outcome.data['response']['FunctionUrl']
            logger.info(f"Function URL updated: {function_url}")
            return ResourceOutcome.ok(function_url=function_url)
        return outcome

    async def delete_endpoint(self) -> ResourceOutcome:
        outcome = await self._call(
            'delete_function_url_config',
            self.function_name,
            not_found=self.NOT_FOUND_CODES,
            FunctionName=self.function_name
        )
        if outcome.is_ok:
            logger.info("Function URL deleted successfully")
        return outcome

    async def grant_public_invoke(self) -> ResourceOutcome:
        """Allow unauthenticated invocation through the URL; already granted is CONFLICT."""
        outcome = await self._call(
            'add_permission',
            self.function_name,
            conflict=self.CONFLICT_CODES,
            FunctionName=self.function_name,
            StatementId=self.config.function.permission_statement_id,
            Action='lambda:InvokeFunctionUrl',
            Principal='*',
            FunctionUrlAuthType='NONE'
        )
        if outcome.is_ok:
            logger.info("Function URL public access permission added successfully")
        return outcome

    async def revoke_public_invoke(self) -> ResourceOutcome:
        outcome = await self._call(
            'remove_permission',
            self.function_name,
            not_found=self.NOT_FOUND_CODES,
            FunctionName=self.function_name,
            StatementId=self.config.function.permission_statement_id
        )
        if outcome.is_ok:
            logger.info("Function URL public access permission removed successfully")
        return outcome

    def _environment(self) -> Dict[str, str]:
        """Function environment: configured variables plus database credentials."""
        ds = self.config.datastore
        variables = dict(self.config.function.environment)
        if ds.user:
            variables.setdefault('HEALTHYLINKX_DB_USER', ds.user)
        if ds.password:
            variables.setdefault('HEALTHYLINKX_DB_PASSWORD', ds.password)
        return variables
