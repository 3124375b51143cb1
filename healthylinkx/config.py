"""Configuration for the Healthylinkx provisioning tools.

Configuration is read once per entry point from a JSON document shaped like
``config.json``::

    {
        "datastore": {"user": "admin", "passwd": "secret"},
        "mcp": {"functionName": "healthylinkx-mcp", "roleName": "healthylinkx-mcp-role"}
    }

Environment variables are layered on top, and the resulting ``AppConfig`` is
passed explicitly to every client and provisioner.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from healthylinkx.services.provisioning.base import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Managed policies attached to the function execution role on creation
DEFAULT_MANAGED_POLICIES = [
    "arn:aws:iam::aws:policy/service-role/AWSLambdaBasicExecutionRole",
    "arn:aws:iam::aws:policy/AmazonBedrockFullAccess",
    "arn:aws:iam::aws:policy/AmazonRDSFullAccess",
]


@dataclass
class DatastoreConfig:
    """
    Shape of the managed database, its ingress rule and the data load.

    Attributes:
        user: Master username
        password: Master password
        instance_id: Database instance identifier
        db_name: Initial database (schema) name
        engine: Database engine
        instance_class: Instance class
        allocated_storage: Storage allocation in GB
        backup_retention: Automated backup retention in days
        publicly_accessible: Give the instance a public address
        security_group_name: Name of the ingress security group
        security_group_description: Description of the ingress security group
        ingress_protocol: Protocol of the single allow rule
        ingress_port: Port of the single allow rule
        ingress_cidr: Source range of the single allow rule
        vpc_id: VPC for the security group (default VPC when unset)
        dump_archive: Path of the zipped SQL dump
        dump_member: Name of the SQL script inside the archive
        cleanup_tables: Tables dropped before the dump is loaded
        cleanup_timeout: Timeout for each cleanup statement in seconds
        load_timeout: Timeout for the dump script in seconds
        connect_timeout: Timeout for opening the database connection
    """
    user: Optional[str] = None
    password: Optional[str] = None
    instance_id: str = 'healthylinkx-db'
    db_name: str = 'healthylinkx'
    engine: str = 'mysql'
    instance_class: str = 'db.t3.micro'
    allocated_storage: int = 20
    backup_retention: int = 0
    publicly_accessible: bool = True
    security_group_name: str = 'DBSecGroup'
    security_group_description: str = 'MySQL Sec Group'
    ingress_protocol: str = 'tcp'
    ingress_port: int = 3306
    ingress_cidr: str = '0.0.0.0/0'
    vpc_id: Optional[str] = None
    dump_archive: str = 'data/healthylinkxdump.sql.zip'
    dump_member: str = 'healthylinkxdump.sql'
    cleanup_tables: List[str] = field(
        default_factory=lambda: ['npidata2', 'transactions', 'taxonomy', 'speciality']
    )
    cleanup_timeout: int = 90
    load_timeout: int = 180
    connect_timeout: int = 30

    def validate(self) -> None:
        """Raise ConfigurationError when database credentials are missing."""
        missing = [name for name in ('user', 'password') if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Missing required datastore configuration: {', '.join(missing)}"
            )


@dataclass
class FunctionConfig:
    """
    Shape of the serverless function hosting the tool server.

    Attributes:
        function_name: Function name
        role_name: Execution role name
        runtime: Function runtime identifier
        handler: Handler (the web adapter launches ``run.sh``)
        timeout: Invocation timeout in seconds
        memory_size: Memory in MB
        source_dir: Directory packaged as the code archive
        environment: Extra environment variables for the function
        adapter_layer: Web adapter layer ARN, ``{region}`` is substituted
        managed_policies: Policies attached to a freshly created role
        role_propagation_delay: Seconds to wait after creating the role
        endpoint_artifact: JSON file that records the public endpoint
        permission_statement_id: Statement id of the public invoke grant
        cors: CORS settings of the public endpoint
    """
    function_name: Optional[str] = None
    role_name: Optional[str] = None
    runtime: str = 'python3.12'
    handler: str = 'run.sh'
    timeout: int = 30
    memory_size: int = 128
    source_dir: str = 'lambda'
    environment: Dict[str, str] = field(
        default_factory=lambda: {'AWS_LAMBDA_EXEC_WRAPPER': '/opt/bootstrap'}
    )
    adapter_layer: str = 'arn:aws:lambda:{region}:753240598075:layer:LambdaAdapterLayerX86:25'
    managed_policies: List[str] = field(
        default_factory=lambda: list(DEFAULT_MANAGED_POLICIES)
    )
    role_propagation_delay: float = 10.0
    endpoint_artifact: str = 'lambdaurl.json'
    permission_statement_id: str = 'FunctionURLAllowPublicAccess'
    cors: Dict[str, Any] = field(default_factory=lambda: {
        'AllowCredentials': True,
        'AllowHeaders': ['*'],
        'AllowMethods': ['*'],
        'AllowOrigins': ['*'],
        'ExposeHeaders': ['*'],
        'MaxAge': 86400,
    })

    def validate(self) -> None:
        """Raise ConfigurationError when the function or role name is missing."""
        missing = [name for name in ('function_name', 'role_name') if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Missing required function configuration: {', '.join(missing)}"
            )


@dataclass
class PollingConfig:
    """Readiness polling settings."""
    interval_seconds: float = 30.0
    max_attempts: Optional[int] = 120


@dataclass
class AppConfig:
    """
    Top level configuration passed to every client and provisioner.

    Attributes:
        region: AWS region
        aws_access_key_id: Optional access key (default credential chain when unset)
        aws_secret_access_key: Optional secret key
        log_level: Logging level name
        log_format: Logging format string
        datastore: Database settings
        function: Function settings
        polling: Readiness polling settings
    """
    region: str = 'us-east-1'
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    log_level: str = 'INFO'
    log_format: str = DEFAULT_LOG_FORMAT
    datastore: DatastoreConfig = field(default_factory=DatastoreConfig)
    function: FunctionConfig = field(default_factory=FunctionConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)

    @property
    def credentials(self) -> Dict[str, Any]:
        """Session keyword arguments for aioboto3."""
        creds = {'region_name': self.region}
        if self.aws_access_key_id and self.aws_secret_access_key:
            creds['aws_access_key_id'] = self.aws_access_key_id
            creds['aws_secret_access_key'] = self.aws_secret_access_key
        return creds


def _apply_section(target: Any, values: Dict[str, Any]) -> None:
    """Copy known dataclass fields from a config section onto ``target``."""
    known = {f.name for f in fields(target)}
    for key, value in values.items():
        if key in known:
            setattr(target, key, value)
        else:
            logger.debug(f"Ignoring unknown config key: {key}")


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value == '':
        return None
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


def load_config(path: Optional[str] = None) -> AppConfig:
    """
    Build the application configuration.

    Args:
        path: JSON config path. Defaults to ``HEALTHYLINKX_CONFIG`` or
            ``config.json`` in the working directory. A missing file is not
            an error; defaults and environment variables still apply.

    Returns:
        Populated AppConfig

    Raises:
        ConfigurationError: If the file is not valid JSON or a value is invalid
    """
    config_path = Path(path or os.getenv("HEALTHYLINKX_CONFIG", DEFAULT_CONFIG_PATH))
    raw: Dict[str, Any] = {}

    if config_path.exists():
        try:
            raw = json.loads(config_path.read_text(encoding='utf-8'))
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {config_path}: {e}")
    else:
        logger.debug(f"Config file {config_path} not found, using defaults")

    config = AppConfig()

    datastore = dict(raw.get('datastore', {}))
    # Legacy config.json key names
    if 'passwd' in datastore:
        datastore.setdefault('password', datastore.pop('passwd'))
    _apply_section(config.datastore, datastore)

    function = dict(raw.get('mcp', {}))
    if 'functionName' in function:
        function.setdefault('function_name', function.pop('functionName'))
    if 'roleName' in function:
        function.setdefault('role_name', function.pop('roleName'))
    _apply_section(config.function, function)

    _apply_section(config.polling, raw.get('polling', {}))

    for key in ('region', 'aws_access_key_id', 'aws_secret_access_key'):
        if raw.get(key):
            setattr(config, key, raw[key])

    # Environment overrides
    config.region = os.getenv("AWS_REGION", config.region)
    config.log_level = os.getenv("LOG_LEVEL", config.log_level)
    config.log_format = os.getenv("LOG_FORMAT", config.log_format)
    config.datastore.user = os.getenv("HEALTHYLINKX_DB_USER", config.datastore.user)
    config.datastore.password = os.getenv(
        "HEALTHYLINKX_DB_PASSWORD", config.datastore.password
    )

    interval = _env_int("HEALTHYLINKX_POLL_INTERVAL")
    if interval is not None:
        config.polling.interval_seconds = interval
    max_attempts = _env_int("HEALTHYLINKX_POLL_MAX_ATTEMPTS")
    if max_attempts is not None:
        config.polling.max_attempts = max_attempts or None

    return config


def configure_logging(config: AppConfig) -> None:
    """Apply the configured log level and format to the root logger."""
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=config.log_format,
    )
