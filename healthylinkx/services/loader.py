"""
Bulk data loader for the Healthylinkx datastore.

Expands the zipped SQL dump next to the archive, drops the target tables,
runs the full dump over a single multi-statement connection and removes the
expanded script whatever the outcome. Failures are reported through the
returned LoadResult instead of being raised.
"""

import logging
import time
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

import pymysql
from pymysql.constants import CLIENT

from healthylinkx.config import AppConfig
from healthylinkx.utils.async_utils import run_in_executor, timeout_wrapper

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    """
    Outcome of a data load.

    Attributes:
        success: True when cleanup and dump both completed
        statements_executed: Number of statements (cleanup + dump) that completed
        elapsed_seconds: Wall time of the load
        error: Error description on failure
    """
    success: bool
    statements_executed: int = 0
    elapsed_seconds: float = 0.0
    error: Optional[str] = None


def _execute_script(connection: Any, sql: str) -> None:
    """Run one (possibly multi-statement) script and drain every result set."""
    with connection.cursor() as cursor:
        cursor.execute(sql)
        while cursor.nextset():
            pass


class DataLoader:
    """Loads the initial dump into a freshly available database."""

    def __init__(self, config: AppConfig, connect: Callable[..., Any] = pymysql.connect):
        """
        Initialize the loader.

        Args:
            config: Application configuration
            connect: DB-API connect function (PyMySQL by default)
        """
        self.config = config
        self._connect = connect

    def expand_archive(self) -> Path:
        """
        Extract the SQL script from the dump archive.

        Returns:
            Path of the expanded script, next to the archive

        Raises:
            FileNotFoundError: If the archive does not exist
            KeyError: If the archive does not contain the configured member
        """
        ds = self.config.datastore
        archive_path = Path(ds.dump_archive)
        with zipfile.ZipFile(archive_path) as archive:
            extracted = archive.extract(ds.dump_member, path=archive_path.parent)
        logger.info("Data ready for import.")
        return Path(extracted)

    async def load(self, endpoint: str, port: Optional[int] = None) -> LoadResult:
        """
        Load the dump into the database at ``endpoint``.

        Args:
            endpoint: Database host name
            port: Database port (configured ingress port when None)

        Returns:
            LoadResult describing success or failure
        """
        ds = self.config.datastore
        started = time.monotonic()
        executed = 0
        # Known up front so a partially extracted file is removed too
        script_path = Path(ds.dump_archive).parent / ds.dump_member
        connection = None

        try:
            script_path = self.expand_archive()
            script = script_path.read_text(encoding='utf-8')

            connection = await timeout_wrapper(
                run_in_executor(
                    self._connect,
                    host=endpoint,
                    port=port or ds.ingress_port,
                    user=ds.user,
                    password=ds.password,
                    database=ds.db_name,
                    connect_timeout=ds.connect_timeout,
                    read_timeout=max(ds.cleanup_timeout, ds.load_timeout),
                    client_flag=CLIENT.MULTI_STATEMENTS,
                    autocommit=True,
                ),
                timeout_seconds=ds.connect_timeout,
            )

            # Each table is dropped on its own to keep locks short
            for table in ds.cleanup_tables:
                await timeout_wrapper(
                    run_in_executor(_execute_script, connection, f"DROP TABLE IF EXISTS `{table}`;"),
                    timeout_seconds=ds.cleanup_timeout,
                )
                executed += 1
            logger.info("Datastore ready for import.")

            await timeout_wrapper(
                run_in_executor(_execute_script, connection, script),
                timeout_seconds=ds.load_timeout,
            )
            executed += 1

            elapsed = time.monotonic() - started
            logger.info(f"Success. {ds.instance_id} populated with data in {elapsed:.1f}s.")
            return LoadResult(success=True, statements_executed=executed, elapsed_seconds=elapsed)

        except Exception as e:
            logger.error(f"Error loading datastore: {e!r}")
            return LoadResult(
                success=False,
                statements_executed=executed,
                elapsed_seconds=time.monotonic() - started,
                error=str(e) or type(e).__name__,
            )

        finally:
            if connection is not None:
                try:
                    connection.close()
                except Exception as e:
                    logger.warning(f"Error closing datastore connection: {e}")
            if script_path.exists():
                script_path.unlink()
