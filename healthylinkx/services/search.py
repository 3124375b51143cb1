"""Doctor search over the provisioned datastore using PyDAL."""

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple
from urllib.parse import quote

from pydal import DAL

from healthylinkx.config import AppConfig
from healthylinkx.services.provisioning.aws import DatabaseClient
from healthylinkx.utils.async_utils import run_in_executor

logger = logging.getLogger(__name__)

RESULT_LIMIT = 25

SELECT_COLUMNS = (
    "Provider_Full_Name,Provider_Full_Street,Provider_Full_City,Classification"
)


@dataclass
class SearchReply:
    """Status code and payload (rows or an error message)."""
    status_code: int
    result: Any


def normalize_gender(gender: Optional[str]) -> Optional[str]:
    """Map a gender filter to the NPI gender code (M or F)."""
    if not gender:
        return None
    if gender in ('male', 'm', 'M'):
        return 'M'
    return 'F'


def build_search_query(
    gender: Optional[str] = None,
    lastname: Optional[str] = None,
    specialty: Optional[str] = None,
    zipcode: Optional[Any] = None
) -> Tuple[str, List[Any]]:
    """
    Build the parameterized doctor lookup.

    Args:
        gender: Gender filter (normalized to M/F)
        lastname: Provider last name
        specialty: Provider classification
        zipcode: Provider short postal code

    Returns:
        Tuple of (sql, placeholders)
    """
    conditions = []
    placeholders: List[Any] = []

    if lastname:
        conditions.append("(Provider_Last_Name_Legal_Name = %s)")
        placeholders.append(lastname)
    gender_code = normalize_gender(gender)
    if gender_code:
        conditions.append("(Provider_Gender_Code = %s)")
        placeholders.append(gender_code)
    if specialty:
        conditions.append("(Classification = %s)")
        placeholders.append(specialty)
    if zipcode:
        conditions.append("(Provider_Short_Postal_Code = %s)")
        placeholders.append(str(zipcode))

    sql = (
        f"SELECT {SELECT_COLUMNS} FROM npidata2 "
        f"WHERE ({' AND '.join(conditions)}) LIMIT {RESULT_LIMIT}"
    )
    return sql, placeholders


class DoctorSearchService:
    """Read-only doctor lookup against the Healthylinkx datastore."""

    def __init__(
        self,
        config: AppConfig,
        database: Optional[DatabaseClient] = None,
        dal_factory: Callable[..., Any] = DAL
    ):
        """
        Initialize the search service.

        Args:
            config: Application configuration
            database: RDS client used to resolve the endpoint when
                ``HEALTHYLINKX_DB_HOST`` is not set
            dal_factory: PyDAL DAL constructor, replaceable in tests
        """
        self.config = config
        self.database = database
        self._dal_factory = dal_factory

    async def resolve_endpoint(self) -> str:
        """Return the database host from the environment or from RDS."""
        host = os.getenv("HEALTHYLINKX_DB_HOST")
        if host:
            return host
        if self.database is None:
            raise RuntimeError("No database host configured")

        described = await self.database.describe()
        endpoint = described.data.get('endpoint')
        if not endpoint:
            raise RuntimeError(
                f"Datastore {self.config.datastore.instance_id} has no endpoint "
                f"(status {described.status.value})"
            )
        return endpoint

    def _uri(self, host: str) -> str:
        ds = self.config.datastore
        return (
            f"mysql://{quote(ds.user or '', safe='')}:{quote(ds.password or '', safe='')}"
            f"@{host}:{ds.ingress_port}/{ds.db_name}"
        )

    def _query(self, host: str, sql: str, placeholders: List[Any]) -> List[dict]:
        db = self._dal_factory(
            self._uri(host),
            pool_size=0,
            migrate_enabled=False,
            attempts=1,
            decode_credentials=True,
            driver_args={'read_timeout': 10},
        )
        try:
            return db.executesql(sql, placeholders=placeholders, as_dict=True)
        finally:
            db.close()

    async def search(
        self,
        gender: Optional[str] = None,
        lastname: Optional[str] = None,
        specialty: Optional[str] = None,
        zipcode: Optional[Any] = None
    ) -> SearchReply:
        """
        Search doctors matching every given filter (at most 25 rows).

        At least one of lastname, specialty or zipcode is required.

        Returns:
            SearchReply(200, rows), SearchReply(204, message) when filters are
            missing, or SearchReply(500, message) on datastore errors
        """
        if not zipcode and not lastname and not specialty:
            return SearchReply(204, "Not enough params!")

        sql, placeholders = build_search_query(gender, lastname, specialty, zipcode)

        try:
            host = await self.resolve_endpoint()
            rows = await run_in_executor(self._query, host, sql, placeholders)
            logger.info(f"Doctor search returned {len(rows)} row(s)")
            return SearchReply(200, rows)
        except Exception as e:
            logger.error(f"Doctor search failed: {e}")
            return SearchReply(
                500,
                f"Error accessing to the datastore with query: {sql} and error: {e}"
            )
