#!/usr/bin/env python3
"""
Healthylinkx MCP Server

Exposes the doctor search as the ``SearchDoctors`` tool over stateless
streamable HTTP on ``/mcp``. Inside the function runtime the web adapter
forwards requests to port 8080.
"""

import logging
import os
import sys
from typing import Literal, Optional

import aioboto3
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from healthylinkx.config import AppConfig, configure_logging, load_config
from healthylinkx.schemas.search import DoctorRecord, DoctorSearchOutput, SearchDoctorsRequest
from healthylinkx.services.provisioning.aws import DatabaseClient
from healthylinkx.services.search import DoctorSearchService

logger = logging.getLogger(__name__)

SERVER_NAME = 'Healthylinkx MCP Server'


def server_port() -> int:
    """Port to listen on; the web adapter expects 8080 inside the function runtime."""
    if os.getenv("AWS_LAMBDA_FUNCTION_NAME"):
        return 8080
    return int(os.getenv("PORT", "3000"))


async def search_doctors(
    service: DoctorSearchService,
    zipcode: Optional[int] = None,
    lastname: Optional[str] = None,
    specialty: Optional[str] = None,
    gender: Optional[str] = None
) -> DoctorSearchOutput:
    """
    Run a validated doctor search and convert rows to tool output.

    Raises:
        ToolError: If the search does not return results
    """
    request = SearchDoctorsRequest(
        zipcode=zipcode, lastname=lastname, specialty=specialty, gender=gender
    )
    reply = await service.search(
        request.gender, request.lastname, request.specialty, request.zipcode
    )
    if reply.status_code != 200:
        raise ToolError(f"Error: {reply.result}")

    return DoctorSearchOutput(
        SearchResults=[DoctorRecord.from_row(row) for row in reply.result]
    )


def create_server(
    config: AppConfig,
    service: Optional[DoctorSearchService] = None
) -> FastMCP:
    """
    Build the MCP server with the SearchDoctors tool registered.

    Args:
        config: Application configuration
        service: Search service (built from config when None)

    Returns:
        Configured FastMCP server
    """
    if service is None:
        session = aioboto3.Session(**config.credentials)
        service = DoctorSearchService(config, DatabaseClient(session, config))

    server = FastMCP(
        SERVER_NAME,
        host="0.0.0.0",
        port=server_port(),
        stateless_http=True,
        json_response=True,
    )

    @server.tool(
        name="SearchDoctors",
        title="SearchDoctors",
        description="Search for doctors in the HealthyLinkx directory",
    )
    async def search_doctors_tool(
        zipcode: Optional[int] = None,
        lastname: Optional[str] = None,
        specialty: Optional[str] = None,
        gender: Optional[Literal["male", "female"]] = None,
    ) -> DoctorSearchOutput:
        logger.info("SearchDoctors request received")
        return await search_doctors(service, zipcode, lastname, specialty, gender)

    return server


def main() -> int:
    """Start the MCP server (blocks until shutdown)."""
    config = load_config()
    configure_logging(config)
    try:
        server = create_server(config)
        logger.info(f"{SERVER_NAME} running on port {server_port()}")
        server.run(transport="streamable-http")
    except Exception as e:
        logger.error(f"{SERVER_NAME} error: {e}", exc_info=True)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
