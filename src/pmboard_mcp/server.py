"""PM Board MCP Server - Expose the agent API to AI coding assistants."""
import os
import sys
import asyncio
import logging
import traceback
from typing import Any

import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from . import tools
from . import handlers


# Configure logging to stderr (stdout carries the MCP protocol)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr,
    force=True
)
logger = logging.getLogger("pmboard-mcp")

# API Configuration
API_BASE_URL = os.getenv("PMBOARD_API_BASE_URL", "http://localhost:8000/api/v1/agent")
API_TIMEOUT = float(os.getenv("PMBOARD_API_TIMEOUT", "30"))

logger.info(f"MCP Server starting with PMBOARD_API_BASE_URL: {API_BASE_URL}")


# MCP Server instance
app = Server("pmboard-mcp")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available MCP tools."""
    return tools.get_tools()


async def dispatch(name: str, arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """
    Run one tool against the agent API.

    HTTP and connection failures come back as "Error: ..." text rather than
    exceptions so the assistant can read and react to them.
    """
    handler = handlers.HANDLERS.get(name)
    if not handler:
        logger.warning(f"Unknown tool requested: {name}")
        return [TextContent(type="text", text=f"Unknown tool: {name}")]

    try:
        return await handler(arguments, client)

    except httpx.HTTPStatusError as e:
        logger.error(f"HTTP error during {name} call:")
        logger.error(f"  Status: {e.response.status_code}")
        logger.error(f"  URL: {e.request.url}")
        try:
            response_body = e.response.json()
            logger.error(f"  Response body: {response_body}")
            error_detail = response_body.get("detail", str(e))
        except ValueError:
            response_text = e.response.text
            logger.error(f"  Response text: {response_text}")
            error_detail = response_text or str(e)
        return [TextContent(type="text", text=f"Error: {error_detail}")]

    except httpx.RequestError as e:
        logger.error(f"Request error during {name} call:")
        logger.error(f"  Error type: {type(e).__name__}")
        logger.error(f"  Error message: {str(e)}")
        logger.error(f"  Traceback: {traceback.format_exc()}")
        return [TextContent(type="text", text=f"Error: Connection failed - {str(e)}")]

    except KeyError as e:
        logger.error(f"Missing argument for {name}: {e}")
        return [TextContent(type="text", text=f"Error: missing required argument {e}")]


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle MCP tool calls by delegating to the handlers."""
    logger.info(f"Tool call: {name} with arguments: {arguments}")

    async with httpx.AsyncClient(base_url=API_BASE_URL, timeout=API_TIMEOUT) as client:
        return await dispatch(name, arguments or {}, client)


async def main():
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await app.run(read_stream, write_stream, app.create_initialization_options())


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
