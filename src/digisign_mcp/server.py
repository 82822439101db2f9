"""MCP server exposing the DigiSign client as tools.

Each tool call validates its arguments with the tool's pydantic model, runs
exactly one client operation (or the upload-and-attach workflow) and renders
the normalized result as MCP content.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Union

import httpx
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions
from mcp.server.stdio import stdio_server
from pydantic import AnyUrl, ValidationError

from .auth import AuthError
from .client import ApiError, DigiSignClient
from .config import Settings
from .models import ApiResult, BinaryResult, EmptyResult, JsonResult
from .service import create_client, create_http_client
from .tools import TOOLS, TOOLS_BY_NAME
from .util import FilesystemError, guess_extension

SERVER_NAME = "digisign"
SERVER_VERSION = "1.0.0"

logger = logging.getLogger(__name__)

Content = Union[types.TextContent, types.ImageContent, types.EmbeddedResource]


class ToolCallError(RuntimeError):
    """Raised to the MCP layer, which turns it into an ``isError`` result."""


def _json_text(data: Any) -> types.TextContent:
    return types.TextContent(type="text", text=json.dumps(data, indent=2, ensure_ascii=False))


def render_result(result: Union[ApiResult, dict[str, Any]], tool_name: str, arguments: dict[str, Any]) -> list[Content]:
    if isinstance(result, JsonResult):
        return [_json_text(result.value)]
    if isinstance(result, EmptyResult):
        return [_json_text({"success": True})]
    if isinstance(result, BinaryResult):
        envelope_id = arguments.get("envelopeId", "download")
        uri = f"digisign://envelopes/{envelope_id}/{tool_name}.{guess_extension(result.content_type)}"
        resource = types.BlobResourceContents(
            uri=AnyUrl(uri),
            mimeType=result.content_type.split(";")[0].strip(),
            blob=base64.b64encode(result.content).decode("ascii"),
        )
        return [
            _json_text({"contentType": result.content_type, "size": len(result.content), "uri": uri}),
            types.EmbeddedResource(type="resource", resource=resource),
        ]
    return [_json_text(result)]


def describe_error(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}" for err in exc.errors()
        )
        return f"Error: invalid arguments: {problems}"
    if isinstance(exc, httpx.HTTPError):
        return f"Error: request failed ({type(exc).__name__}): {exc}"
    return f"Error: {exc}"


async def call_tool(client: DigiSignClient, name: str, arguments: dict[str, Any] | None) -> list[Content]:
    """Validate arguments, run the tool and render its result."""
    tool = TOOLS_BY_NAME.get(name)
    if tool is None:
        raise ToolCallError(f"Error: unknown tool: {name}")

    arguments = arguments or {}
    try:
        args = tool.args.model_validate(arguments)
        result = await tool.run(client, args)
    except (AuthError, ApiError, FilesystemError, ValidationError, httpx.HTTPError) as e:
        logger.error(f"Tool {name} failed: {e}")
        raise ToolCallError(describe_error(e)) from e
    return render_result(result, name, arguments)


def list_tools() -> list[types.Tool]:
    return [
        types.Tool(
            name=tool.name,
            description=tool.description,
            inputSchema=tool.input_schema(),
            annotations=types.ToolAnnotations(readOnlyHint=tool.read_only),
        )
        for tool in TOOLS
    ]


def create_server(client: DigiSignClient) -> Server:
    server = Server(f"{SERVER_NAME}-server")

    @server.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        return list_tools()

    @server.call_tool()
    async def handle_call_tool(name: str, arguments: dict | None) -> list[Content]:
        logger.info(f"Calling tool: {name}")
        return await call_tool(client, name, arguments)

    return server


def get_initialization_options(server_instance: Server) -> InitializationOptions:
    return InitializationOptions(
        server_name=SERVER_NAME,
        server_version=SERVER_VERSION,
        capabilities=server_instance.get_capabilities(
            notification_options=NotificationOptions(),
            experimental_capabilities={},
        ),
    )


async def run_stdio_server(settings: Settings) -> None:
    """Serve MCP over stdin/stdout until the host closes the streams."""
    async with create_http_client(settings) as http:
        server = create_server(create_client(settings, http))
        logger.info("Starting DigiSign MCP stdio server")
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, get_initialization_options(server))
