# =============================================================================
# tools/common.py  -  FastMCP binding, logging and server bootstrap
# =============================================================================
#
# WHAT THIS FILE DOES:
#   Everything the three servers (kb_server, image_server, payment_server)
#   share on the MCP side:
#     1. Logging to STDERR with colour-coded request/status/response lines
#     2. DispatchedTool: a FastMCP Tool that forwards a call to the
#        Dispatcher and turns the ResponseEnvelope into MCP content
#     3. build_app(): one FastMCP instance with one DispatchedTool per
#        registry entry, in registry order
#     4. run_server(): load configuration, wire the pieces together and
#        drive the ServerLifecycle; returns the process exit code
# =============================================================================

import asyncio
import contextlib
import json
import logging
import sys
from typing import Any, Awaitable, Callable, Optional

from dotenv import load_dotenv
from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.tools import Tool
from fastmcp.tools.tool import ToolResult
from mcp.types import TextContent
from pydantic import Field

from core.aztp import AztpIdentityProvider
from core.config import IdentitySettings, log_level
from core.dispatcher import Dispatcher
from core.errors import ConfigurationError, IdentityHandshakeError, LifecycleError
from core.identity import IdentityContext, IdentityHandshake, build_metadata
from core.lifecycle import ServerLifecycle, StartupPlan
from core.models import ResponseEnvelope, ToolCallRequest

# =============================================================================
# Logging Setup
# =============================================================================
# STDOUT carries the MCP JSON-RPC stream, so every log line goes to STDERR.
# Anything printed to stdout would corrupt the protocol.
#
# ANSI colours:
#   CYAN    incoming tool calls
#   GREEN   responses
#   YELLOW  intermediate status
# =============================================================================
_CYAN = "\033[36m"
_GREEN = "\033[32m"
_YELLOW = "\033[33m"
_RESET = "\033[0m"


def setup_logging(level: Optional[int] = None) -> None:
    logging.basicConfig(
        level=level if level is not None else log_level(),
        format="%(asctime)s [MCP] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def log_request(tool_name: str, /, **params: Any) -> None:
    """Log an incoming tool call with its parameters in CYAN."""
    param_str = ", ".join(f"{k}={v!r}" for k, v in params.items())
    logging.info(f"{_CYAN}{tool_name} called with: {param_str}{_RESET}")


def log_status(message: str) -> None:
    """Log an intermediate status message in YELLOW."""
    logging.info(f"{_YELLOW}  → {message}{_RESET}")


def log_response(tool_name: str, envelope: ResponseEnvelope) -> ResponseEnvelope:
    """Log the response envelope as compact JSON in GREEN, then return it."""
    logging.info(
        f"{_GREEN}  ← {tool_name} response: "
        f"{json.dumps(envelope.to_payload(), separators=(',', ':'))}{_RESET}"
    )
    return envelope


# =============================================================================
# FastMCP binding
# =============================================================================
class DispatchedTool(Tool):
    """A FastMCP tool whose body is Dispatcher.call_tool()."""

    dispatch: Callable[[ToolCallRequest], Awaitable[ResponseEnvelope]] = Field(exclude=True)

    async def run(self, arguments: dict[str, Any]) -> ToolResult:
        log_request(self.name, **(arguments or {}))
        envelope = log_response(
            self.name,
            await self.dispatch(ToolCallRequest(name=self.name, arguments=arguments or {})),
        )
        if envelope.is_error:
            raise ToolError(envelope.text())
        return ToolResult(
            content=[TextContent(type="text", text=block.text) for block in envelope.content]
        )


def build_app(server_name: str, dispatcher: Dispatcher) -> FastMCP:
    """Create the FastMCP server and register every tool in registry order."""
    app = FastMCP(server_name)
    for descriptor in dispatcher.list_tools():
        app.add_tool(
            DispatchedTool(
                name=descriptor.name,
                description=descriptor.description,
                parameters=descriptor.input_schema,
                dispatch=dispatcher.call_tool,
            )
        )
    return app


# =============================================================================
# Bootstrap
# =============================================================================
CreateDispatcher = Callable[[IdentityContext, contextlib.AsyncExitStack], Awaitable[Dispatcher]]


def run_server(
    server_name: str,
    create_dispatcher: CreateDispatcher,
    configure_app: Optional[Callable[[FastMCP], None]] = None,
) -> int:
    """Run one server over stdio and return the process exit code.

    Args:
        server_name: The MCP server name (e.g. "paypal-mcp-server").
        create_dispatcher: Builds the server's dispatcher.  Provider settings
            are loaded inside it, so a missing key is a ConfigurationError;
            HTTP clients it opens go on the exit stack and are closed on
            shutdown.
        configure_app: Optional hook to register extra FastMCP components
            (the image server uses it for its resource).

    Returns:
        0 on graceful shutdown, 1 on a fatal startup error.
    """
    load_dotenv()
    setup_logging()

    context = IdentityContext()

    async def prepare(resources: contextlib.AsyncExitStack) -> StartupPlan:
        identity_settings = IdentitySettings.from_env()
        dispatcher = await create_dispatcher(context, resources)
        app = build_app(server_name, dispatcher)
        if configure_app is not None:
            configure_app(app)

        logging.info(f"{server_name} running on stdio")
        return StartupPlan(
            run_transport=lambda: app.run_async(transport="stdio"),
            handshake=IdentityHandshake(
                AztpIdentityProvider(identity_settings.api_key),
                server_handle=app,
            ),
            identity_name=identity_settings.identity_name,
            metadata=build_metadata(
                trust_domain=identity_settings.trust_domain,
                link_to=identity_settings.link_to,
                parent_identity=identity_settings.parent_identity,
            ),
        )

    lifecycle = ServerLifecycle(context, prepare)
    try:
        asyncio.run(lifecycle.run())
    except (ConfigurationError, IdentityHandshakeError, LifecycleError) as exc:
        logging.error(f"Fatal error running server ({lifecycle.state.value}): {exc}")
        return 1
    except KeyboardInterrupt:
        logging.info(f"{server_name} interrupted, shutting down")

    return 0
