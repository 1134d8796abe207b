# =============================================================================
# core/dispatcher.py  -  Tool call routing and the error envelope policy
# =============================================================================
#
# HOW A CALL FLOWS:
#   1. call_tool() looks the name up in the registry (exact match).
#      Unknown name -> {"Unknown tool: <name>", isError}.
#   2. The route's pydantic model validates the raw arguments into a typed
#      record.  A ValidationError becomes an INVALID_ARGUMENTS failure.
#   3. The handler runs and returns ToolSuccess or ToolFailure.
#   4. Anything a handler raises (ProviderError or otherwise) is turned into
#      a failure right here.  Nothing crosses this boundary: one bad call
#      never takes the server down.
#   5. _render() converts a failure into the error envelope.
# =============================================================================

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from pydantic import BaseModel, ValidationError

from core.errors import ProviderError
from core.identity import IdentityContext
from core.models import (
    FailureKind,
    HandlerResult,
    ResponseEnvelope,
    ToolCallRequest,
    ToolDescriptor,
    ToolFailure,
    ToolSuccess,
    error_envelope,
    text_envelope,
)
from core.registry import ToolRegistry

logger = logging.getLogger(__name__)

IDENTITY_NOT_ESTABLISHED = "Server identity not yet established"

Handler = Callable[[Any], Awaitable[HandlerResult]]


@dataclass(frozen=True)
class ToolRoute:
    """How to validate and run one tool."""

    arguments_model: type[BaseModel]
    handler: Handler


class Dispatcher:
    """Routes call_tool requests to handlers and wraps every outcome."""

    def __init__(self, registry: ToolRegistry, routes: Mapping[str, ToolRoute]):
        missing = [name for name in registry.names() if name not in routes]
        extra = [name for name in routes if name not in registry]
        if missing or extra:
            raise ValueError(f"Routes do not match registry (missing={missing}, extra={extra})")
        self._registry = registry
        self._routes = dict(routes)

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def list_tools(self) -> tuple[ToolDescriptor, ...]:
        return self._registry.list()

    async def call_tool(self, request: ToolCallRequest) -> ResponseEnvelope:
        route = self._routes.get(request.name)
        if route is None:
            logger.warning(f"Unknown tool requested: {request.name}")
            return error_envelope(f"Unknown tool: {request.name}")

        result = await self._invoke(request, route)
        return _render(result)

    async def _invoke(self, request: ToolCallRequest, route: ToolRoute) -> HandlerResult:
        try:
            arguments = route.arguments_model.model_validate(request.arguments or {})
        except ValidationError as exc:
            return ToolFailure(
                FailureKind.INVALID_ARGUMENTS,
                f"Invalid arguments for {request.name}: {_summarize(exc)}",
            )

        try:
            return await route.handler(arguments)
        except ProviderError as exc:
            logger.error(f"Error executing tool {request.name}: {exc}")
            return ToolFailure(FailureKind.PROVIDER, str(exc))
        except Exception as exc:
            logger.exception(f"Unexpected error executing tool {request.name}")
            return ToolFailure(FailureKind.INTERNAL, str(exc) or type(exc).__name__)


def _render(result: HandlerResult) -> ResponseEnvelope:
    if isinstance(result, ToolSuccess):
        return result.envelope
    if result.kind is FailureKind.IDENTITY_UNAVAILABLE:
        return error_envelope(result.message)
    return error_envelope(f"Error: {result.message}")


def _summarize(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "arguments"
        parts.append(f"{location}: {error.get('msg', 'invalid')}")
    return "; ".join(parts)


# -----------------------------------------------------------------------------
# Identity-query tool
# -----------------------------------------------------------------------------
# Every server exposes one.  It only reads the context.
# -----------------------------------------------------------------------------
def identity_route(context: IdentityContext, arguments_model: type[BaseModel]) -> ToolRoute:
    """Build the route answering the server's identity-query tool."""

    async def handle(_arguments: BaseModel) -> HandlerResult:
        identity = context.current()
        if identity is None:
            return ToolFailure(FailureKind.IDENTITY_UNAVAILABLE, IDENTITY_NOT_ESTABLISHED)
        return ToolSuccess(text_envelope(identity.id))

    return ToolRoute(arguments_model=arguments_model, handler=handle)
