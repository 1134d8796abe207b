from __future__ import annotations

import pytest
from pydantic import BaseModel

from core.dispatcher import IDENTITY_NOT_ESTABLISHED, Dispatcher, ToolRoute, identity_route
from core.errors import ProviderError
from core.identity import IdentityContext
from core.models import (
    FailureKind,
    SecuredIdentity,
    ToolCallRequest,
    ToolDescriptor,
    ToolFailure,
    ToolSuccess,
    text_envelope,
)
from core.registry import ToolRegistry


class EchoArguments(BaseModel):
    message: str


class NoArguments(BaseModel):
    pass


def _descriptor(name: str) -> ToolDescriptor:
    return ToolDescriptor(name=name, description=name, input_schema={"type": "object", "properties": {}})


def _dispatcher(context: IdentityContext) -> Dispatcher:
    async def echo(args: EchoArguments):
        return ToolSuccess(text_envelope(args.message))

    async def refuse(args: NoArguments):
        return ToolFailure(FailureKind.PROVIDER, "card declined")

    async def explode(args: NoArguments):
        raise ProviderError("PayPal order creation failed: INVALID_REQUEST")

    async def crash(args: NoArguments):
        raise KeyError("id")

    registry = ToolRegistry([
        _descriptor("echo"),
        _descriptor("refuse"),
        _descriptor("explode"),
        _descriptor("crash"),
        _descriptor("whoami"),
    ])
    return Dispatcher(registry, {
        "echo": ToolRoute(EchoArguments, echo),
        "refuse": ToolRoute(NoArguments, refuse),
        "explode": ToolRoute(NoArguments, explode),
        "crash": ToolRoute(NoArguments, crash),
        "whoami": identity_route(context, NoArguments),
    })


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["missing", "ECHO", "", "echo "])
async def test_unknown_tool_is_an_error_envelope(identity_context: IdentityContext, name: str) -> None:
    envelope = await _dispatcher(identity_context).call_tool(ToolCallRequest(name=name, arguments={}))

    assert envelope.is_error is True
    assert envelope.text() == f"Unknown tool: {name}"


@pytest.mark.asyncio
async def test_success_passes_envelope_through(identity_context: IdentityContext) -> None:
    envelope = await _dispatcher(identity_context).call_tool(
        ToolCallRequest(name="echo", arguments={"message": "hello"})
    )

    assert envelope.is_error is False
    assert envelope.text() == "hello"
    assert envelope.to_payload() == {"content": [{"type": "text", "text": "hello"}]}


@pytest.mark.asyncio
async def test_invalid_arguments_are_reported(identity_context: IdentityContext) -> None:
    envelope = await _dispatcher(identity_context).call_tool(ToolCallRequest(name="echo", arguments={}))

    assert envelope.is_error is True
    assert envelope.text().startswith("Error: Invalid arguments for echo: message")


@pytest.mark.asyncio
async def test_handler_failure_becomes_error_envelope(identity_context: IdentityContext) -> None:
    envelope = await _dispatcher(identity_context).call_tool(ToolCallRequest(name="refuse"))

    assert envelope.to_payload() == {
        "content": [{"type": "text", "text": "Error: card declined"}],
        "isError": True,
    }


@pytest.mark.asyncio
async def test_provider_error_is_caught_at_the_boundary(identity_context: IdentityContext) -> None:
    dispatcher = _dispatcher(identity_context)

    envelope = await dispatcher.call_tool(ToolCallRequest(name="explode"))
    assert envelope.is_error is True
    assert envelope.text() == "Error: PayPal order creation failed: INVALID_REQUEST"

    # The next call is unaffected.
    follow_up = await dispatcher.call_tool(ToolCallRequest(name="echo", arguments={"message": "still up"}))
    assert follow_up.is_error is False
    assert follow_up.text() == "still up"


@pytest.mark.asyncio
async def test_unexpected_exception_is_caught(identity_context: IdentityContext) -> None:
    envelope = await _dispatcher(identity_context).call_tool(ToolCallRequest(name="crash"))

    assert envelope.is_error is True
    assert envelope.text().startswith("Error: ")


@pytest.mark.asyncio
async def test_identity_before_handshake(identity_context: IdentityContext) -> None:
    envelope = await _dispatcher(identity_context).call_tool(ToolCallRequest(name="whoami"))

    assert envelope.is_error is True
    assert envelope.text() == IDENTITY_NOT_ESTABLISHED


@pytest.mark.asyncio
async def test_identity_after_handshake(established_context: IdentityContext) -> None:
    envelope = await _dispatcher(established_context).call_tool(ToolCallRequest(name="whoami"))

    assert envelope.is_error is False
    assert envelope.text() == "aztp://acme/workload/test-server"
    assert "isError" not in envelope.to_payload()


@pytest.mark.asyncio
async def test_identity_becomes_visible_once_established(identity_context: IdentityContext) -> None:
    dispatcher = _dispatcher(identity_context)
    before = await dispatcher.call_tool(ToolCallRequest(name="whoami"))

    identity_context.establish(SecuredIdentity(verified=True, id="aztp://acme/late"))
    after = await dispatcher.call_tool(ToolCallRequest(name="whoami"))

    assert before.is_error is True
    assert after.text() == "aztp://acme/late"


def test_list_tools_returns_registry_order(identity_context: IdentityContext) -> None:
    dispatcher = _dispatcher(identity_context)

    assert [d.name for d in dispatcher.list_tools()] == ["echo", "refuse", "explode", "crash", "whoami"]


def test_routes_must_match_registry() -> None:
    registry = ToolRegistry([_descriptor("a"), _descriptor("b")])

    async def handler(args: NoArguments):
        return ToolSuccess(text_envelope("ok"))

    with pytest.raises(ValueError, match="missing=\\['b'\\]"):
        Dispatcher(registry, {"a": ToolRoute(NoArguments, handler)})

    with pytest.raises(ValueError, match="extra=\\['c'\\]"):
        Dispatcher(registry, {
            "a": ToolRoute(NoArguments, handler),
            "b": ToolRoute(NoArguments, handler),
            "c": ToolRoute(NoArguments, handler),
        })
