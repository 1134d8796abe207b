# =============================================================================
# core/lifecycle.py  -  Server startup state machine
# =============================================================================
#
#   UNCONNECTED -> TRANSPORT_CONNECTED -> IDENTITY_PENDING -> READY
#        \                 \                     \
#         +-----------------+---------------------+--> FAILED
#
# Transitions only move forward.  READY and FAILED are terminal.
#
# STARTUP ORDER:
#   1. prepare() loads configuration and opens provider clients.  A
#      ConfigurationError here moves UNCONNECTED -> FAILED.
#   2. The transport task starts.  If it has already finished by the time
#      it is checked, the lifecycle fails without attempting the handshake.
#   3. The handshake runs while the transport is answering requests; the
#      identity-query tool reports "not yet established" until the context
#      is filled.  A failed handshake cancels the transport and re-raises,
#      which the entry point turns into a non-zero exit.
#
# Resources registered on the exit stack during prepare() are closed when
# run() returns, whatever the outcome.
# =============================================================================

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from core.errors import ConfigurationError, IdentityHandshakeError, LifecycleError
from core.identity import IdentityContext, IdentityHandshake
from core.models import IdentityMetadata

logger = logging.getLogger(__name__)


class LifecycleState(Enum):
    UNCONNECTED = "unconnected"
    TRANSPORT_CONNECTED = "transport_connected"
    IDENTITY_PENDING = "identity_pending"
    READY = "ready"
    FAILED = "failed"


_ALLOWED: dict[LifecycleState, set[LifecycleState]] = {
    LifecycleState.UNCONNECTED: {LifecycleState.TRANSPORT_CONNECTED, LifecycleState.FAILED},
    LifecycleState.TRANSPORT_CONNECTED: {LifecycleState.IDENTITY_PENDING, LifecycleState.FAILED},
    LifecycleState.IDENTITY_PENDING: {LifecycleState.READY, LifecycleState.FAILED},
    LifecycleState.READY: set(),
    LifecycleState.FAILED: set(),
}


@dataclass(frozen=True)
class StartupPlan:
    """Everything run() needs once configuration has loaded.

    Attributes:
        run_transport: Coroutine function that serves the transport until the
            peer disconnects (e.g. FastMCP.run_async over stdio).
        handshake: The IdentityHandshake to run once the transport is live.
        identity_name: AZTP_IDENTITY_NAME.
        metadata: Metadata built from the optional AZTP_* inputs.
    """

    run_transport: Callable[[], Awaitable[None]]
    handshake: IdentityHandshake
    identity_name: str
    metadata: IdentityMetadata


Prepare = Callable[[contextlib.AsyncExitStack], Awaitable[StartupPlan]]


class ServerLifecycle:
    """Load configuration, connect the transport, run the handshake, serve.

    Args:
        context: Receives the verified identity.
        prepare: Builds the StartupPlan.  Clients it opens should be entered
            on the exit stack it is given so they close with the server.
    """

    def __init__(self, context: IdentityContext, prepare: Prepare):
        self._context = context
        self._prepare = prepare
        self._state = LifecycleState.UNCONNECTED

    @property
    def state(self) -> LifecycleState:
        return self._state

    def _advance(self, new_state: LifecycleState) -> None:
        if new_state not in _ALLOWED[self._state]:
            raise LifecycleError(f"Illegal transition {self._state.value} -> {new_state.value}")
        logger.debug(f"Lifecycle {self._state.value} -> {new_state.value}")
        self._state = new_state

    async def run(self) -> None:
        """Run the server to completion.

        Raises:
            ConfigurationError, IdentityHandshakeError: startup failed; the
                transport (if started) has been cancelled and the state is
                FAILED.
            LifecycleError: the transport stopped before the handshake could
                run, or run() was already called on this lifecycle.
        """
        if self._state is not LifecycleState.UNCONNECTED:
            raise LifecycleError(f"Lifecycle already started (state: {self._state.value})")

        async with contextlib.AsyncExitStack() as resources:
            try:
                plan = await self._prepare(resources)
            except ConfigurationError:
                self._advance(LifecycleState.FAILED)
                raise
            await self._serve(plan)

    async def _serve(self, plan: StartupPlan) -> None:
        transport = asyncio.create_task(plan.run_transport())
        # Give the transport task a chance to open its streams.
        await asyncio.sleep(0)
        if transport.done():
            self._advance(LifecycleState.FAILED)
            error = None if transport.cancelled() else transport.exception()
            raise LifecycleError(
                f"Transport stopped before the identity handshake: {error!r}"
            ) from error
        self._advance(LifecycleState.TRANSPORT_CONNECTED)

        self._advance(LifecycleState.IDENTITY_PENDING)
        try:
            identity = await plan.handshake.establish(plan.identity_name, plan.metadata)
        except (ConfigurationError, IdentityHandshakeError):
            self._advance(LifecycleState.FAILED)
            transport.cancel()
            (outcome,) = await asyncio.gather(transport, return_exceptions=True)
            if isinstance(outcome, Exception):
                logger.error(f"Transport had already failed: {outcome!r}")
            raise

        self._context.establish(identity)
        self._advance(LifecycleState.READY)
        logger.info("AZTP secured connection established; server is ready")

        await transport
