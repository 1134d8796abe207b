# =============================================================================
# core/identity.py  -  AZTP identity handshake
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Establishes a verifiable identity for the running server before peers
#   trust it.  The flow is a single round trip:
#
#     1. build_metadata() turns the optional AZTP_* inputs into an
#        IdentityMetadata (absent inputs are omitted, never sent empty)
#     2. IdentityHandshake.establish() submits name + metadata to the
#        identity provider
#     3. The provider answers {verified, id}.  Anything other than a
#        verified identity is fatal: there is no retry, the operator fixes
#        the configuration and restarts.
#
#   The established identity lives in an IdentityContext that is handed to
#   the dispatcher at construction time.  It starts empty and is filled
#   exactly once.
# =============================================================================

import logging
from typing import Any, Iterable, Optional, Protocol

from core.errors import ConfigurationError, IdentityHandshakeError
from core.models import IdentityMetadata, SecuredIdentity

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    """The one outbound call the handshake needs."""

    async def secure_connect(
        self,
        server_handle: Any,
        name: str,
        metadata: dict[str, Any],
    ) -> SecuredIdentity:
        ...


def build_metadata(
    trust_domain: Optional[str] = None,
    link_to: Optional[Iterable[str]] = None,
    parent_identity: Optional[str] = None,
) -> IdentityMetadata:
    """Build handshake metadata from optional configuration inputs.

    Args:
        trust_domain: AZTP trust domain, e.g. "acme".
        link_to: Identities this server links to.  Empty entries are dropped.
        parent_identity: Parent AZTP identity reference.

    Returns:
        An IdentityMetadata with isGlobalIdentity=False and only the fields
        whose input was present and non-empty.
    """
    links = tuple(link for link in (link_to or ()) if link)
    return IdentityMetadata(
        is_global_identity=False,
        trust_domain=trust_domain or None,
        link_to=links,
        parent_identity=parent_identity or None,
    )


class IdentityHandshake:
    """Runs the handshake against an IdentityProvider."""

    def __init__(self, provider: IdentityProvider, server_handle: Any = None):
        self._provider = provider
        self._server_handle = server_handle

    async def establish(self, name: str, metadata: IdentityMetadata) -> SecuredIdentity:
        """Submit the identity request and return a verified identity.

        Raises:
            ConfigurationError: name is empty.
            IdentityHandshakeError: the provider call failed, or the provider
                returned an identity that is not verified.
        """
        if not name:
            raise ConfigurationError("AZTP_IDENTITY_NAME is required")

        payload = metadata.to_payload()
        logger.info(f"Requesting identity '{name}' with metadata {payload}")
        try:
            identity = await self._provider.secure_connect(self._server_handle, name, payload)
        except Exception as exc:
            raise IdentityHandshakeError(f"Identity provider call failed: {exc}") from exc

        if not identity.verified:
            raise IdentityHandshakeError("Invalid identity")

        logger.info(f"Identity established: {identity.id}")
        return identity


class IdentityContext:
    """Holds the server's identity once the handshake has produced it.

    current() returns None until establish() is called; establish() may be
    called only once per process.
    """

    def __init__(self) -> None:
        self._identity: Optional[SecuredIdentity] = None

    @property
    def is_established(self) -> bool:
        return self._identity is not None

    def current(self) -> Optional[SecuredIdentity]:
        return self._identity

    def establish(self, identity: SecuredIdentity) -> None:
        if self._identity is not None:
            raise RuntimeError("Server identity is already established")
        self._identity = identity
