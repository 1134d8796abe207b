# =============================================================================
# core/aztp.py  -  AZTP identity provider (aztp-client SDK)
# =============================================================================
#
# Adapts the aztp-client SDK to the IdentityProvider protocol in
# core/identity.py.  The SDK is imported when the provider is created so
# the rest of core/ (and the test suite) does not need it installed.
# =============================================================================

from typing import Any

from core.errors import ConfigurationError
from core.models import SecuredIdentity


class AztpIdentityProvider:
    """Issues and verifies the server identity through AZTP."""

    def __init__(self, api_key: str):
        try:
            from aztp_client import Aztp
        except ImportError as exc:
            raise ConfigurationError(
                "aztp-client is not installed (pip install 'aztp-mcp-servers[aztp]')"
            ) from exc

        self._client = Aztp(api_key=api_key)

    async def secure_connect(
        self,
        server_handle: Any,
        name: str,
        metadata: dict[str, Any],
    ) -> SecuredIdentity:
        secured = await self._client.secure_connect(server_handle, name, metadata)
        identity = secured.identity
        return SecuredIdentity(
            verified=bool(getattr(identity, "verify", False)),
            id=str(identity.aztp_id),
        )
