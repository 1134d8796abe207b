# =============================================================================
# core/errors.py  -  Error taxonomy shared by all servers
# =============================================================================
#
# Two families of errors exist:
#
#   FATAL (startup):  ConfigurationError, IdentityHandshakeError
#     The process must not serve tools.  The entry point logs the
#     diagnostic to stderr and exits non-zero.
#
#   PER-CALL:         ProviderError
#     Raised by provider clients (PayPal, EverArt, Bedrock).  The dispatcher
#     turns it into an isError envelope for that one call; the server stays
#     up for the next request.
# =============================================================================


class ServerError(Exception):
    """Base class for every error raised by this project."""


class ConfigurationError(ServerError):
    """Required configuration is missing or malformed."""


class IdentityHandshakeError(ServerError):
    """The identity provider failed or returned an unverified identity."""


class ProviderError(ServerError):
    """An external provider rejected or failed a single tool call."""


class LifecycleError(ServerError):
    """An illegal server lifecycle transition was attempted."""
