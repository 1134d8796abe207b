# =============================================================================
# core/config.py  -  Environment-driven settings
# =============================================================================
#
# Settings come from environment variables.  The entry point calls
# load_dotenv() first, so a local .env file works the same way.
#
# REQUIRED vs OPTIONAL:
#   Required values are presence-checked here and raise ConfigurationError.
#   That error is fatal: the server never starts serving tools without them.
#
#   AZTP_API_KEY, AZTP_IDENTITY_NAME        every server
#   EVERART_API_KEY                         image server
#   PAYPAL_CLIENT_ID, PAYPAL_CLIENT_SECRET  payment server
#
#   Optional: AZTP_TRUST_DOMAIN, AZTP_LINK_TO, AZTP_PARENT_IDENTITY,
#   AWS_REGION / AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY,
#   PAYPAL_ENVIRONMENT, PAYPAL_RETURN_URL, PAYPAL_CANCEL_URL, LOG_LEVEL.
# =============================================================================

import json
import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from core.errors import ConfigurationError

logger = logging.getLogger(__name__)


def _required(env: Mapping[str, str], key: str) -> str:
    value = env.get(key, "").strip()
    if not value:
        raise ConfigurationError(f"{key} is required")
    return value


def _optional(env: Mapping[str, str], key: str) -> Optional[str]:
    value = env.get(key, "").strip()
    return value or None


def parse_link_to(raw: Optional[str]) -> tuple[str, ...]:
    """Parse AZTP_LINK_TO.

    Accepts a JSON array string ('["aztp://a", "aztp://b"]') or a single
    plain value ('aztp://a').  A value that looks like a JSON array but does
    not parse is logged and used as a single literal link.
    """
    if not raw:
        return ()
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error(f"Error parsing AZTP_LINK_TO, should be a JSON array string: {exc}")
            return (raw,)
        if isinstance(parsed, list):
            return tuple(str(item) for item in parsed if item)
    return (raw,)


@dataclass(frozen=True)
class IdentitySettings:
    api_key: str
    identity_name: str
    trust_domain: Optional[str] = None
    link_to: tuple[str, ...] = ()
    parent_identity: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "IdentitySettings":
        env = os.environ if env is None else env
        return cls(
            api_key=_required(env, "AZTP_API_KEY"),
            identity_name=_required(env, "AZTP_IDENTITY_NAME"),
            trust_domain=_optional(env, "AZTP_TRUST_DOMAIN"),
            link_to=parse_link_to(_optional(env, "AZTP_LINK_TO")),
            parent_identity=_optional(env, "AZTP_PARENT_IDENTITY"),
        )


@dataclass(frozen=True)
class KnowledgeBaseSettings:
    region: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "KnowledgeBaseSettings":
        env = os.environ if env is None else env
        return cls(
            region=_optional(env, "AWS_REGION"),
            access_key_id=_optional(env, "AWS_ACCESS_KEY_ID"),
            secret_access_key=_optional(env, "AWS_SECRET_ACCESS_KEY"),
        )


@dataclass(frozen=True)
class EverArtSettings:
    api_key: str

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "EverArtSettings":
        env = os.environ if env is None else env
        return cls(api_key=_required(env, "EVERART_API_KEY"))


PAYPAL_SANDBOX_URL = "https://api-m.sandbox.paypal.com"
PAYPAL_LIVE_URL = "https://api-m.paypal.com"


@dataclass(frozen=True)
class PayPalSettings:
    client_id: str
    client_secret: str
    environment: str = "sandbox"
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None

    @property
    def base_url(self) -> str:
        return PAYPAL_LIVE_URL if self.environment == "live" else PAYPAL_SANDBOX_URL

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PayPalSettings":
        env = os.environ if env is None else env
        client_id = env.get("PAYPAL_CLIENT_ID", "").strip()
        client_secret = env.get("PAYPAL_CLIENT_SECRET", "").strip()
        if not client_id or not client_secret:
            raise ConfigurationError("PAYPAL_CLIENT_ID and PAYPAL_CLIENT_SECRET are required")
        return cls(
            client_id=client_id,
            client_secret=client_secret,
            environment="live" if env.get("PAYPAL_ENVIRONMENT", "").strip() == "live" else "sandbox",
            return_url=_optional(env, "PAYPAL_RETURN_URL"),
            cancel_url=_optional(env, "PAYPAL_CANCEL_URL"),
        )


def log_level(env: Optional[Mapping[str, str]] = None) -> int:
    env = os.environ if env is None else env
    level = logging.getLevelName(env.get("LOG_LEVEL", "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO
