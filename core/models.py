# =============================================================================
# core/models.py  -  Data Models (the "nouns" of the system)
# =============================================================================
#
# These dataclasses define the shape of every piece of information that flows
# between the transport, the dispatcher and the providers.  They are frozen:
# descriptors are created once at process start, identities are written once,
# and envelopes are never edited after a handler returns them.
#
# Wire names are camelCase (inputSchema, isError, isGlobalIdentity, fileName)
# while the Python attributes stay snake_case.  Each model that crosses the
# wire has a to_payload() that does the conversion.
# =============================================================================

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


# -----------------------------------------------------------------------------
# ToolDescriptor - one entry of a server's tool table
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ToolDescriptor:
    """A named, schema-described capability."""

    name: str                          # Unique within one server's registry
    description: str                   # The LLM reads this to decide when to call
    input_schema: dict[str, Any]       # JSON-schema-like object

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


@dataclass(frozen=True)
class ToolCallRequest:
    """A decoded call_tool request."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


# -----------------------------------------------------------------------------
# ResponseEnvelope - the uniform wrapper returned for every tool call
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class TextBlock:
    """The only content block kind the tools produce."""

    text: str
    kind: str = "text"

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.kind, "text": self.text}


@dataclass(frozen=True)
class ResponseEnvelope:
    """Ordered content blocks plus an error flag."""

    content: tuple[TextBlock, ...]
    is_error: bool = False

    def text(self) -> str:
        """All block texts joined by newlines."""
        return "\n".join(block.text for block in self.content)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "content": [block.to_payload() for block in self.content],
        }
        if self.is_error:
            payload["isError"] = True
        return payload


def text_envelope(*texts: str) -> ResponseEnvelope:
    """Build a successful envelope with one text block per argument."""
    return ResponseEnvelope(content=tuple(TextBlock(text) for text in texts))


def error_envelope(text: str) -> ResponseEnvelope:
    """Build an isError envelope carrying a single text block."""
    return ResponseEnvelope(content=(TextBlock(text),), is_error=True)


# -----------------------------------------------------------------------------
# Handler results
# -----------------------------------------------------------------------------
# Every handler returns ToolSuccess or ToolFailure.  The dispatcher is the
# only place that turns a failure into an error envelope.
# -----------------------------------------------------------------------------
class FailureKind(Enum):
    INVALID_ARGUMENTS = "invalid_arguments"
    PROVIDER = "provider"
    IDENTITY_UNAVAILABLE = "identity_unavailable"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ToolSuccess:
    envelope: ResponseEnvelope


@dataclass(frozen=True)
class ToolFailure:
    kind: FailureKind
    message: str


HandlerResult = ToolSuccess | ToolFailure


# -----------------------------------------------------------------------------
# Identity
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class IdentityMetadata:
    """Metadata sent with the identity handshake.

    The provider's acceptance rules are presence-sensitive, so absent
    optional fields are left out of the payload entirely instead of being
    sent as null or empty values.
    """

    is_global_identity: bool = False
    trust_domain: Optional[str] = None
    link_to: tuple[str, ...] = ()
    parent_identity: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"isGlobalIdentity": self.is_global_identity}
        if self.trust_domain:
            payload["trustDomain"] = self.trust_domain
        if self.link_to:
            payload["linkTo"] = list(self.link_to)
        if self.parent_identity:
            payload["parentIdentity"] = self.parent_identity
        return payload


@dataclass(frozen=True)
class SecuredIdentity:
    """The outcome of the identity handshake."""

    verified: bool
    id: str


# -----------------------------------------------------------------------------
# Retrieval
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class RAGSource:
    """A citation-ready reference derived from one retrieval result."""

    id: str
    file_name: str
    snippet: str
    score: float

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "fileName": self.file_name,
            "snippet": self.snippet,
            "score": self.score,
        }


@dataclass(frozen=True)
class RetrievalResult:
    """What the knowledge-base tool hands back to the dispatcher."""

    context: str
    is_rag_working: bool
    rag_sources: list[RAGSource] = field(default_factory=list)
