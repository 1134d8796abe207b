from __future__ import annotations

from typing import Any, Optional

import pytest

from core.identity import IdentityContext
from core.models import SecuredIdentity


class FakeIdentityProvider:
    """Identity provider double that records every secure_connect call."""

    def __init__(self, identity: Optional[SecuredIdentity] = None, error: Optional[Exception] = None):
        self.identity = identity or SecuredIdentity(verified=True, id="aztp://acme/workload/kb-server")
        self.error = error
        self.calls: list[tuple[Any, str, dict[str, Any]]] = []

    async def secure_connect(self, server_handle: Any, name: str, metadata: dict[str, Any]) -> SecuredIdentity:
        self.calls.append((server_handle, name, metadata))
        if self.error is not None:
            raise self.error
        return self.identity


class FakeKnowledgeBase:
    """Knowledge-base double with a call counter."""

    def __init__(self, results: Optional[list[dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.results = results or []
        self.error = error
        self.calls: list[tuple[str, str, int]] = []

    async def retrieve(self, query: str, knowledge_base_id: str, n: int = 3) -> list[dict[str, Any]]:
        self.calls.append((query, knowledge_base_id, n))
        if self.error is not None:
            raise self.error
        return self.results


def bedrock_item(
    text: Optional[str],
    uri: Optional[str] = None,
    score: Optional[float] = None,
    chunk_id: Optional[str] = None,
) -> dict[str, Any]:
    """Build one retrievalResults entry in the Bedrock shape."""
    item: dict[str, Any] = {}
    if text is not None:
        item["content"] = {"text": text}
    if uri is not None:
        item["location"] = {"type": "S3", "s3Location": {"uri": uri}}
    if score is not None:
        item["score"] = score
    if chunk_id is not None:
        item["metadata"] = {"x-amz-bedrock-kb-chunk-id": chunk_id}
    return item


@pytest.fixture
def identity_context() -> IdentityContext:
    return IdentityContext()


@pytest.fixture
def established_context() -> IdentityContext:
    context = IdentityContext()
    context.establish(SecuredIdentity(verified=True, id="aztp://acme/workload/test-server"))
    return context
