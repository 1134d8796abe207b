# =============================================================================
# core/knowledge_base.py  -  AWS Bedrock knowledge-base provider
# =============================================================================
#
# A thin async wrapper over boto3's "bedrock-agent-runtime" client.  boto3
# is blocking, so each retrieve call runs on a worker thread.  The raw
# "retrievalResults" list is returned untouched; shaping it is the job of
# core/retrieval.py.
# =============================================================================

import asyncio
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError

from core.config import KnowledgeBaseSettings
from core.errors import ConfigurationError


class BedrockKnowledgeBase:
    """Retrieves raw chunks from an AWS Bedrock knowledge base."""

    def __init__(self, settings: KnowledgeBaseSettings, client: Any = None):
        if client is None:
            try:
                client = boto3.client(
                    "bedrock-agent-runtime",
                    region_name=settings.region,
                    aws_access_key_id=settings.access_key_id,
                    aws_secret_access_key=settings.secret_access_key,
                )
            except BotoCoreError as exc:
                # e.g. NoRegionError when neither AWS_REGION nor a profile sets one
                raise ConfigurationError(f"Cannot create Bedrock client: {exc}") from exc
        self._client = client

    async def retrieve(self, query: str, knowledge_base_id: str, n: int = 3) -> list[dict[str, Any]]:
        response = await asyncio.to_thread(
            self._client.retrieve,
            knowledgeBaseId=knowledge_base_id,
            retrievalQuery={"text": query},
            retrievalConfiguration={
                "vectorSearchConfiguration": {"numberOfResults": n},
            },
        )
        return (response or {}).get("retrievalResults") or []
