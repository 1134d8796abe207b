# =============================================================================
# core/retrieval.py  -  Knowledge-base result normalization
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Turns a provider's raw retrieval list into two things:
#     - context:  every usable text payload joined by a blank line, in
#                 provider order.  This goes to the language model.
#     - sources:  at most MAX_SOURCES citation records, in provider order
#                 (never re-sorted by score).  These are shown to humans.
#
#   The two outputs intentionally differ in size: the context keeps all
#   usable results while the source list is capped.
#
# RAW ITEM SHAPE (Bedrock Agent Runtime "retrievalResults"):
#   {
#     "content":  {"text": "..."},
#     "location": {"s3Location": {"uri": "s3://bucket/dir/file_name.txt"}},
#     "score":    0.83,
#     "metadata": {"x-amz-bedrock-kb-chunk-id": "..."},
#   }
#   Every key is optional.
# =============================================================================

import logging
from typing import Any, Mapping, Protocol, Sequence

from core.models import RAGSource, RetrievalResult

logger = logging.getLogger(__name__)

MAX_SOURCES = 3
CHUNK_ID_KEY = "x-amz-bedrock-kb-chunk-id"
CONTEXT_SEPARATOR = "\n\n"


class KnowledgeBaseClient(Protocol):
    async def retrieve(self, query: str, knowledge_base_id: str, n: int) -> list[dict[str, Any]]:
        ...


def _text_of(item: Mapping[str, Any]) -> str:
    content = item.get("content") or {}
    return content.get("text") or ""


def _display_name(item: Mapping[str, Any], index: int) -> str:
    uri = ((item.get("location") or {}).get("s3Location") or {}).get("uri") or ""
    name = uri.split("/")[-1] or f"Source-{index}"
    name = name.replace("_", " ")
    if name.endswith(".txt"):
        name = name[: -len(".txt")]
    return name


def _source_id(item: Mapping[str, Any], index: int) -> str:
    metadata = item.get("metadata") or {}
    chunk_id = metadata.get(CHUNK_ID_KEY)
    return str(chunk_id) if chunk_id else f"chunk-{index}"


def _score_of(item: Mapping[str, Any]) -> float:
    try:
        return float(item.get("score") or 0)
    except (TypeError, ValueError):
        return 0.0


def normalize_results(raw_results: Sequence[Mapping[str, Any]]) -> tuple[str, list[RAGSource]]:
    """Filter, name and cap raw retrieval results.

    Args:
        raw_results: Items as returned by the knowledge-base provider.

    Returns:
        (context, sources).  Items without text are dropped first; indexes
        used for synthetic names refer to positions in the filtered list.
    """
    usable = [item for item in raw_results if item and _text_of(item)]

    sources = [
        RAGSource(
            id=_source_id(item, index),
            file_name=_display_name(item, index),
            snippet=_text_of(item),
            score=_score_of(item),
        )
        for index, item in enumerate(usable)
    ][:MAX_SOURCES]

    context = CONTEXT_SEPARATOR.join(_text_of(item) for item in usable)
    return context, sources


async def retrieve_context(
    client: KnowledgeBaseClient,
    query: str,
    knowledge_base_id: str,
    n: int = 3,
) -> RetrievalResult:
    """Query the knowledge base and normalize what comes back.

    Retrieval never raises: a missing knowledge base id, a provider failure
    or an empty answer all come back as is_rag_working=False.
    """
    if not knowledge_base_id:
        logger.error("knowledgeBaseId is not provided")
        return RetrievalResult(context="", is_rag_working=False, rag_sources=[])

    try:
        raw_results = await client.retrieve(query, knowledge_base_id, n)
        context, sources = normalize_results(raw_results or [])
    except Exception:
        logger.exception("RAG Error")
        return RetrievalResult(context="", is_rag_working=False, rag_sources=[])

    if not sources:
        logger.info(f"Knowledge base {knowledge_base_id} returned no usable results")
        return RetrievalResult(context="", is_rag_working=False, rag_sources=[])

    return RetrievalResult(context=context, is_rag_working=True, rag_sources=sources)
