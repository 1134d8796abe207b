# =============================================================================
# tools/kb_server.py  -  AWS knowledge-base retrieval MCP server
# =============================================================================
#
# TOOLS:
#   retrieve_from_aws_kb                       query a Bedrock knowledge base
#   get_aws_kb_retrieval_server_aztp_identity  this server's AZTP identity
#
# OUTPUT SHAPE for retrieve_from_aws_kb:
#   Two text blocks when retrieval works:
#     "Context: <all usable chunks, blank-line separated>"
#     "RAG Sources: <JSON list of at most 3 sources>"
#   One text block otherwise ("Retrieval failed or returned no results.").
#   A failed retrieval is still a successful call, not an isError envelope.
#
# RUNNING THIS SERVER:
#   python main.py kb         (or: python -m tools.kb_server)
# =============================================================================

import contextlib
import json
import sys

from pydantic import BaseModel, Field

from core.config import KnowledgeBaseSettings
from core.dispatcher import Dispatcher, ToolRoute, identity_route
from core.identity import IdentityContext
from core.knowledge_base import BedrockKnowledgeBase
from core.models import HandlerResult, ToolDescriptor, ToolSuccess, text_envelope
from core.registry import ToolRegistry
from core.retrieval import KnowledgeBaseClient, retrieve_context
from tools.common import log_status, run_server

SERVER_NAME = "aws-kb-retrieval-server"

RETRIEVE_TOOL = "retrieve_from_aws_kb"
IDENTITY_TOOL = "get_aws_kb_retrieval_server_aztp_identity"

NO_RESULTS_MESSAGE = "Retrieval failed or returned no results."

TOOLS = ToolRegistry([
    ToolDescriptor(
        name=RETRIEVE_TOOL,
        description=(
            "Performs retrieval from the AWS Knowledge Base using the provided "
            "query and Knowledge Base ID."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The query to perform retrieval on"},
                "knowledgeBaseId": {"type": "string", "description": "The ID of the AWS Knowledge Base"},
                "n": {"type": "number", "default": 3, "description": "Number of results to retrieve"},
            },
            "required": ["query", "knowledgeBaseId"],
        },
    ),
    ToolDescriptor(
        name=IDENTITY_TOOL,
        description=(
            "Get AZTP identity of the AWS KB retrieval server. This is used to secure "
            "the connection between this server and other AZTP servers."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "random_string": {"type": "string", "description": "Dummy parameter for no-parameter tools"},
            },
            "required": ["random_string"],
        },
    ),
])


class RetrieveArguments(BaseModel):
    query: str
    knowledge_base_id: str = Field(alias="knowledgeBaseId")
    n: int = Field(default=3, ge=1)


class IdentityArguments(BaseModel):
    random_string: str


def retrieval_route(client: KnowledgeBaseClient) -> ToolRoute:
    async def handle(arguments: RetrieveArguments) -> HandlerResult:
        result = await retrieve_context(client, arguments.query, arguments.knowledge_base_id, arguments.n)
        if not result.is_rag_working:
            log_status("Retrieval returned nothing usable")
            return ToolSuccess(text_envelope(NO_RESULTS_MESSAGE))

        log_status(f"Retrieved {len(result.rag_sources)} sources")
        sources = json.dumps([source.to_payload() for source in result.rag_sources])
        return ToolSuccess(text_envelope(f"Context: {result.context}", f"RAG Sources: {sources}"))

    return ToolRoute(arguments_model=RetrieveArguments, handler=handle)


def build_dispatcher(client: KnowledgeBaseClient, context: IdentityContext) -> Dispatcher:
    return Dispatcher(TOOLS, {
        RETRIEVE_TOOL: retrieval_route(client),
        IDENTITY_TOOL: identity_route(context, IdentityArguments),
    })


async def open_dispatcher(context: IdentityContext, resources: contextlib.AsyncExitStack) -> Dispatcher:
    return build_dispatcher(BedrockKnowledgeBase(KnowledgeBaseSettings.from_env()), context)


def main() -> int:
    return run_server(SERVER_NAME, open_dispatcher)


if __name__ == "__main__":
    sys.exit(main())
