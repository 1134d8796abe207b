# =============================================================================
# core/__init__.py
# =============================================================================
# Everything the three MCP servers share that does not depend on FastMCP:
#
#   models, registry       tool descriptors, envelopes, identity records
#   dispatcher             call routing and the per-call error policy
#   identity, lifecycle    AZTP handshake and the startup state machine
#   retrieval              knowledge-base result normalization
#   config, errors         environment settings and the error taxonomy
#
#   knowledge_base, image_generation, payments, aztp
#                          provider clients (boto3, httpx, aztp-client)
#
# Only tools/ imports FastMCP.  Every module here can be exercised with
# fake providers and no network access.
# =============================================================================
