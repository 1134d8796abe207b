# =============================================================================
# tools/__init__.py
# =============================================================================
# The MCP layer.  common.py binds a core Dispatcher to FastMCP and runs the
# server lifecycle; each *_server.py module declares one server's tool
# table, argument records and handlers.
#
# Tool handlers stay thin: they validate nothing themselves (the dispatcher
# does that with the route's pydantic model), call one provider, and shape
# the provider's answer into text blocks.
# =============================================================================
