# =============================================================================
# main.py  -  Entry point for the AZTP-secured MCP servers
# =============================================================================
#
# HOW TO RUN:
#   uv run python main.py kb         AWS knowledge-base retrieval server
#   uv run python main.py image      EverArt image generation server
#   uv run python main.py payments   PayPal server
#
# Each server speaks MCP over stdin/stdout, so it is normally started by an
# MCP client as a subprocess rather than from an interactive terminal.
#
# EXIT CODES:
#   0  graceful shutdown (the client closed the transport)
#   1  fatal startup error: missing configuration, or an identity handshake
#      that failed or came back unverified
#   2  unknown server name
# =============================================================================

import sys

from tools import image_server, kb_server, payment_server

SERVERS = {
    "kb": kb_server.main,
    "image": image_server.main,
    "payments": payment_server.main,
}


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 1 or args[0] not in SERVERS:
        print(f"usage: main.py {{{'|'.join(SERVERS)}}}", file=sys.stderr)
        return 2
    return SERVERS[args[0]]()


if __name__ == "__main__":
    sys.exit(main())
