"""Main entry point for running the Prisma AIRS MCP server."""

from .server import run

if __name__ == "__main__":
    run()
