"""HTTP API of the MCP host."""

from .app import ENGINE_KEY, REGISTRY_KEY, build_app

__all__ = ["ENGINE_KEY", "REGISTRY_KEY", "build_app"]
