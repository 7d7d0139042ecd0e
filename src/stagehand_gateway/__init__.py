"""Stagehand SSE gateway: MCP sessions over server-sent events."""

__version__ = '0.1.0'
