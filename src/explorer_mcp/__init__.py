"""Asynchronous Explorer query execution exposed over MCP."""

__version__ = "0.1.0"
