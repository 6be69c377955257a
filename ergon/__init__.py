"""Ergon: a terminal chat client for multiple LLM providers with MCP tools."""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
