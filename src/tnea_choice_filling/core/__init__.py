"""Core business logic: ranking, dataset loading, the portal client and data models.

This module is framework-agnostic. It has no dependency on MCP, FastMCP,
or any server framework; the server wires it to tools.
"""
