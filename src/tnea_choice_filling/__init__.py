"""TNEA Choice Filling MCP Server.

Let your AI fill TNEA counselling choices: fetch the live seat matrix, rank
colleges by district and last year's cutoff, and submit the list to the portal.
"""

__version__ = "0.1.0"
