"""Clients for the remote services the server talks to."""
