"""Protocols for the collaborators of the core (model transport, tool providers, memory)."""
