"""Core layer: domain model, loop engine, hooks, streaming and tools."""
