"""API layer - command line interface."""
