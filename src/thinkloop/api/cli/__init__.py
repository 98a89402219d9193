"""Typer CLI for running agents from profiles."""
