"""Typer sub-applications for the composekit CLI."""
