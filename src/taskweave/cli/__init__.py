"""Command line interface for taskweave."""

from .app import main

__all__ = ["main"]
