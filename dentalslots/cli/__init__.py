"""
CLI layer - Typer application.
"""

from .app import app

__all__ = ["app"]
