"""
Entry point for ``python -m dentalslots``.
"""

from .cli.app import app

if __name__ == "__main__":
    app()
