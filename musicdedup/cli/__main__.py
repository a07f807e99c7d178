"""CLI entry point.

Allows running the CLI as a module: python -m musicdedup.cli
"""

from musicdedup.cli import app

if __name__ == "__main__":
    app()
