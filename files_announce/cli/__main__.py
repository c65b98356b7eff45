"""CLI entry point.

Allows running the CLI as a module: python -m files_announce.cli
"""

from files_announce.cli import app

if __name__ == "__main__":
    app()
