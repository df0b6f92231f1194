"""Entry point for ``python -m vidstage``."""

from vidstage.cli.commands import app

if __name__ == "__main__":
    app()
