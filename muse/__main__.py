"""Entry point for running muse as a module: python -m muse"""

from muse.cli.commands import app

if __name__ == "__main__":
    app()
