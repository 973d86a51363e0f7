"""
Allow running the CLI with ``python -m clinicbook``.
"""

from .cli.app import app

if __name__ == "__main__":
    app()
