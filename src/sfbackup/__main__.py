# src/sfbackup/__main__.py
from __future__ import annotations

import sys

from .cli import cli


def _configure_stdio() -> None:
    # Force UTF-8 output and never crash on unencodable chars.
    for stream in (sys.stdout, sys.stderr):
        reconfigure = getattr(stream, "reconfigure", None)
        if reconfigure is not None:
            reconfigure(encoding="utf-8", errors="backslashreplace")


def main() -> None:
    _configure_stdio()
    cli()


if __name__ == "__main__":
    main()
