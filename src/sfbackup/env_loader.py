# src/sfbackup/env_loader.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from dotenv import load_dotenv

_logger = logging.getLogger(__name__)


def env_candidates(config_path: Optional[Path] = None) -> list[Path]:
    """Return .env locations to try: next to the config file first, then cwd."""
    dirs: list[Path] = []
    if config_path is not None:
        dirs.append(Path(config_path).resolve().parent)
    cwd = Path.cwd()
    if cwd not in dirs:
        dirs.append(cwd)
    return [d / name for d in dirs for name in (".env", ".dotenv")]


def load_env_files(
    candidates: Optional[Iterable[Path]] = None,
    *,
    quiet: bool = False,
) -> Optional[Path]:
    """Load the first existing .env file and return its path.

    Values already present in the environment win over the file.
    """
    if candidates is None:
        candidates = env_candidates()

    for path in candidates:
        if path.exists():
            load_dotenv(path, override=False)
            if not quiet:
                _logger.debug("Loaded environment variables from %s", path)
            return path

    if not quiet:
        _logger.debug("No .env/.dotenv file found")
    return None
