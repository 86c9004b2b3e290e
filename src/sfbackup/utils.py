from __future__ import annotations

import os
from datetime import date
from typing import Iterable, Optional


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def expand_date_placeholders(path: str, today: Optional[date] = None) -> str:
    """Replace {YYYY}, {MM} and {DD} in ``path`` with the given (or current) date."""
    today = today or date.today()
    return (
        path.replace("{YYYY}", f"{today:%Y}")
        .replace("{MM}", f"{today:%m}")
        .replace("{DD}", f"{today:%d}")
    )


def lower_set(names: Optional[Iterable[str]]) -> frozenset[str]:
    return frozenset(n.strip().lower() for n in (names or ()) if n and n.strip())
