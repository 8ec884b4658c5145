"""Shared helper functions used by the CLI and the doctor report."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List

# (env var, parser)
_NUMERIC_ENV = (
    ("HISTFETCH_PARALLELISM", int),
    ("HISTFETCH_TIMEOUT_SECONDS", float),
    ("HISTFETCH_BUNDLE_SIZE", int),
    ("HISTFETCH_PROGRESS_EVERY", int),
)


def check_writable(path: Path) -> bool:
    """True when ``path`` (or its nearest existing ancestor) is writable."""

    candidate = Path(path)
    while not candidate.exists():
        parent = candidate.parent
        if parent == candidate:
            return False
        candidate = parent
    return os.access(candidate, os.W_OK)


def collect_environment_warnings() -> List[Dict[str, str]]:
    """Report HISTFETCH_* overrides that are set but not positive numbers."""

    warnings: List[Dict[str, str]] = []
    for name, kind in _NUMERIC_ENV:
        raw = os.getenv(name)
        if raw is None or not raw.strip():
            continue
        try:
            value = kind(raw)
        except ValueError:
            value = None
        if value is None or value <= 0:
            warnings.append(
                {
                    "code": f"{name.lower()}_invalid",
                    "message": f"{name}={raw!r} is not a positive number",
                    "remedy": f"Unset {name} or set it to a positive value.",
                }
            )
    return warnings


__all__ = [
    "check_writable",
    "collect_environment_warnings",
]
