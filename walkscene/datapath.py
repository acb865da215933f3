"""Paths relative to the directory of the running program."""

from __future__ import annotations

import functools
import os
import sys


@functools.lru_cache(maxsize=None)
def _program_dir() -> str:
    script = sys.argv[0] if sys.argv and sys.argv[0] else ""
    if script and script != "-c":
        return os.path.dirname(os.path.abspath(script))
    return os.path.dirname(os.path.abspath(sys.executable))


def data_path(suffix: str) -> str:
    """Return ``suffix`` joined onto the running program's directory."""
    return _program_dir() + "/" + suffix