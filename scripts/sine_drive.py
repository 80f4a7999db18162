#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path


def _fix_sys_path() -> None:
    """Put the repo root ahead of scripts/ so `sine_drive` imports the package."""

    scripts_dir = Path(__file__).resolve().parent
    repo_root = scripts_dir.parent

    new_path: list[str] = []
    for p in sys.path:
        try:
            resolved = Path(p).resolve() if p else Path.cwd().resolve()
        except OSError:
            resolved = None
        if resolved is not None and resolved == scripts_dir:
            continue
        new_path.append(p)

    sys.path[:] = new_path
    sys.path.insert(0, str(repo_root))


_fix_sys_path()

from sine_drive.app import main  # noqa: E402


if __name__ == "__main__":
    main()
