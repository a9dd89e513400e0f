from __future__ import annotations
import os
from pathlib import Path
from typing import List, Optional

SYSTEM_CONFIG_DIR = Path("/etc/procnet-stat")


def config_dirs() -> List[Path]:
    """Folders searched for a relative settings file name, in order."""
    xdg = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return [Path.cwd(), Path(xdg) / "procnet-stat", SYSTEM_CONFIG_DIR]


def to_abs_path(p: Optional[str | os.PathLike]) -> Optional[Path]:
    """Resolve a settings file name.

    Absolute names are only expanded. Relative names are looked up in
    ``config_dirs()``; the first folder that has the file wins, otherwise the
    name is taken relative to the current directory so the caller can report
    a sensible path.
    """
    if not p:
        return None
    pp = Path(p).expanduser()
    if pp.is_absolute():
        return pp.resolve()
    for base in config_dirs():
        candidate = base / pp
        if candidate.exists():
            return candidate.resolve()
    return (Path.cwd() / pp).resolve()
