from __future__ import annotations
from pathlib import Path
from typing import IO, Iterator, Tuple


class SourceMissing(Exception):
    """The pseudo-file does not exist: protocol not built into this kernel."""

    def __init__(self, path: Path):
        super().__init__(str(path))
        self.path = path


class SourceUnreadable(Exception):
    def __init__(self, path: Path, err: OSError):
        super().__init__(f"{path}: {err.strerror or err}")
        self.path = path
        self.err = err


def _lines(fh: IO[str]) -> Iterator[Tuple[int, str]]:
    with fh:
        for lnr, line in enumerate(fh):
            yield lnr, line.rstrip("\n")


def read_records(path: Path) -> Iterator[Tuple[int, str]]:
    """Open *path* now and return a lazy iterator of (line number, text).

    Opening happens eagerly so that a missing or unreadable source is
    reported to the caller before the first record is requested.
    """
    try:
        fh = open(path, "r", encoding="utf-8", errors="replace")
    except FileNotFoundError:
        raise SourceMissing(path) from None
    except OSError as e:
        raise SourceUnreadable(path, e) from e
    return _lines(fh)
