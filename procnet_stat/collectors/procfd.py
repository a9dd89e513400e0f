from __future__ import annotations
import logging
import os
import re
from pathlib import Path
from typing import Dict, Optional

from ..models import ProcessRecord

log = logging.getLogger(__name__)

PROGNAME_WIDTH = 20
SELINUX_WIDTH = 50
CMDLINE_MAX = 511
UNKNOWN = "-"

_SOCKET_LINK = re.compile(r"socket:\[(\d+)\]")
_ANON_LINK = re.compile(r"\[0000\]:(\d+)")


def socket_inode(target: str) -> Optional[int]:
    """Inode of an fd link target such as 'socket:[123]' or '[0000]:123'."""
    m = _SOCKET_LINK.fullmatch(target) or _ANON_LINK.fullmatch(target)
    return int(m.group(1)) if m else None


def program_name(cmdline: bytes) -> str:
    first = cmdline[:CMDLINE_MAX].split(b"\0", 1)[0].decode("utf-8", "replace")
    if first.startswith("/"):
        return first.rsplit("/", 1)[1]
    return first


def _bounded_label(label: str) -> str:
    if len(label) > SELINUX_WIDTH - 1:
        return label[-(SELINUX_WIDTH - 2):]
    return label


class ProcessCache:
    """inode -> owning process, built by walking <proc_root>/<pid>/fd.

    ``build`` is a no-op once the cache is loaded; call ``clear`` to force a
    fresh scan on the next ``build`` (process ownership changes between
    polling cycles).
    """

    def __init__(self, proc_root: Path = Path("/proc"), with_labels: bool = False):
        self.proc_root = Path(proc_root)
        self.with_labels = with_labels
        self.records: Dict[int, ProcessRecord] = {}
        self.loaded = False
        self.partial = False
        self.failed = False
        self._warned = set()

    def clear(self) -> None:
        self.records.clear()
        self.loaded = False
        self.partial = False
        self.failed = False

    def _warn_once(self, key: str, msg: str, *args) -> None:
        if key in self._warned:
            return
        self._warned.add(key)
        log.warning(msg, *args)

    def add(self, inode: int, program: str, label: str = UNKNOWN) -> None:
        # several processes may share an inode (fork without exec): first wins
        if inode in self.records:
            return
        self.records[inode] = ProcessRecord(
            inode=inode,
            program=program[:PROGNAME_WIDTH - 1],
            label=_bounded_label(label),
        )

    def _listdir(self, path: Path):
        return os.listdir(path)

    def _read_cmdline(self, pid: str) -> Optional[str]:
        try:
            with open(self.proc_root / pid / "cmdline", "rb") as f:
                return program_name(f.read(CMDLINE_MAX))
        except OSError:
            return None

    def _read_label(self, pid: str) -> str:
        try:
            raw = (self.proc_root / pid / "attr" / "current").read_bytes()
        except OSError:
            return UNKNOWN
        label = raw.split(b"\0", 1)[0].decode("utf-8", "replace").strip()
        return label or UNKNOWN

    def _scan_process(self, pid: str) -> None:
        try:
            fds = self._listdir(self.proc_root / pid / "fd")
        except PermissionError:
            self.partial = True
            return
        except OSError:
            return
        name: Optional[str] = None
        label: Optional[str] = None
        for fd in sorted((f for f in fds if f.isdigit()), key=int):
            try:
                target = os.readlink(self.proc_root / pid / "fd" / fd)
            except OSError:
                continue
            inode = socket_inode(target)
            if inode is None:
                continue
            if name is None:
                name = self._read_cmdline(pid)
                if name is None:
                    continue
            if label is None:
                label = self._read_label(pid) if self.with_labels else UNKNOWN
            self.add(inode, f"{pid}/{name}", label)

    def build(self) -> None:
        if self.loaded:
            return
        self.loaded = True
        try:
            entries = self._listdir(self.proc_root)
        except OSError as e:
            self.failed = True
            self._warn_once("failed", "No info could be read for program names (%s: %s); you should be root.",
                            self.proc_root, e.strerror or e)
            return
        # ascending pid order, as procfs itself lists them
        for pid in sorted((e for e in entries if e.isdigit()), key=int):
            self._scan_process(pid)
        if not self.partial:
            return
        if not self.records:
            self.failed = True
            self._warn_once("failed", "No info could be read for program names: euid=%d but you should be root.",
                            os.geteuid())
        else:
            self._warn_once("partial", "Not all processes could be identified, non-owned process info "
                            "will not be shown, you would have to be root to see it all.")

    def lookup(self, inode: int) -> str:
        rec = self.records.get(inode)
        return rec.program if rec else UNKNOWN

    def lookup_label(self, inode: int) -> str:
        rec = self.records.get(inode)
        return rec.label if rec else UNKNOWN
