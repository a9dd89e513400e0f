from __future__ import annotations
import threading
from typing import Any, Dict, List


class Snapshot:
    """Latest polling cycle, shared between the collector thread and Flask."""

    def __init__(self):
        self.lock = threading.Lock()
        self.text: str = ""
        self.records: List[Dict[str, Any]] = []
        self.missing: List[str] = []
        self.failures: List[str] = []
        self.partial: bool = False
        self.cycles: int = 0

    def status(self) -> Dict[str, Any]:
        return {
            "cycles": self.cycles,
            "sockets": len(self.records),
            "missing": list(self.missing),
            "failures": list(self.failures),
            "partial": self.partial,
        }
