from __future__ import annotations
from typing import Set

from ..utils.net import IPAddress, canonical_text


def seen_key(local: str, local_port: int, remote: str, remote_port: int) -> str:
    return f"{local}:{local_port}:{remote}:{remote_port}"


class SeenIndex:
    """Socket pairs already emitted during the current polling cycle."""

    def __init__(self):
        self._keys: Set[str] = set()

    def __len__(self) -> int:
        return len(self._keys)

    def clear(self) -> None:
        self._keys.clear()

    def check_and_add(self, local: str, local_port: int, remote: str, remote_port: int) -> bool:
        """True the first time a pair is offered, False for repeats."""
        key = seen_key(local, local_port, remote, remote_port)
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def first_sighting(self, local: IPAddress, local_port: int, remote: IPAddress, remote_port: int) -> bool:
        return self.check_and_add(canonical_text(local), local_port, canonical_text(remote), remote_port)
