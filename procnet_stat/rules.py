from __future__ import annotations
from enum import Enum
from typing import Union

from .collectors.decoders import SO_ACCEPTCON, SS_UNCONNECTED
from .models import Protocol, SocketDescriptor, UnixSocketDescriptor
from .utils.net import is_unspecified


class ListenMode(str, Enum):
    DEFAULT = "default"      # established-style only
    ALL = "all"
    LISTENING = "listening"

    @property
    def banner(self) -> str:
        return {
            ListenMode.ALL: "(servers and established)",
            ListenMode.LISTENING: "(only servers)",
            ListenMode.DEFAULT: "(w/o servers)",
        }[self]


def is_connected(desc: Union[SocketDescriptor, UnixSocketDescriptor]) -> bool:
    """Whether a record has a remote side, by each protocol's own test."""
    p = desc.protocol
    if p is Protocol.UNIX:
        return not (desc.state == SS_UNCONNECTED and desc.flags & SO_ACCEPTCON)
    if p in (Protocol.UDP, Protocol.UDPLITE, Protocol.RAW):
        return not is_unspecified(desc.remote_address)
    return desc.remote_port != 0


def wanted(desc: Union[SocketDescriptor, UnixSocketDescriptor], mode: ListenMode) -> bool:
    if mode is ListenMode.ALL or desc.protocol is Protocol.IGMP:
        return True
    if mode is ListenMode.LISTENING:
        return not is_connected(desc)
    return is_connected(desc)
