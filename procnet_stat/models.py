from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .utils.net import IPAddress


class Protocol(str, Enum):
    TCP = "tcp"
    UDP = "udp"
    UDPLITE = "udplite"
    RAW = "raw"
    SCTP_ENDPOINT = "sctp-endpoint"
    SCTP_ASSOCIATION = "sctp-association"
    IGMP = "igmp-membership"
    UNIX = "unix"


class AddressFamily(str, Enum):
    IPV4 = "ipv4"
    IPV6 = "ipv6"


@dataclass(frozen=True)
class QueueLengths:
    receive: int = 0
    transmit: int = 0


@dataclass(frozen=True)
class TimerInfo:
    kind: int = 0
    remaining: int = 0   # jiffies
    retransmits: int = 0
    timeout: int = 0


@dataclass(frozen=True)
class SocketDescriptor:
    protocol: Protocol
    family: AddressFamily
    local_address: IPAddress
    local_port: int
    remote_address: IPAddress
    remote_port: int
    state: int
    queues: QueueLengths = QueueLengths()
    timer: Optional[TimerInfo] = None
    uid: int = 0
    inode: int = 0
    # SCTP groups, first entry mirrors local_address/remote_address
    local_addresses: Tuple[IPAddress, ...] = ()
    remote_addresses: Tuple[IPAddress, ...] = ()
    # IGMP only
    device: str = ""
    refcount: int = 0

    @property
    def tag(self) -> str:
        """Protocol tag as shown in the Proto column."""
        base = {
            Protocol.TCP: "tcp", Protocol.UDP: "udp", Protocol.UDPLITE: "udpl",
            Protocol.RAW: "raw", Protocol.SCTP_ENDPOINT: "sctp",
            Protocol.SCTP_ASSOCIATION: "sctp", Protocol.IGMP: "igmp",
        }[self.protocol]
        if self.family is AddressFamily.IPV6 and self.protocol not in (
                Protocol.SCTP_ENDPOINT, Protocol.SCTP_ASSOCIATION):
            return base + "6"
        return base


@dataclass(frozen=True)
class UnixSocketDescriptor:
    refcount: int
    proto: int
    flags: int
    type: int
    state: int
    inode: int
    path: str
    has_inode: bool = True
    protocol: Protocol = Protocol.UNIX


@dataclass(frozen=True)
class ProcessRecord:
    inode: int
    program: str
    label: str = "-"
