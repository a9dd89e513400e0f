"""
Line decoders for the /proc/net socket tables.

Every decoder takes the zero-based line number and the raw line and returns a
descriptor, ``None`` for header lines and carry-over lines, or raises
``DecodeError`` when the record does not have the expected shape.

  tcp/udp/raw:  sl local_address rem_address st tx_queue:rx_queue tr:tm->when retrnsmt uid timeout inode ...
  sctp eps:     ENDPT SOCK STY SST HBKT LPORT UID INODE LADDRS
  sctp assocs:  ASSOC SOCK STY SST ST HBKT ASSOC-ID TX_QUEUE RX_QUEUE UID INODE LPORT RPORT LADDRS <-> RADDRS ...
  igmp:         Idx Device : Count Querier / <tab>Group Users Timer Reporter
  igmp6:        idx device group users flags timer  (no header)
  unix:         Num RefCount Protocol Flags Type St Inode Path
"""
from __future__ import annotations
import ipaddress
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Pattern, Sequence, Tuple, Union

from ..models import (AddressFamily, Protocol, QueueLengths, SocketDescriptor,
                      TimerInfo, UnixSocketDescriptor)
from ..utils.net import (AddressError, DecodeError, IPAddress, decode_packed,
                         ipv4_from_hex, ipv6_from_network_hex, parse_text_address)

Descriptor = Union[SocketDescriptor, UnixSocketDescriptor]

# minimum number of scanned values for a record to be usable
TCP_MIN_FIELDS = 11
UDP_MIN_FIELDS = 10
RAW_MIN_FIELDS = 10
SCTP_EPS_MIN_FIELDS = 8
SCTP_ASSOC_MIN_FIELDS = 13
IGMP6_MIN_FIELDS = 4
UNIX_MIN_FIELDS = 6

TCP_STATES = {
    1: "ESTABLISHED", 2: "SYN_SENT", 3: "SYN_RECV", 4: "FIN_WAIT1",
    5: "FIN_WAIT2", 6: "TIME_WAIT", 7: "CLOSE", 8: "CLOSE_WAIT",
    9: "LAST_ACK", 10: "LISTEN", 11: "CLOSING",
}
TCP_ESTABLISHED = 1
TCP_CLOSE = 7

# unix socket flags/types/states
SO_ACCEPTCON = 1 << 16
SO_WAITDATA = 1 << 17
SO_NOSPACE = 1 << 18
UNIX_TYPES = {1: "STREAM", 2: "DGRAM", 3: "RAW", 4: "RDM", 5: "SEQPACKET"}
SS_FREE, SS_UNCONNECTED, SS_CONNECTING, SS_CONNECTED, SS_DISCONNECTING = range(5)
UNIX_STATES = {SS_FREE: "FREE", SS_CONNECTING: "CONNECTING",
               SS_CONNECTED: "CONNECTED", SS_DISCONNECTING: "DISCONNECTING"}

_HEX = r"([0-9A-Fa-f]+)"
_DEC = r"(\d+)"

_INET_FIELDS = [
    re.compile(r"(\d+):"),
    re.compile(r"([0-9A-Fa-f]{1,64})(?::([0-9A-Fa-f]+))?"),
    re.compile(r"([0-9A-Fa-f]{1,64})(?::([0-9A-Fa-f]+))?"),
    re.compile(_HEX),
    re.compile(_HEX + r"(?::" + _HEX + r")?"),
    re.compile(_HEX + r"(?::" + _HEX + r")?"),
    re.compile(_HEX),
    re.compile(_DEC),
    re.compile(r"(-?\d+)"),
    re.compile(_DEC),
]

_UNIX_FIELDS = [
    re.compile(r"([0-9A-Fa-f]+):"),
    re.compile(_HEX), re.compile(_HEX), re.compile(_HEX),
    re.compile(_HEX), re.compile(_HEX), re.compile(_DEC),
]

_IGMP6_FIELDS = [
    re.compile(_DEC), re.compile(r"(\S{1,15})"),
    re.compile(r"([0-9A-Fa-f]{1,64})"), re.compile(_DEC),
]

_IGMP_DEVICE_IDX = re.compile(r"(\d+)\s+([^\s:]+)")
_IGMP_DEVICE = re.compile(r"([^\s:]+)")
_IGMP_GROUP = re.compile(r"\s+([0-9A-Fa-f]{1,8})\s+(\d+)")


def scan(line: str, fields: Sequence[Pattern[str]]) -> List[str]:
    """Match whitespace separated tokens against *fields* in order.

    Returns every captured value up to the first token that does not match,
    the way a ``sscanf`` conversion count behaves.
    """
    values: List[str] = []
    for tok, pat in zip(line.split(), fields):
        m = pat.fullmatch(tok)
        if not m:
            break
        got = [g for g in m.groups() if g is not None]
        values.extend(got)
        if len(got) < len(m.groups()):
            break
    return values


def _int(text: str, base: int = 10) -> int:
    try:
        return int(text, base)
    except ValueError:
        raise DecodeError(f"not a number: {text!r}") from None


def _family_of(addr: IPAddress) -> AddressFamily:
    return AddressFamily.IPV4 if addr.version == 4 else AddressFamily.IPV6


def state_label(desc: Descriptor) -> str:
    p = desc.protocol
    if p is Protocol.TCP:
        return TCP_STATES.get(desc.state, f"UNKNOWN({desc.state})")
    if p in (Protocol.UDP, Protocol.UDPLITE):
        if desc.state == TCP_ESTABLISHED:
            return "ESTABLISHED"
        if desc.state == TCP_CLOSE:
            return ""
        return f"UNKNOWN({desc.state})"
    if p is Protocol.RAW:
        return str(desc.state)
    if p in (Protocol.SCTP_ENDPOINT, Protocol.SCTP_ASSOCIATION):
        if desc.state == 0:
            return ""
        if 0 < desc.state <= 10:
            return TCP_STATES[desc.state]
        return f"UNKNOWN({desc.state})"
    if p is Protocol.UNIX:
        if desc.state == SS_UNCONNECTED:
            return "LISTENING" if desc.flags & SO_ACCEPTCON else ""
        return UNIX_STATES.get(desc.state, "UNKNOWN")
    return ""


def unix_type_label(desc: UnixSocketDescriptor) -> str:
    return UNIX_TYPES.get(desc.type, "UNKNOWN")


def unix_flags_label(desc: UnixSocketDescriptor) -> str:
    out = "[ "
    if desc.flags & SO_ACCEPTCON:
        out += "ACC "
    if desc.flags & SO_WAITDATA:
        out += "W "
    if desc.flags & SO_NOSPACE:
        out += "N "
    return out + "]"


@dataclass
class IgmpDecoderState:
    """Carry-over between igmp lines: group rows belong to the last device row."""
    device: str = ""
    has_index: bool = False
    ipv6: bool = False


@dataclass
class UnixDecoderState:
    has_inode: bool = False


def _decode_inet(protocol: Protocol, lnr: int, line: str, min_fields: int) -> Optional[SocketDescriptor]:
    if lnr == 0:
        return None
    v = scan(line, _INET_FIELDS)
    if len(v) < min_fields:
        raise DecodeError(f"got bogus {protocol.value} line {lnr}")
    v += ["0"] * (14 - len(v))
    local = decode_packed(v[1])
    remote = decode_packed(v[3])
    if local.version != remote.version:
        raise AddressError(f"mixed address families on line {lnr}")
    retr = int(v[10], 16)
    if protocol in (Protocol.UDP, Protocol.UDPLITE):
        retr = 0
    return SocketDescriptor(
        protocol=protocol,
        family=_family_of(local),
        local_address=local,
        local_port=int(v[2], 16) & 0xFFFF,
        remote_address=remote,
        remote_port=int(v[4], 16) & 0xFFFF,
        state=int(v[5], 16),
        queues=QueueLengths(receive=int(v[7], 16), transmit=int(v[6], 16)),
        timer=TimerInfo(kind=int(v[8], 16), remaining=int(v[9], 16),
                        retransmits=retr, timeout=int(v[12])),
        uid=int(v[11]),
        inode=int(v[13]),
    )


def decode_tcp(lnr: int, line: str, state=None) -> Optional[SocketDescriptor]:
    return _decode_inet(Protocol.TCP, lnr, line, TCP_MIN_FIELDS)


def decode_udp(lnr: int, line: str, state=None) -> Optional[SocketDescriptor]:
    return _decode_inet(Protocol.UDP, lnr, line, UDP_MIN_FIELDS)


def decode_udplite(lnr: int, line: str, state=None) -> Optional[SocketDescriptor]:
    return _decode_inet(Protocol.UDPLITE, lnr, line, UDP_MIN_FIELDS)


def decode_raw(lnr: int, line: str, state=None) -> Optional[SocketDescriptor]:
    return _decode_inet(Protocol.RAW, lnr, line, RAW_MIN_FIELDS)


def _addresses(texts: Sequence[str]) -> Tuple[IPAddress, ...]:
    return tuple(parse_text_address(t) for t in texts)


def _unspecified(like: Optional[IPAddress]) -> IPAddress:
    if like is not None and like.version == 6:
        return ipaddress.IPv6Address(0)
    return ipaddress.IPv4Address(0)


def decode_sctp_endpoint(lnr: int, line: str, state=None) -> Optional[SocketDescriptor]:
    if lnr == 0:
        return None
    parts = line.split(None, SCTP_EPS_MIN_FIELDS)
    if len(parts) < SCTP_EPS_MIN_FIELDS:
        raise DecodeError(f"got bogus sctp eps line {lnr}")
    rest = parts[SCTP_EPS_MIN_FIELDS] if len(parts) > SCTP_EPS_MIN_FIELDS else ""
    laddrs = _addresses(rest.split("\t")[0].split())
    first = laddrs[0] if laddrs else None
    return SocketDescriptor(
        protocol=Protocol.SCTP_ENDPOINT,
        family=_family_of(first) if first else AddressFamily.IPV4,
        local_address=first or _unspecified(None),
        local_port=_int(parts[5]) & 0xFFFF,
        remote_address=_unspecified(first),
        remote_port=0,
        state=_int(parts[3]),
        uid=_int(parts[6]),
        inode=_int(parts[7]),
        local_addresses=laddrs,
    )


def decode_sctp_association(lnr: int, line: str, state=None) -> Optional[SocketDescriptor]:
    if lnr == 0:
        return None
    parts = line.split(None, SCTP_ASSOC_MIN_FIELDS)
    if len(parts) < SCTP_ASSOC_MIN_FIELDS:
        raise DecodeError(f"got bogus sctp assoc line {lnr}")
    rest = parts[SCTP_ASSOC_MIN_FIELDS] if len(parts) > SCTP_ASSOC_MIN_FIELDS else ""
    left, _, right = rest.partition("<->")
    laddrs = _addresses(left.split("\t")[0].split())
    raddrs = _addresses(right.split("\t")[0].split())
    lfirst = laddrs[0] if laddrs else None
    rfirst = raddrs[0] if raddrs else None
    return SocketDescriptor(
        protocol=Protocol.SCTP_ASSOCIATION,
        family=_family_of(lfirst) if lfirst else AddressFamily.IPV4,
        local_address=lfirst or _unspecified(rfirst),
        local_port=_int(parts[11]) & 0xFFFF,
        remote_address=rfirst or _unspecified(lfirst),
        remote_port=_int(parts[12]) & 0xFFFF,
        state=_int(parts[3]),
        queues=QueueLengths(receive=_int(parts[8]), transmit=_int(parts[7])),
        uid=_int(parts[9]),
        inode=_int(parts[10]),
        local_addresses=laddrs,
        remote_addresses=raddrs,
    )


def _igmp_row(addr: IPAddress, device: str, refcount: int) -> SocketDescriptor:
    return SocketDescriptor(
        protocol=Protocol.IGMP,
        family=_family_of(addr),
        local_address=addr,
        local_port=0,
        remote_address=_unspecified(addr),
        remote_port=0,
        state=0,
        device=device,
        refcount=refcount,
    )


def decode_igmp(lnr: int, line: str, state: IgmpDecoderState) -> Optional[SocketDescriptor]:
    if lnr == 0:
        if "Device" in line:
            state.has_index = line.startswith("Idx")
            return None
        # igmp6 has no banner, its first line is already a record
        state.ipv6 = True

    if state.ipv6:
        v = scan(line, _IGMP6_FIELDS)
        if len(v) < IGMP6_MIN_FIELDS:
            raise DecodeError(f"got bogus igmp6 line {lnr}")
        return _igmp_row(ipv6_from_network_hex(v[2]), v[1], int(v[3]))

    if not line.startswith("\t"):
        m = (_IGMP_DEVICE_IDX if state.has_index else _IGMP_DEVICE).match(line)
        if not m:
            raise DecodeError(f"got bogus igmp line {lnr}")
        state.device = m.group(m.lastindex)
        return None

    m = _IGMP_GROUP.match(line)
    if not m:
        raise DecodeError(f"got bogus igmp line {lnr}")
    return _igmp_row(ipv4_from_hex(m.group(1)), state.device, int(m.group(2)))


def decode_unix(lnr: int, line: str, state: UnixDecoderState) -> Optional[UnixSocketDescriptor]:
    if lnr == 0:
        state.has_inode = "Inode" in line
        return None
    v = scan(line, _UNIX_FIELDS)
    if len(v) < UNIX_MIN_FIELDS:
        raise DecodeError(f"got bogus unix line {lnr}")
    inode = int(v[6]) if len(v) > 6 else 0
    parts = line.split(None, 7)
    path = parts[7] if len(v) > 6 and len(parts) > 7 else ""
    if not state.has_inode:
        path = str(inode)
    return UnixSocketDescriptor(
        refcount=int(v[1], 16),
        proto=int(v[2], 16),
        flags=int(v[3], 16),
        type=int(v[4], 16),
        state=int(v[5], 16),
        inode=inode,
        path=path,
        has_inode=state.has_inode,
    )


DECODERS: Dict[Protocol, Callable[..., Optional[Descriptor]]] = {
    Protocol.TCP: decode_tcp,
    Protocol.UDP: decode_udp,
    Protocol.UDPLITE: decode_udplite,
    Protocol.RAW: decode_raw,
    Protocol.SCTP_ENDPOINT: decode_sctp_endpoint,
    Protocol.SCTP_ASSOCIATION: decode_sctp_association,
    Protocol.IGMP: decode_igmp,
    Protocol.UNIX: decode_unix,
}


def new_state(protocol: Protocol):
    """Fresh per-source decoder state, or None for line-local decoders."""
    if protocol is Protocol.IGMP:
        return IgmpDecoderState()
    if protocol is Protocol.UNIX:
        return UnixDecoderState()
    return None


def decode(protocol: Protocol, lnr: int, line: str, state=None) -> Optional[Descriptor]:
    return DECODERS[protocol](lnr, line, state)
