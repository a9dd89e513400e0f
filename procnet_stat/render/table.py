from __future__ import annotations
import pwd
import socket
from itertools import zip_longest
from typing import Dict, List, TextIO, Tuple

from ..collectors.decoders import state_label, unix_flags_label, unix_type_label
from ..collectors.procfd import PROGNAME_WIDTH, SELINUX_WIDTH, ProcessCache
from ..config import CFG
from ..models import AddressFamily, Protocol, SocketDescriptor, UnixSocketDescriptor
from ..utils.net import IPAddress, is_unspecified

HZ = 100          # /proc reports timers in USER_HZ ticks
SHORT_LEN = 22    # endpoint width before truncation kicks in
ADDR_WIDTH = 23

INET_PROTOCOLS = (Protocol.TCP, Protocol.SCTP_ENDPOINT, Protocol.SCTP_ASSOCIATION,
                  Protocol.UDP, Protocol.UDPLITE, Protocol.RAW)
SERVICE_PROTO = {Protocol.TCP: "tcp", Protocol.UDP: "udp", Protocol.UDPLITE: "udp",
                 Protocol.RAW: "raw", Protocol.SCTP_ENDPOINT: "sctp",
                 Protocol.SCTP_ASSOCIATION: "sctp"}
TCP_TIMERS = {0: "off", 1: "on", 2: "keepalive", 3: "timewait", 4: "probe"}


class Formatter:
    """Address and service display strings, with resolver results cached."""

    def __init__(self, numeric_hosts: bool = False, numeric_ports: bool = False):
        self.numeric_hosts = numeric_hosts
        self.numeric_ports = numeric_ports
        self._hosts: Dict[IPAddress, str] = {}
        self._services: Dict[Tuple[int, str], str] = {}

    def format_address(self, addr: IPAddress) -> str:
        if self.numeric_hosts or is_unspecified(addr):
            return str(addr)
        if addr not in self._hosts:
            try:
                self._hosts[addr] = socket.gethostbyaddr(str(addr))[0]
            except (OSError, UnicodeError):
                self._hosts[addr] = str(addr)
        return self._hosts[addr]

    def format_service(self, port: int, proto: str) -> str:
        if port == 0:
            return "*"
        if self.numeric_ports:
            return str(port)
        key = (port, proto)
        if key not in self._services:
            try:
                self._services[key] = socket.getservbyport(port, proto)
            except OSError:
                self._services[key] = str(port)
        return self._services[key]


def endpoint(addr: str, port: str, wide: bool = False, short_len: int = SHORT_LEN) -> str:
    if not wide and len(addr) + len(port) > short_len:
        # assume the port name is the short part
        port_len = min(len(port), short_len - 4)
        addr_len = short_len - port_len
        return f"{addr[:addr_len]}:{port[:port_len]}"
    return f"{addr}:{port}"


def timer_text(desc: SocketDescriptor) -> str:
    t = desc.timer
    if t is None:
        return ""
    if t.kind == 0:
        return f"off (0.00/{t.retransmits}/{t.timeout})"
    if desc.protocol is Protocol.TCP:
        name = TCP_TIMERS.get(t.kind, f"unkn-{t.kind}")
    elif t.kind in (1, 2):
        name = f"on{t.kind}"
    else:
        name = f"unkn-{t.kind}"
    return f"{name} ({t.remaining / HZ:2.2f}/{t.retransmits}/{t.timeout})"


def user_text(uid: int, numeric: bool) -> str:
    if not numeric:
        try:
            return pwd.getpwuid(uid).pw_name
        except KeyError:
            pass
    return str(uid)


class TableRenderer:
    def __init__(self, cfg: CFG, cache: ProcessCache, out: TextIO):
        self.cfg = cfg
        self.cache = cache
        self.out = out
        self.fmt = Formatter(cfg.numeric_hosts, cfg.numeric_ports)

    def _emit(self, line: str) -> None:
        print(line.rstrip(), file=self.out)

    def _owner_banner(self) -> str:
        s = ""
        if self.cfg.show_programs:
            s += " " + "PID/Program name".ljust(PROGNAME_WIDTH)
        if self.cfg.show_labels:
            s += " " + "Security Context".ljust(SELINUX_WIDTH)
        return s

    def _owner_columns(self, inode: int) -> str:
        s = ""
        if self.cfg.show_programs:
            s += " " + self.cache.lookup(inode).ljust(PROGNAME_WIDTH)
        if self.cfg.show_labels:
            s += " " + self.cache.lookup_label(inode).ljust(SELINUX_WIDTH)
        return s

    def finish(self, uid: int, inode: int, timers: str) -> str:
        s = ""
        if self.cfg.extended:
            s += f" {user_text(uid, self.cfg.numeric_users):<10} {inode:<10}"
        s += self._owner_columns(inode)
        if self.cfg.show_timers:
            s += f" {timers}"
        return s

    # -- internet sockets -------------------------------------------------

    def inet_banner(self) -> List[str]:
        head = "Proto Recv-Q Send-Q Local Address           Foreign Address         State      "
        if self.cfg.extended:
            head += " User       Inode     "
        head += self._owner_banner()
        if self.cfg.show_timers:
            head += " Timer"
        return [f"Active Internet connections {self.cfg.mode.banner}", head]

    def _endpoint(self, addr: IPAddress, port: int, proto: Protocol) -> str:
        return endpoint(self.fmt.format_address(addr),
                        self.fmt.format_service(port, SERVICE_PROTO[proto]),
                        self.cfg.wide)

    def inet_rows(self, desc: SocketDescriptor) -> List[str]:
        if desc.protocol is Protocol.SCTP_ENDPOINT:
            return self._sctp_endpoint_rows(desc)
        if desc.protocol is Protocol.SCTP_ASSOCIATION:
            return self._sctp_association_rows(desc)
        local = self._endpoint(desc.local_address, desc.local_port, desc.protocol)
        remote = self._endpoint(desc.remote_address, desc.remote_port, desc.protocol)
        row = (f"{desc.tag:<5} {desc.queues.receive:>6} {desc.queues.transmit:>6} "
               f"{local:<{max(ADDR_WIDTH, len(local))}} {remote:<{max(ADDR_WIDTH, len(remote))}} "
               f"{state_label(desc):<11}")
        return [row + self.finish(desc.uid, desc.inode, timer_text(desc))]

    def _sctp_endpoint_rows(self, desc: SocketDescriptor) -> List[str]:
        port = self.fmt.format_service(desc.local_port, "sctp")
        rows = []
        for i, addr in enumerate(desc.local_addresses or (desc.local_address,)):
            lead = "sctp".ljust(20) if i == 0 else " " * 20
            text = f"{self.fmt.format_address(addr)}:{port}"
            rows.append(f"{lead}{text:<47} {state_label(desc) if i == 0 else '':<11}")
        rows[-1] += self.finish(desc.uid, desc.inode, "")
        return rows

    def _sctp_association_rows(self, desc: SocketDescriptor) -> List[str]:
        lport = self.fmt.format_service(desc.local_port, "sctp")
        rport = self.fmt.format_service(desc.remote_port, "sctp")
        rows = []
        pairs = zip_longest(desc.local_addresses, desc.remote_addresses)
        for i, (laddr, raddr) in enumerate(pairs):
            first = i == 0
            lead = f"sctp  {desc.queues.receive:>6} {desc.queues.transmit:>6} " if first else " " * 20
            local = ""
            if laddr is not None:
                local = self.fmt.format_address(laddr) + (f":{lport}" if first else "")
            remote = ""
            if raddr is not None:
                remote = self.fmt.format_address(raddr) + (f":{rport}" if first else "")
            rows.append(f"{lead}{local:<23} {remote:<23} {state_label(desc) if first else '':<11}")
        if not rows:
            rows.append(f"sctp  {desc.queues.receive:>6} {desc.queues.transmit:>6} ")
        rows[-1] += self.finish(desc.uid, desc.inode, "")
        return rows

    # -- multicast groups -------------------------------------------------

    def igmp_banner(self) -> List[str]:
        title = "IPv4 Group Memberships"
        if AddressFamily.IPV6 in self.cfg.families:
            title = "IPv6/" + title
        return [title, "Interface       RefCnt Group", "--------------- ------ ---------------------"]

    def igmp_row(self, desc: SocketDescriptor) -> str:
        return f"{desc.device:<15} {desc.refcount:<6} {self.fmt.format_address(desc.local_address)}"

    # -- unix sockets -----------------------------------------------------

    def unix_banner(self) -> List[str]:
        return [f"Active UNIX domain sockets {self.cfg.mode.banner}",
                "Proto RefCnt Flags       Type       State         I-Node  "
                + self._owner_banner() + " Path"]

    def unix_row(self, desc: UnixSocketDescriptor) -> str:
        proto = "unix" if desc.proto == 0 else "??"
        row = (f"{proto:<5} {desc.refcount:<6} {unix_flags_label(desc):<11} "
               f"{unix_type_label(desc):<10} {state_label(desc):<13} ")
        if desc.has_inode:
            row += f"{desc.inode:<8}" + self._owner_columns(desc.inode)
        else:
            row += "-       " + self._owner_columns(0)
        return row + f" {desc.path}"

    def render(self, result) -> None:
        protocols = self.cfg.protocols
        if any(p in INET_PROTOCOLS for p in protocols):
            for line in self.inet_banner():
                self._emit(line)
            for desc in result.rows:
                if desc.protocol in INET_PROTOCOLS:
                    for line in self.inet_rows(desc):
                        self._emit(line)
        if Protocol.IGMP in protocols:
            for line in self.igmp_banner():
                self._emit(line)
            for desc in result.rows:
                if desc.protocol is Protocol.IGMP:
                    self._emit(self.igmp_row(desc))
        if Protocol.UNIX in protocols:
            for line in self.unix_banner():
                self._emit(line)
            for desc in result.rows:
                if desc.protocol is Protocol.UNIX:
                    self._emit(self.unix_row(desc))
