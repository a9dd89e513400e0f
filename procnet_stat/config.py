from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import yaml

from .models import AddressFamily, Protocol
from .rules import ListenMode
from .utils.path import to_abs_path

log = logging.getLogger(__name__)

# fixed processing order within one polling cycle
PROTOCOL_ORDER = [
    Protocol.TCP,
    Protocol.SCTP_ENDPOINT,
    Protocol.SCTP_ASSOCIATION,
    Protocol.UDP,
    Protocol.UDPLITE,
    Protocol.RAW,
    Protocol.IGMP,
    Protocol.UNIX,
]
DEFAULT_PROTOCOLS = [p for p in PROTOCOL_ORDER if p is not Protocol.IGMP]

# protocol -> (ipv4 source, ipv6 source) relative to <proc_root>/net
SOURCES = {
    Protocol.TCP: ("tcp", "tcp6"),
    Protocol.UDP: ("udp", "udp6"),
    Protocol.UDPLITE: ("udplite", "udplite6"),
    Protocol.RAW: ("raw", "raw6"),
    Protocol.SCTP_ENDPOINT: ("sctp/eps", "sctp6/eps"),
    Protocol.SCTP_ASSOCIATION: ("sctp/assocs", "sctp6/assocs"),
    Protocol.IGMP: ("igmp", "igmp6"),
    Protocol.UNIX: ("unix", None),
}

# names accepted in config files and on the command line
PROTOCOL_NAMES = {
    "tcp": [Protocol.TCP],
    "udp": [Protocol.UDP],
    "udplite": [Protocol.UDPLITE],
    "raw": [Protocol.RAW],
    "sctp": [Protocol.SCTP_ENDPOINT, Protocol.SCTP_ASSOCIATION],
    "igmp": [Protocol.IGMP],
    "unix": [Protocol.UNIX],
}


@dataclass
class CFG:
    mode: ListenMode = ListenMode.DEFAULT
    numeric_hosts: bool = False
    numeric_ports: bool = False
    numeric_users: bool = False
    show_timers: bool = False
    extended: bool = False
    show_programs: bool = False
    show_labels: bool = False
    wide: bool = False
    protocols: List[Protocol] = field(default_factory=lambda: list(DEFAULT_PROTOCOLS))
    explicit_protocols: bool = False
    families: Set[AddressFamily] = field(default_factory=lambda: {AddressFamily.IPV4, AddressFamily.IPV6})
    interval: Optional[float] = None
    proc_root: Path = Path("/proc")

    @property
    def needs_processes(self) -> bool:
        return self.show_programs or self.show_labels


def ordered_protocols(names) -> List[Protocol]:
    picked: Set[Protocol] = set()
    for n in names:
        if n not in PROTOCOL_NAMES:
            raise ValueError(f"unknown protocol: {n}")
        picked.update(PROTOCOL_NAMES[n])
    return [p for p in PROTOCOL_ORDER if p in picked]


def _apply(cfg: CFG, key: str, value: Any) -> None:
    if key == "mode":
        cfg.mode = ListenMode(value)
    elif key == "protocols":
        cfg.protocols = ordered_protocols(value)
        cfg.explicit_protocols = True
    elif key == "families":
        cfg.families = {AddressFamily(v) for v in value}
    elif key == "interval":
        cfg.interval = float(value) if value else None
    elif key == "proc_root":
        cfg.proc_root = Path(value).expanduser()
    else:
        setattr(cfg, key, bool(value))


def load_cfg_file(path: Optional[str], cfg: Optional[CFG] = None) -> CFG:
    """Read a YAML (.yaml/.yml) or JSON settings file onto *cfg*."""
    cfg = cfg or CFG()
    if not path:
        return cfg
    p = to_abs_path(path)
    if not p.exists():
        raise ValueError(f"config not found: {p}")
    txt = p.read_text(encoding="utf-8")
    data = yaml.safe_load(txt) if p.suffix in (".yaml", ".yml") else json.loads(txt)
    data = data or {}
    if not isinstance(data, dict):
        raise ValueError(f"config must be a mapping: {p}")
    known = {f.name for f in fields(CFG)} - {"explicit_protocols"}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"unknown config keys in {p}: {', '.join(sorted(unknown))}")
    for key, value in data.items():
        _apply(cfg, key, value)
    log.debug("config loaded from %s", p)
    return cfg


def init_cfg_from_args(args) -> CFG:
    cfg = load_cfg_file(getattr(args, "config", None))
    overrides: Dict[str, Any] = {}
    if args.all:
        overrides["mode"] = ListenMode.ALL
    elif args.listening:
        overrides["mode"] = ListenMode.LISTENING
    if args.numeric:
        overrides.update(numeric_hosts=True, numeric_ports=True, numeric_users=True)
    for flag in ("numeric_hosts", "numeric_ports", "numeric_users", "extended",
                 "show_timers", "show_programs", "show_labels", "wide"):
        if getattr(args, flag, False):
            overrides[flag] = True
    if args.show_labels:
        overrides["show_programs"] = True
    if args.protocols:
        overrides["protocols"] = args.protocols
    if args.families:
        overrides["families"] = args.families
        if not args.protocols:
            overrides["protocols"] = ["tcp", "sctp", "udp", "udplite", "raw"]
    if args.continuous is not None:
        overrides["interval"] = args.continuous
    if args.proc_root:
        overrides["proc_root"] = args.proc_root
    for key, value in overrides.items():
        _apply(cfg, key, value)
    return cfg
