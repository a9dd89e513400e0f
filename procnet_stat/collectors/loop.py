from __future__ import annotations
import io
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Set, TextIO, Tuple

from ..config import CFG, SOURCES
from ..models import AddressFamily, Protocol
from ..render.records import to_records
from ..render.table import TableRenderer
from ..rules import wanted
from ..utils.net import AddressError, DecodeError
from .decoders import Descriptor, decode, new_state
from .procfd import ProcessCache
from .reader import SourceMissing, SourceUnreadable, read_records
from .seen import SeenIndex

log = logging.getLogger(__name__)

# protocols whose IPv4 and IPv6 tables may report the same socket twice
DEDUP_PROTOCOLS = {Protocol.TCP}


@dataclass
class CycleResult:
    rows: List[Descriptor] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    partial: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures


class Collector:
    """One polling cycle over every requested protocol table.

    Owns the process cache and the seen index; both are reset at the start
    of each cycle so nothing leaks from one snapshot into the next.
    """

    def __init__(self, cfg: CFG):
        self.cfg = cfg
        self.cache = ProcessCache(cfg.proc_root, with_labels=cfg.show_labels)
        self.seen = SeenIndex()
        self._reported: Set[str] = set()

    def sources(self, protocol: Protocol) -> List[Tuple[Path, bool]]:
        """(path, is_primary) pairs for *protocol*, IPv4 table first."""
        v4, v6 = SOURCES[protocol]
        net = self.cfg.proc_root / "net"
        out = []
        if protocol is Protocol.UNIX or AddressFamily.IPV4 in self.cfg.families:
            out.append((net / v4, True))
        if v6 and AddressFamily.IPV6 in self.cfg.families:
            out.append((net / v6, False))
        return out

    def _missing(self, protocol: Protocol, path: Path, primary: bool, result: CycleResult) -> None:
        result.missing.append(str(path))
        if not primary or str(path) in self._reported:
            return
        self._reported.add(str(path))
        if self.cfg.explicit_protocols:
            log.warning("%s: no support for `%s' on this system.", path, protocol.value)
        else:
            log.debug("%s: not present, skipping %s", path, protocol.value)

    def decode_source(self, protocol: Protocol, path: Path) -> Iterator[Descriptor]:
        """Decoded records of one source in file order, malformed lines skipped."""
        state = new_state(protocol)
        for lnr, line in read_records(path):
            if not line.strip():
                continue
            try:
                desc = decode(protocol, lnr, line, state)
            except AddressError as e:
                log.warning("%s: unsupported address family: %s", path, e)
                continue
            except DecodeError as e:
                log.warning("%s: warning, %s", path, e)
                continue
            if desc is not None:
                yield desc

    def run_pass(self, protocol: Protocol, result: CycleResult) -> None:
        if self.cfg.needs_processes and protocol is not Protocol.IGMP:
            self.cache.build()
        for path, primary in self.sources(protocol):
            try:
                records = list(self.decode_source(protocol, path))
            except SourceMissing:
                self._missing(protocol, path, primary, result)
                continue
            except SourceUnreadable as e:
                log.error("%s", e)
                result.failures.append(str(e))
                return
            for desc in records:
                if not wanted(desc, self.cfg.mode):
                    continue
                if protocol in DEDUP_PROTOCOLS and not self.seen.first_sighting(
                        desc.local_address, desc.local_port, desc.remote_address, desc.remote_port):
                    log.debug("duplicate %s socket pair dropped: inode %d", protocol.value, desc.inode)
                    continue
                result.rows.append(desc)

    def collect(self) -> CycleResult:
        self.seen.clear()
        self.cache.clear()
        result = CycleResult()
        for protocol in self.cfg.protocols:
            self.run_pass(protocol, result)
        result.partial = self.cache.partial or self.cache.failed
        return result


def render_cycle(collector: Collector, result: CycleResult) -> str:
    buf = io.StringIO()
    TableRenderer(collector.cfg, collector.cache, buf).render(result)
    return buf.getvalue()


def run(cfg: CFG, out: TextIO, sleep=time.sleep, cycles: Optional[int] = None) -> int:
    """Print tables once, or every ``cfg.interval`` seconds until interrupted."""
    collector = Collector(cfg)
    done = 0
    while True:
        result = collector.collect()
        TableRenderer(cfg, collector.cache, out).render(result)
        done += 1
        if not result.ok:
            return 1
        if not cfg.interval or (cycles is not None and done >= cycles):
            return 0
        out.flush()
        sleep(cfg.interval)


def collector_loop(cfg: CFG, snap, interval: float, cycles: Optional[int] = None):
    collector = Collector(cfg)
    done = 0
    while True:
        result = collector.collect()
        text = render_cycle(collector, result)
        records = to_records(result.rows, collector.cache)
        with snap.lock:
            snap.text = text
            snap.records = records
            snap.missing = list(result.missing)
            snap.failures = list(result.failures)
            snap.partial = result.partial
            snap.cycles += 1
        done += 1
        if cycles is not None and done >= cycles:
            return
        time.sleep(interval)
