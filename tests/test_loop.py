import io
import logging

from procnet_stat.collectors.loop import Collector, collector_loop, run
from procnet_stat.models import AddressFamily, Protocol
from procnet_stat.rules import ListenMode
from procnet_stat.snapshot import Snapshot

from conftest import (TCP6_ESTAB_MAPPED, TCP6_LISTEN, TCP_ESTAB, TCP_HEADER, TCP_LISTEN,
                      UDP_CONNECTED, UDP_HEADER, UDP_UNCONNECTED, little_endian_only,
                      make_process, write_net)

pytestmark = little_endian_only


def test_listening_tcp_socket_is_listed(cfg, proc_root):
    write_net(proc_root, "tcp", TCP_HEADER, TCP_LISTEN)
    cfg.mode = ListenMode.LISTENING
    result = Collector(cfg).collect()
    assert result.ok
    assert [(str(d.local_address), d.local_port, d.inode) for d in result.rows] == [
        ("127.0.0.1", 8080, 12345)]


def test_mode_filters_rows(cfg, proc_root):
    write_net(proc_root, "tcp", TCP_HEADER, TCP_LISTEN, TCP_ESTAB)
    assert [d.inode for d in Collector(cfg).collect().rows] == [23456]
    cfg.mode = ListenMode.ALL
    assert [d.inode for d in Collector(cfg).collect().rows] == [12345, 23456]


def test_mapped_ipv6_duplicate_is_dropped(cfg, proc_root):
    write_net(proc_root, "tcp", TCP_HEADER, TCP_ESTAB)
    write_net(proc_root, "tcp6", TCP_HEADER, TCP6_ESTAB_MAPPED)
    rows = Collector(cfg).collect().rows
    assert len(rows) == 1
    assert rows[0].family is AddressFamily.IPV4


def test_native_ipv6_listener_is_kept(cfg, proc_root):
    write_net(proc_root, "tcp", TCP_HEADER, TCP_LISTEN)
    write_net(proc_root, "tcp6", TCP_HEADER, TCP6_LISTEN)
    cfg.mode = ListenMode.LISTENING
    rows = Collector(cfg).collect().rows
    assert [d.tag for d in rows] == ["tcp", "tcp6"]


def test_cycles_are_independent(cfg, proc_root):
    write_net(proc_root, "tcp", TCP_HEADER, TCP_ESTAB)
    collector = Collector(cfg)
    first = collector.collect()
    second = collector.collect()
    assert first.rows == second.rows
    assert len(second.rows) == 1


def test_udp_is_not_deduplicated(cfg, proc_root):
    write_net(proc_root, "udp", UDP_HEADER, UDP_CONNECTED, UDP_CONNECTED)
    cfg.protocols = [Protocol.UDP]
    assert len(Collector(cfg).collect().rows) == 2


def test_missing_sources_are_skipped(cfg, proc_root, caplog):
    write_net(proc_root, "udp", UDP_HEADER, UDP_UNCONNECTED)
    cfg.protocols = [Protocol.TCP, Protocol.UDP]
    cfg.mode = ListenMode.ALL
    with caplog.at_level(logging.DEBUG):
        result = Collector(cfg).collect()
    assert result.ok
    assert [d.protocol for d in result.rows] == [Protocol.UDP]
    assert str(proc_root / "net" / "tcp") in result.missing
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]


def test_missing_explicit_protocol_warns_once(cfg, proc_root, caplog):
    cfg.explicit_protocols = True
    collector = Collector(cfg)
    with caplog.at_level(logging.WARNING):
        collector.collect()
        collector.collect()
    assert caplog.text.count("no support for `tcp'") == 1


def test_unreadable_source_fails_the_cycle(cfg, proc_root, caplog):
    (proc_root / "net" / "tcp").mkdir()
    result = Collector(cfg).collect()
    assert not result.ok
    assert result.failures


def test_malformed_lines_are_skipped(cfg, proc_root, caplog):
    write_net(proc_root, "tcp", TCP_HEADER, "   3: garbage", "", TCP_ESTAB)
    with caplog.at_level(logging.WARNING):
        rows = Collector(cfg).collect().rows
    assert [d.inode for d in rows] == [23456]
    assert "bogus tcp line 1" in caplog.text


def test_programs_follow_each_cycle(cfg, proc_root):
    write_net(proc_root, "tcp", TCP_HEADER, TCP_ESTAB)
    make_process(proc_root, 300, b"/usr/bin/server\0", {5: "socket:[23456]"})
    cfg.show_programs = True
    collector = Collector(cfg)
    collector.collect()
    assert collector.cache.lookup(23456) == "300/server"

    (proc_root / "300" / "fd" / "5").unlink()
    make_process(proc_root, 301, b"/usr/bin/worker\0", {3: "socket:[23456]"})
    collector.collect()
    assert collector.cache.lookup(23456) == "301/worker"


def test_run_prints_the_table(cfg, proc_root):
    write_net(proc_root, "tcp", TCP_HEADER, TCP_LISTEN)
    cfg.mode = ListenMode.LISTENING
    out = io.StringIO()
    assert run(cfg, out) == 0
    lines = out.getvalue().splitlines()
    assert lines[0] == "Active Internet connections (only servers)"
    assert lines[1].startswith("Proto Recv-Q Send-Q Local Address")
    assert lines[2].split() == ["tcp", "0", "0", "127.0.0.1:8080", "0.0.0.0:*", "LISTEN"]


def test_run_reports_failure(cfg, proc_root):
    (proc_root / "net" / "tcp").mkdir()
    assert run(cfg, io.StringIO()) == 1


def test_continuous_run_sleeps_between_cycles(cfg, proc_root):
    write_net(proc_root, "tcp", TCP_HEADER, TCP_ESTAB)
    cfg.interval = 2.5
    naps = []
    out = io.StringIO()
    assert run(cfg, out, sleep=naps.append, cycles=3) == 0
    assert naps == [2.5, 2.5]
    assert out.getvalue().count("Active Internet connections") == 3


def test_collector_loop_updates_snapshot(cfg, proc_root):
    write_net(proc_root, "tcp", TCP_HEADER, TCP_ESTAB)
    snap = Snapshot()
    collector_loop(cfg, snap, interval=0, cycles=1)
    assert snap.cycles == 1
    assert "127.0.0.1:50000" in snap.text
    assert snap.records[0]["inode"] == 23456
    assert snap.records[0]["state"] == "ESTABLISHED"
    assert snap.status()["sockets"] == 1
