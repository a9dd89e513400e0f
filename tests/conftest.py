import os
import sys
from pathlib import Path

import pytest

from procnet_stat.config import CFG
from procnet_stat.models import Protocol

# the /proc/net dumps below were captured on little-endian hosts
little_endian_only = pytest.mark.skipif(sys.byteorder != "little",
                                        reason="fixtures are little-endian /proc dumps")

TCP_HEADER = ("  sl  local_address rem_address   st tx_queue rx_queue tr tm->when "
              "retrnsmt   uid  timeout inode")
TCP_LISTEN = ("   1: 0100007F:1F90 00000000:0000 0A 00000000:00000000 00:00000000 "
              "00000000  1000        0 12345 1 0000000000000000 100 0 0 10 0")
TCP_ESTAB = ("   2: 0100007F:1F90 0100007F:C350 01 00000000:00000000 02:000005DC "
             "00000000  1000        0 23456 1 0000000000000000 20 4 30 10 -1")
TCP6_ESTAB_MAPPED = ("   0: 0000000000000000FFFF00000100007F:1F90 "
                     "0000000000000000FFFF00000100007F:C350 01 00000000:00000000 "
                     "02:000005DC 00000000  1000        0 23456 1 0000000000000000 20 4 30 10 -1")
TCP6_LISTEN = ("   0: 00000000000000000000000001000000:0016 00000000000000000000000000000000:0000 "
               "0A 00000000:00000000 00:00000000 00000000     0        0 2222 1 0000000000000000 100 0 0 10 0")
UDP_HEADER = ("   sl  local_address rem_address   st tx_queue rx_queue tr tm->when "
              "retrnsmt   uid  timeout inode ref pointer drops")
UDP_UNCONNECTED = ("  123: 00000000:0044 00000000:0000 07 00000000:00000000 00:00000000 "
                   "00000000     0        0 17000 2 0000000000000000 0")
UDP_CONNECTED = ("  124: 0F02000A:D431 08080808:0035 01 00000000:00000000 00:00000000 "
                 "00000000  1000        0 17001 2 0000000000000000 0")


def write_net(root: Path, name: str, *lines: str) -> Path:
    path = root / "net" / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(line + "\n" for line in lines))
    return path


def make_process(root: Path, pid: int, cmdline: bytes, links: dict, label: bytes = None) -> Path:
    pdir = root / str(pid)
    (pdir / "fd").mkdir(parents=True)
    (pdir / "cmdline").write_bytes(cmdline)
    for fd, target in links.items():
        os.symlink(target, pdir / "fd" / str(fd))
    if label is not None:
        (pdir / "attr").mkdir()
        (pdir / "attr" / "current").write_bytes(label)
    return pdir


@pytest.fixture
def proc_root(tmp_path):
    root = tmp_path / "proc"
    (root / "net").mkdir(parents=True)
    return root


@pytest.fixture
def cfg(proc_root):
    return CFG(proc_root=proc_root, numeric_hosts=True, numeric_ports=True,
               numeric_users=True, protocols=[Protocol.TCP])
