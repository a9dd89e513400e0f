from __future__ import annotations
from dataclasses import asdict
from typing import Any, Dict, Iterable, List

from ..collectors.decoders import Descriptor, state_label, unix_flags_label, unix_type_label
from ..collectors.procfd import ProcessCache
from ..models import Protocol, SocketDescriptor


def to_record(desc: Descriptor, cache: ProcessCache) -> Dict[str, Any]:
    """JSON-ready view of one row, enriched with the owning process."""
    if desc.protocol is Protocol.UNIX:
        return {
            "protocol": desc.protocol.value,
            "refcount": desc.refcount,
            "flags": unix_flags_label(desc),
            "type": unix_type_label(desc),
            "state": state_label(desc),
            "inode": desc.inode if desc.has_inode else None,
            "path": desc.path,
            "program": cache.lookup(desc.inode),
            "label": cache.lookup_label(desc.inode),
        }
    assert isinstance(desc, SocketDescriptor)
    rec: Dict[str, Any] = {
        "protocol": desc.protocol.value,
        "tag": desc.tag,
        "family": desc.family.value,
        "local_address": str(desc.local_address),
        "local_port": desc.local_port,
        "remote_address": str(desc.remote_address),
        "remote_port": desc.remote_port,
        "state": state_label(desc),
        "recv_q": desc.queues.receive,
        "send_q": desc.queues.transmit,
        "uid": desc.uid,
        "inode": desc.inode,
        "program": cache.lookup(desc.inode),
        "label": cache.lookup_label(desc.inode),
        "timer": asdict(desc.timer) if desc.timer else None,
    }
    if desc.local_addresses or desc.remote_addresses:
        rec["local_addresses"] = [str(a) for a in desc.local_addresses]
        rec["remote_addresses"] = [str(a) for a in desc.remote_addresses]
    if desc.protocol is Protocol.IGMP:
        rec["device"] = desc.device
        rec["refcount"] = desc.refcount
    return rec


def to_records(rows: Iterable[Descriptor], cache: ProcessCache) -> List[Dict[str, Any]]:
    return [to_record(d, cache) for d in rows]
