from __future__ import annotations
import ipaddress, struct
from typing import Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


class DecodeError(ValueError):
    """A record could not be decoded."""


class AddressError(DecodeError):
    """Packed address text of an unknown shape or family."""


def _hex_word(text: str) -> int:
    if not text or not set(text) <= HEX_DIGITS:
        raise AddressError(f"not a hex word: {text!r}")
    return int(text, 16)


def ipv4_from_hex(text: str) -> ipaddress.IPv4Address:
    # kernel prints the raw __be32, read back as a host-order int
    return ipaddress.IPv4Address(struct.pack('=I', _hex_word(text) & 0xFFFFFFFF))


def ipv6_from_hex(text: str) -> ipaddress.IPv6Address:
    """Demangle the four-word form used by tcp6/udp6/raw6."""
    if len(text) != 32:
        raise AddressError(f"bad ipv6 word set: {text!r}")
    words = [_hex_word(text[i:i + 8]) for i in range(0, 32, 8)]
    return ipaddress.IPv6Address(struct.pack('=4I', *words))


def ipv6_from_network_hex(text: str) -> ipaddress.IPv6Address:
    """igmp6 groups are already in network order."""
    if len(text) != 32 or not set(text) <= HEX_DIGITS:
        raise AddressError(f"bad ipv6 group: {text!r}")
    return ipaddress.IPv6Address(bytes.fromhex(text))


def decode_packed(text: str) -> IPAddress:
    if len(text) == 8:
        return ipv4_from_hex(text)
    if len(text) == 32:
        return ipv6_from_hex(text)
    raise AddressError(f"unsupported address family (hex length {len(text)})")


def parse_text_address(text: str) -> IPAddress:
    """SCTP lists plain addresses; a leading '*' marks the primary path."""
    try:
        return ipaddress.ip_address(text.lstrip('*'))
    except ValueError as e:
        raise AddressError(f"unsupported address {text!r}") from e


def is_unspecified(addr: IPAddress) -> bool:
    return int(addr) == 0


def canonical_text(addr: IPAddress) -> str:
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        return str(addr.ipv4_mapped)
    return str(addr)


def ipv4_to_hex(addr: ipaddress.IPv4Address) -> str:
    return "%08X" % struct.unpack('=I', addr.packed)[0]
