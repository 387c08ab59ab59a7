"""
core/netaddr.py -- IPv4, MAC and email primitives.

Pure functions, no I/O. Everything the IPAM validator needs at the bit level
lives here: dotted-quad parsing, uint32 packing, prefix masks, plus the two
format checks the allocation form runs on optional fields.

Leading zeros are rejected: "192.168.01.1" is malformed.
"""

import re
from typing import Optional

from core.errors import InvalidPrefixLength, MalformedAddress

ALL_ONES = 0xFFFFFFFF

# One decimal octet: 0, or 1-9 followed by up to two digits. Range is checked
# numerically afterwards so "256" gets a specific message.
_OCTET_RE = re.compile(r"0|[1-9][0-9]{0,2}")

_MAC_RE = re.compile(r"([0-9A-Fa-f]{2}[:-]){5}[0-9A-Fa-f]{2}")

_EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")


# ---------------------------------------------------------------------------
# IPv4 parsing and packing
# ---------------------------------------------------------------------------


def parse_ipv4(text: str, field: Optional[str] = "address") -> str:
    """Validate a dotted-quad IPv4 address and return it in canonical form.

    Accepts exactly four dot-separated decimal octets in [0, 255]. No
    surrounding whitespace, no signs, no leading zeros.

    Raises MalformedAddress (tagged with `field`) on any violation.
    """
    if not isinstance(text, str):
        raise MalformedAddress(f"Expected an IPv4 address string, got {type(text).__name__}.", field)
    parts = text.split(".")
    if len(parts) != 4:
        raise MalformedAddress(f"'{text[:64]}' is not four dot-separated octets.", field)
    for part in parts:
        # isascii guard: str.isdigit() and the regex \d accept non-ASCII digits.
        if not part.isascii() or not _OCTET_RE.fullmatch(part):
            raise MalformedAddress(f"'{text[:64]}' has an invalid octet '{part[:8]}'.", field)
        if int(part) > 255:
            raise MalformedAddress(f"'{text[:64]}' has octet {part} outside 0-255.", field)
    return text


def address_to_int(address: str) -> int:
    """Pack a dotted-quad address into a big-endian uint32."""
    value = 0
    for part in parse_ipv4(address).split("."):
        value = (value << 8) | int(part)
    return value


def int_to_address(value: int) -> str:
    """Unpack a uint32 into dotted-quad form. Inverse of address_to_int()."""
    if not 0 <= value <= ALL_ONES:
        raise MalformedAddress(f"{value} is outside the IPv4 range 0-{ALL_ONES}.", "address")
    return ".".join(str((value >> shift) & 0xFF) for shift in (24, 16, 8, 0))


# ---------------------------------------------------------------------------
# Prefix arithmetic
# ---------------------------------------------------------------------------


def prefix_to_mask(prefix_length: int) -> int:
    """Return the netmask for a prefix length as a uint32.

    /0 is all zeros and /32 is all ones. Python ints do not wrap, so the
    shifted value is truncated back to 32 bits explicitly.
    """
    if isinstance(prefix_length, bool) or not isinstance(prefix_length, int) or not 0 <= prefix_length <= 32:
        raise InvalidPrefixLength(f"Prefix length must be an integer in 0-32, got {prefix_length!r}.", "prefix_length")
    return (ALL_ONES << (32 - prefix_length)) & ALL_ONES


def mask_to_dotted(mask: int) -> str:
    return int_to_address(mask)


def network_address(address: str, prefix_length: int) -> int:
    """Return the network (all host bits zero) for an address under a prefix."""
    return address_to_int(address) & prefix_to_mask(prefix_length)


def broadcast_address(network: str, prefix_length: int) -> int:
    """Return the broadcast (all host bits one) for a network under a prefix."""
    mask = prefix_to_mask(prefix_length)
    return (address_to_int(network) & mask) | (~mask & ALL_ONES)


# ---------------------------------------------------------------------------
# MAC and email format checks
# ---------------------------------------------------------------------------


def is_valid_mac(text: str) -> bool:
    """Six two-digit hex groups separated by ':' or '-'."""
    return bool(_MAC_RE.fullmatch(text))


def normalize_mac(text: str) -> str:
    """Uppercase the hex digits. Separators are kept as entered."""
    return text.upper()


def is_valid_email(text: str) -> bool:
    """Basic local@domain.tld shape. Deliverability is not checked."""
    return bool(_EMAIL_RE.fullmatch(text))
