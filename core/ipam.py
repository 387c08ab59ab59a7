"""
core/ipam.py -- Subnet and address-allocation validation, capacity statistics.

Pure functions over the value objects in core/models.py. Nothing here reads
or writes storage: callers fetch the existing allocations for a subnet, call
validate_allocation(), and commit the returned allocation themselves. The
validator is handed a snapshot, so guarding against two concurrent callers
both seeing "no conflict" is the persistence layer's job (see
cmdb/store.CMDBStore.allocate_address).

Validation order in validate_allocation() is fixed and each step raises a
distinct error, so a form can show exactly one message per submit:
  1. address parses           -> MalformedAddress
  2. address inside subnet    -> AddressOutOfRange
  3. not network / broadcast  -> ReservedAddress
  4. not already held         -> DuplicateAllocation
  5. MAC format (if given)    -> MalformedMacAddress
  6. email format (if given)  -> MalformedEmail
  7. status is known          -> InvalidStatus
"""

from collections import Counter
from dataclasses import replace
from typing import Iterable, Optional

from core.errors import (
    AddressOutOfRange,
    DuplicateAllocation,
    InvalidPrefixLength,
    InvalidStatus,
    InvalidSubnet,
    MalformedEmail,
    MalformedMacAddress,
    ReservedAddress,
)
from core.models import (
    ALLOCATION_STATUSES,
    MAX_SUBNET_PREFIX,
    MIN_SUBNET_PREFIX,
    OCCUPYING_STATUSES,
    SUBNET_STATUSES,
    AddressAllocation,
    IPAMOverview,
    Subnet,
    SubnetStats,
)
from core.netaddr import (
    ALL_ONES,
    address_to_int,
    int_to_address,
    is_valid_email,
    is_valid_mac,
    normalize_mac,
    parse_ipv4,
    prefix_to_mask,
)

# ---------------------------------------------------------------------------
# Range membership
# ---------------------------------------------------------------------------


def is_in_subnet(address: str, network: str, prefix_length: int) -> bool:
    """Return True if address falls within network/prefix_length.

    Membership is about the range only: the network and broadcast addresses
    are members. Whether they may be allocated is validate_allocation()'s call.
    """
    mask = prefix_to_mask(prefix_length)
    return (address_to_int(address) & mask) == (address_to_int(network) & mask)


def _bounds(subnet: Subnet) -> tuple[int, int]:
    """Return (network, broadcast) as integers."""
    mask = prefix_to_mask(subnet.prefix_length)
    network = address_to_int(subnet.network) & mask
    return network, network | (~mask & ALL_ONES)


def usable_capacity(prefix_length: int) -> int:
    """Number of allocatable host addresses under a prefix.

    Network and broadcast are excluded, so /31 and /32 have none. The naive
    2^(32-p) - 2 would go negative there.
    """
    prefix_to_mask(prefix_length)
    if prefix_length >= 31:
        return 0
    return 2 ** (32 - prefix_length) - 2


def _percent(part: int, whole: int) -> int:
    """Integer percentage rounded half up, 0 for an empty whole, capped at 100."""
    if whole <= 0:
        return 0
    return min(100, (part * 200 + whole) // (2 * whole))


# ---------------------------------------------------------------------------
# Subnet entity rules
# ---------------------------------------------------------------------------


def validate_subnet(subnet: Subnet) -> Subnet:
    """Check a subnet definition and return it with normalized addresses.

    Raises:
      MalformedAddress     -- network or gateway does not parse
      InvalidPrefixLength  -- prefix outside the 8-30 product range
      InvalidSubnet        -- host bits set in network, or gateway not a usable host
      InvalidStatus        -- status outside SUBNET_STATUSES
    """
    network = parse_ipv4(subnet.network.strip(), field="network")
    gateway = parse_ipv4(subnet.gateway.strip(), field="gateway")
    prefix = subnet.prefix_length
    if isinstance(prefix, bool) or not isinstance(prefix, int) or not MIN_SUBNET_PREFIX <= prefix <= MAX_SUBNET_PREFIX:
        raise InvalidPrefixLength(
            f"Prefix length must be between {MIN_SUBNET_PREFIX} and {MAX_SUBNET_PREFIX}, got {prefix!r}.",
            "prefix_length",
        )

    mask = prefix_to_mask(prefix)
    net_int = address_to_int(network)
    if net_int & ~mask & ALL_ONES:
        expected = int_to_address(net_int & mask)
        raise InvalidSubnet(
            f"{network}/{prefix} has host bits set; the network address is {expected}.",
            "network",
        )

    normalized = replace(subnet, network=network, gateway=gateway, name=subnet.name.strip())
    low, high = _bounds(normalized)
    gw_int = address_to_int(gateway)
    if not low < gw_int < high:
        raise InvalidSubnet(
            f"Gateway {gateway} is not a usable host address in {network}/{prefix}.",
            "gateway",
        )
    if subnet.status not in SUBNET_STATUSES:
        raise InvalidStatus(f"Unknown subnet status {subnet.status!r}.", "status")
    return normalized


def subnets_overlap(a: Subnet, b: Subnet) -> bool:
    """Two blocks overlap when they agree on every bit of the shorter prefix."""
    mask = prefix_to_mask(min(a.prefix_length, b.prefix_length))
    return (address_to_int(a.network) & mask) == (address_to_int(b.network) & mask)


def find_overlapping(candidate: Subnet, existing: Iterable[Subnet]) -> Optional[Subnet]:
    """Return the first existing subnet that overlaps candidate, ignoring candidate itself."""
    for other in existing:
        if candidate.id is not None and other.id == candidate.id:
            continue
        if subnets_overlap(candidate, other):
            return other
    return None


# ---------------------------------------------------------------------------
# Allocation validation
# ---------------------------------------------------------------------------


def _clean(value: Optional[str]) -> Optional[str]:
    """Strip a free-text field. Blank counts as absent."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def validate_allocation(
    candidate: AddressAllocation,
    subnet: Subnet,
    existing: Iterable[AddressAllocation],
) -> AddressAllocation:
    """Validate a new or edited allocation against its subnet and siblings.

    existing is the snapshot of allocations already stored for the subnet.
    When candidate.id is set (an edit), the entry with the same id is skipped
    so an allocation never conflicts with its own stored row.

    Returns a normalized copy: strings trimmed, MAC hex digits uppercased,
    subnet_id filled from the subnet. Raises the first failing check's error.
    """
    address = parse_ipv4((candidate.address or "").strip(), field="address")

    if not is_in_subnet(address, subnet.network, subnet.prefix_length):
        raise AddressOutOfRange(f"{address} is not within {subnet.network}/{subnet.prefix_length}.", "address")

    low, high = _bounds(subnet)
    addr_int = address_to_int(address)
    if addr_int == low:
        raise ReservedAddress(f"{address} is the network address of {subnet.network}/{subnet.prefix_length}.", "address")
    if addr_int == high:
        raise ReservedAddress(f"{address} is the broadcast address of {subnet.network}/{subnet.prefix_length}.", "address")

    for other in existing:
        if candidate.id is not None and other.id == candidate.id:
            continue
        if other.status in OCCUPYING_STATUSES and other.address.strip() == address:
            raise DuplicateAllocation(f"{address} is already {other.status} in this subnet.", "address")

    mac = _clean(candidate.mac_address)
    if mac is not None:
        if not is_valid_mac(mac):
            raise MalformedMacAddress(f"'{mac[:32]}' is not a MAC address like AA:BB:CC:DD:EE:FF.", "mac_address")
        mac = normalize_mac(mac)

    email = _clean(candidate.assigned_to_email)
    if email is not None and not is_valid_email(email):
        raise MalformedEmail(f"'{email[:64]}' is not a valid email address.", "assigned_to_email")

    if candidate.status not in ALLOCATION_STATUSES:
        raise InvalidStatus(
            f"Unknown allocation status {candidate.status!r}. Use one of: {', '.join(ALLOCATION_STATUSES)}.", "status"
        )

    return replace(
        candidate,
        address=address,
        subnet_id=subnet.id if subnet.id is not None else candidate.subnet_id,
        mac_address=mac,
        assigned_to_email=email,
        hostname=_clean(candidate.hostname),
        department=_clean(candidate.department),
        description=candidate.description.strip(),
    )


def next_available_address(subnet: Subnet, allocations: Iterable[AddressAllocation]) -> Optional[str]:
    """Return the lowest usable address not held by an allocation, or None if full."""
    if subnet.prefix_length >= 31:
        return None
    low, high = _bounds(subnet)
    held = sorted({address_to_int(a.address) for a in allocations if a.status in OCCUPYING_STATUSES})
    # Linear in the held addresses, not in the subnet size.
    candidate = low + 1
    for value in held:
        if value > candidate:
            break
        if value == candidate:
            candidate += 1
    return int_to_address(candidate) if candidate < high else None


# ---------------------------------------------------------------------------
# Capacity statistics
# ---------------------------------------------------------------------------


def subnet_stats(subnet: Subnet, allocations: Iterable[AddressAllocation]) -> SubnetStats:
    """Capacity and utilization for one subnet.

    used counts allocated and reserved entries. utilization is 0 for subnets
    with no usable space (/31, /32) rather than a division by zero.
    """
    total = usable_capacity(subnet.prefix_length)
    used = sum(1 for a in allocations if a.status in OCCUPYING_STATUSES)
    return SubnetStats(
        total_addresses=total,
        used_addresses=used,
        available_addresses=max(total - used, 0),
        utilization_percent=_percent(used, total),
    )


def ipam_overview(
    subnets: list[Subnet],
    allocations: list[AddressAllocation],
    top_n: int = 5,
) -> IPAMOverview:
    """Aggregate capacity across subnets for the IPAM dashboard."""
    by_subnet: dict[Optional[int], list[AddressAllocation]] = {}
    for alloc in allocations:
        by_subnet.setdefault(alloc.subnet_id, []).append(alloc)

    per_subnet = [(s, subnet_stats(s, by_subnet.get(s.id, []))) for s in subnets]
    total = sum(stats.total_addresses for _, stats in per_subnet)

    statuses = Counter(a.status for a in allocations)
    occupied = statuses["allocated"] + statuses["reserved"]

    ranked = sorted(per_subnet, key=lambda pair: pair[1].utilization_percent, reverse=True)
    return IPAMOverview(
        total_subnets=len(subnets),
        total_addresses=total,
        allocated=statuses["allocated"],
        reserved=statuses["reserved"],
        conflict=statuses["conflict"],
        available=max(total - occupied, 0),
        utilization_percent=_percent(occupied, total),
        subnets_by_status=dict(Counter(s.status for s in subnets)),
        devices_by_type=dict(Counter(a.device_type for a in allocations)),
        top_utilized=[(s, stats.utilization_percent) for s, stats in ranked[:top_n]],
    )
