from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# Highest urgency first. The order is the escalation/sort order.
PRIORITIES: tuple[str, ...] = ("critical", "high", "medium", "low")

TICKET_STATUSES: tuple[str, ...] = (
    "open",
    "in_progress",
    "on_hold",
    "pending",
    "resolved",
    "closed",
    "escalated",
)

# A ticket in one of these states is never reported as breached.
TERMINAL_STATUSES: frozenset[str] = frozenset({"resolved", "closed"})

ALLOCATION_STATUSES: tuple[str, ...] = ("allocated", "reserved", "available", "offline", "conflict")

# Statuses that hold an address. Only these count toward utilization and
# only these block another allocation of the same address.
OCCUPYING_STATUSES: frozenset[str] = frozenset({"allocated", "reserved"})

SUBNET_STATUSES: tuple[str, ...] = ("active", "inactive", "reserved", "deprecated")

DEVICE_TYPES: tuple[str, ...] = (
    "server",
    "workstation",
    "printer",
    "router",
    "switch",
    "firewall",
    "access_point",
    "camera",
    "phone",
    "iot",
    "other",
)

# Product policy for subnet entities. The is_in_subnet() primitive itself
# accepts the full 0-32 range.
MIN_SUBNET_PREFIX = 8
MAX_SUBNET_PREFIX = 30

BREACHED = "breached"
WARNING = "warning"
OK = "ok"


# ---------------------------------------------------------------------------
# SLA value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimeRemaining:
    """Signed distance from now to a deadline, split into hours and minutes.

    hours and minutes are always non-negative; is_overdue carries the sign.
    """

    is_overdue: bool
    hours: int
    minutes: int


# ---------------------------------------------------------------------------
# IPAM entities
# ---------------------------------------------------------------------------


@dataclass
class Subnet:
    """An IPv4 network owned by an organization.

    network is the base address with host bits zero. prefix_length is held to
    8-30 by validate_subnet(); the capacity helpers still cope with /31 and /32.

    id is None before the record is written to the database.
    """

    network: str
    prefix_length: int
    gateway: str
    name: str = ""
    description: str = ""
    organization_id: Optional[int] = None
    vlan_id: Optional[int] = None
    location: str = ""
    status: str = "active"  # "active" | "inactive" | "reserved" | "deprecated"
    tags: list[str] = field(default_factory=list)
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def cidr(self) -> str:
        return f"{self.network}/{self.prefix_length}"


@dataclass
class AddressAllocation:
    """One IPv4 address within a subnet and what it is assigned to.

    status transitions are always caller-driven; nothing in the core moves an
    allocation from one status to another.

    id is None before the record is written to the database.
    """

    address: str
    subnet_id: Optional[int] = None
    status: str = "allocated"  # "allocated" | "reserved" | "available" | "offline" | "conflict"
    mac_address: Optional[str] = None
    assigned_to_email: Optional[str] = None
    hostname: Optional[str] = None
    device_type: str = "other"
    department: Optional[str] = None
    description: str = ""
    tags: list[str] = field(default_factory=list)
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class SubnetStats:
    total_addresses: int
    used_addresses: int
    available_addresses: int
    utilization_percent: int


@dataclass
class IPAMOverview:
    total_subnets: int
    total_addresses: int
    allocated: int
    reserved: int
    conflict: int
    available: int
    utilization_percent: int
    subnets_by_status: dict[str, int] = field(default_factory=dict)
    devices_by_type: dict[str, int] = field(default_factory=dict)
    # (subnet, utilization_percent) pairs, most utilized first
    top_utilized: list[tuple[Subnet, int]] = field(default_factory=list)
