"""
cmdb/models.py -- Domain dataclasses for the SecDesk asset inventory.

These are pure data containers with zero logic. Subnets and address
allocations live in core/models.py because the IPAM validator in core/ipam.py
works on them directly; cmdb/store.py persists both.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

ASSET_CATEGORIES: tuple[str, ...] = (
    "computer",
    "laptop",
    "server",
    "network",
    "printer",
    "ip_camera",
    "phone",
    "tablet",
    "monitor",
    "peripheral",
    "software",
    "security",
    "other",
)

ASSET_STATUSES: tuple[str, ...] = ("active", "inactive", "maintenance", "retired", "lost", "stolen", "disposed")

ASSET_CONDITIONS: tuple[str, ...] = ("excellent", "good", "fair", "poor", "damaged")

# Warranties ending within this many days are flagged on the dashboard.
WARRANTY_WARNING_DAYS = 30


@dataclass
class Asset:
    """A tracked piece of hardware or software owned by an organization.

    asset_tag is the human-facing inventory label and is unique across the
    store. Monetary values are plain floats in the organization's currency.

    id is None before the record is written to the database.
    """

    asset_tag: str
    name: str
    category: str = "other"
    status: str = "active"
    condition: str = "good"
    organization_id: Optional[int] = None
    asset_type: str = ""
    brand: str = ""
    model: str = ""
    serial_number: str = ""
    department: str = ""
    assigned_to: Optional[str] = None
    assigned_to_email: Optional[str] = None
    location: str = ""
    purchase_date: Optional[date] = None
    warranty_expiry: Optional[date] = None
    purchase_price: float = 0.0
    current_value: float = 0.0
    supplier: str = ""
    notes: str = ""
    specifications: dict[str, str] = field(default_factory=dict)
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class AssetStats:
    total: int
    active: int
    maintenance: int
    retired: int
    total_value: float  # sum of current_value
    by_category: dict[str, int] = field(default_factory=dict)
    by_status: dict[str, int] = field(default_factory=dict)
    warranty_expiring: list[Asset] = field(default_factory=list)
    recent: list[Asset] = field(default_factory=list)
