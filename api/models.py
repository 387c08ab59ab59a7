"""
API request and response models for SecDesk REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in core/models.py,
helpdesk/models.py and cmdb/models.py, which own the internal domain
representation. Route handlers map between the two.

Request models only check shape (types, lengths, enum membership). Domain
rules such as address format, email format and SLA policy completeness are
enforced by core/ so the API reports them with the same error codes the
stores raise everywhere else.

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.
"""

from dataclasses import asdict
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from cmdb.models import Asset, AssetStats
from core.models import AddressAllocation, IPAMOverview, Subnet, SubnetStats
from core.sla import breach_state, format_time_remaining, time_remaining
from helpdesk.models import ActivityRecord, Organization, Ticket, TicketNote, TicketStats

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class PriorityEnum(str, Enum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"


class TicketStatusEnum(str, Enum):
    open = "open"
    in_progress = "in_progress"
    on_hold = "on_hold"
    pending = "pending"
    resolved = "resolved"
    closed = "closed"
    escalated = "escalated"


class TicketCategoryEnum(str, Enum):
    hardware = "hardware"
    software = "software"
    network = "network"
    accounts = "accounts"
    email = "email"
    system = "system"
    phishing = "phishing"
    malware = "malware"
    suspicious_login = "suspicious_login"
    siem_alert = "siem_alert"
    vulnerability = "vulnerability"
    incident_response = "incident_response"
    compliance = "compliance"


class TicketSortEnum(str, Enum):
    created = "created"
    updated = "updated"
    priority = "priority"
    sla = "sla"


class SubnetStatusEnum(str, Enum):
    active = "active"
    inactive = "inactive"
    reserved = "reserved"
    deprecated = "deprecated"


class AllocationStatusEnum(str, Enum):
    allocated = "allocated"
    reserved = "reserved"
    available = "available"
    offline = "offline"
    conflict = "conflict"


class DeviceTypeEnum(str, Enum):
    server = "server"
    workstation = "workstation"
    printer = "printer"
    router = "router"
    switch = "switch"
    firewall = "firewall"
    access_point = "access_point"
    camera = "camera"
    phone = "phone"
    iot = "iot"
    other = "other"


class AssetCategoryEnum(str, Enum):
    computer = "computer"
    laptop = "laptop"
    server = "server"
    network = "network"
    printer = "printer"
    ip_camera = "ip_camera"
    phone = "phone"
    tablet = "tablet"
    monitor = "monitor"
    peripheral = "peripheral"
    software = "software"
    security = "security"
    other = "other"


class AssetStatusEnum(str, Enum):
    active = "active"
    inactive = "inactive"
    maintenance = "maintenance"
    retired = "retired"
    lost = "lost"
    stolen = "stolen"
    disposed = "disposed"


class AssetConditionEnum(str, Enum):
    excellent = "excellent"
    good = "good"
    fair = "fair"
    poor = "poor"
    damaged = "damaged"


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    detail names the offending input field for domain errors.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------


class OrganizationCreate(BaseModel):
    """Request body for POST /api/v1/organizations."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    domain: str = Field(default="", max_length=255)
    sla_hours: Optional[dict[str, int]] = None
    categories: list[str] = Field(default_factory=list, max_length=50)
    departments: list[str] = Field(default_factory=list, max_length=100)
    actor_email: Optional[str] = Field(default=None, max_length=255)


class OrganizationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    domain: str
    is_active: bool
    sla_hours: Optional[dict[str, int]]
    categories: list[str]
    departments: list[str]
    created_at: datetime

    @classmethod
    def from_domain(cls, org: Organization) -> "OrganizationResponse":
        return cls(**asdict(org))


class SlaPolicyUpdate(BaseModel):
    """Request body for PUT /api/v1/organizations/{id}/sla-policy.

    hours=None removes the override and puts the tenant back on the
    deployment default.
    """

    hours: Optional[dict[str, int]]
    actor_email: Optional[str] = Field(default=None, max_length=255)


class SlaPolicyResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    organization_id: int
    hours: dict[str, int]
    is_default: bool


# ---------------------------------------------------------------------------
# Tickets
# ---------------------------------------------------------------------------


class TicketCreate(BaseModel):
    """Request body for POST /api/v1/tickets."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=10000)
    category: TicketCategoryEnum
    priority: PriorityEnum
    submitter_email: str = Field(min_length=1, max_length=255)
    organization_id: Optional[int] = None
    department: str = Field(default="", max_length=100)
    assigned_to_email: Optional[str] = Field(default=None, max_length=255)


class TicketStatusUpdate(BaseModel):
    """Request body for PATCH /api/v1/tickets/{id}/status."""

    status: TicketStatusEnum
    actor_email: Optional[str] = Field(default=None, max_length=255)


class TicketPriorityUpdate(BaseModel):
    """Request body for PATCH /api/v1/tickets/{id}/priority."""

    priority: PriorityEnum
    actor_email: Optional[str] = Field(default=None, max_length=255)


class TicketAssigneeUpdate(BaseModel):
    """Request body for PATCH /api/v1/tickets/{id}/assignee. null unassigns."""

    model_config = ConfigDict(str_strip_whitespace=True)

    assigned_to_email: Optional[str] = Field(max_length=255)
    actor_email: Optional[str] = Field(default=None, max_length=255)


class NoteCreate(BaseModel):
    """Request body for POST /api/v1/tickets/{id}/notes."""

    model_config = ConfigDict(str_strip_whitespace=True)

    content: str = Field(min_length=1, max_length=10000)
    author_email: str = Field(min_length=1, max_length=255)
    is_internal: bool = False


class TimeRemainingView(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_overdue: bool
    hours: int
    minutes: int


class TicketResponse(BaseModel):
    """A ticket plus its SLA view as of the request time.

    sla_state   -- "breached" | "warning" | "ok"
    sla_text    -- "3h 5m remaining" or "Overdue by 3h 5m"
    """

    model_config = ConfigDict(frozen=True)

    id: int
    ticket_number: str
    title: str
    description: str
    category: str
    priority: str
    status: str
    organization_id: Optional[int]
    department: str
    submitter_email: str
    assigned_to_email: Optional[str]
    created_at: datetime
    updated_at: datetime
    resolved_at: Optional[datetime]
    sla_deadline: datetime
    sla_state: str
    time_remaining: TimeRemainingView
    sla_text: str

    @classmethod
    def from_domain(cls, ticket: Ticket, now: datetime, warning_window: timedelta) -> "TicketResponse":
        """Build the response, deriving the SLA view from the stored deadline.

        Factory Method: the mapping lives beside the output model rather than
        in each route handler.
        """
        remaining = time_remaining(ticket.sla_deadline, now)
        return cls(
            **asdict(ticket),
            sla_state=breach_state(ticket.sla_deadline, now, ticket.status, warning_window),
            time_remaining=TimeRemainingView(
                is_overdue=remaining.is_overdue,
                hours=remaining.hours,
                minutes=remaining.minutes,
            ),
            sla_text=format_time_remaining(remaining),
        )


class NoteResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    ticket_id: int
    content: str
    author_email: str
    is_internal: bool
    created_at: datetime

    @classmethod
    def from_domain(cls, note: TicketNote) -> "NoteResponse":
        return cls(**asdict(note))


class ActivityResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    actor_email: Optional[str]
    action: str
    entity_type: str
    entity_id: int
    details: dict
    created_at: datetime

    @classmethod
    def from_domain(cls, record: ActivityRecord) -> "ActivityResponse":
        return cls(**asdict(record))


class TicketStatsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    open: int
    in_progress: int
    resolved: int
    sla_breaches: int
    by_category: dict[str, int]
    by_priority: dict[str, int]
    recent: list[TicketResponse]

    @classmethod
    def from_domain(cls, stats: TicketStats, now: datetime, warning_window: timedelta) -> "TicketStatsResponse":
        return cls(
            total=stats.total,
            open=stats.open,
            in_progress=stats.in_progress,
            resolved=stats.resolved,
            sla_breaches=stats.sla_breaches,
            by_category=stats.by_category,
            by_priority=stats.by_priority,
            recent=[TicketResponse.from_domain(t, now, warning_window) for t in stats.recent],
        )


# ---------------------------------------------------------------------------
# IPAM
# ---------------------------------------------------------------------------


class SubnetCreate(BaseModel):
    """Request body for POST /api/v1/subnets.

    network, gateway and prefix_length are checked by core.ipam.validate_subnet,
    not here, so malformed values come back as malformed_address /
    invalid_prefix_length / invalid_subnet.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    network: str = Field(max_length=64)
    prefix_length: int
    gateway: str = Field(max_length=64)
    name: str = Field(default="", max_length=255)
    description: str = Field(default="", max_length=1000)
    organization_id: Optional[int] = None
    vlan_id: Optional[int] = Field(default=None, ge=1, le=4094)
    location: str = Field(default="", max_length=255)
    status: SubnetStatusEnum = SubnetStatusEnum.active
    tags: list[str] = Field(default_factory=list, max_length=20)


class SubnetUpdate(BaseModel):
    """Request body for PATCH /api/v1/subnets/{id}. Only sent fields change."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    location: Optional[str] = Field(default=None, max_length=255)
    status: Optional[SubnetStatusEnum] = None
    vlan_id: Optional[int] = Field(default=None, ge=1, le=4094)
    tags: Optional[list[str]] = Field(default=None, max_length=20)


class SubnetStatsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_addresses: int
    used_addresses: int
    available_addresses: int
    utilization_percent: int

    @classmethod
    def from_domain(cls, stats: SubnetStats) -> "SubnetStatsResponse":
        return cls(**asdict(stats))


class SubnetResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    cidr: str
    network: str
    prefix_length: int
    gateway: str
    name: str
    description: str
    organization_id: Optional[int]
    vlan_id: Optional[int]
    location: str
    status: str
    tags: list[str]
    created_at: datetime
    updated_at: datetime
    stats: Optional[SubnetStatsResponse] = None

    @classmethod
    def from_domain(cls, subnet: Subnet, stats: Optional[SubnetStats] = None) -> "SubnetResponse":
        return cls(
            **asdict(subnet),
            cidr=subnet.cidr,
            stats=SubnetStatsResponse.from_domain(stats) if stats is not None else None,
        )


class AllocationCreate(BaseModel):
    """Request body for POST /api/v1/subnets/{id}/addresses."""

    model_config = ConfigDict(str_strip_whitespace=True)

    address: str = Field(max_length=64)
    status: AllocationStatusEnum = AllocationStatusEnum.allocated
    mac_address: Optional[str] = Field(default=None, max_length=64)
    assigned_to_email: Optional[str] = Field(default=None, max_length=255)
    hostname: Optional[str] = Field(default=None, max_length=255)
    device_type: DeviceTypeEnum = DeviceTypeEnum.other
    department: Optional[str] = Field(default=None, max_length=100)
    description: str = Field(default="", max_length=1000)
    tags: list[str] = Field(default_factory=list, max_length=20)


class AllocationUpdate(BaseModel):
    """Request body for PATCH /api/v1/addresses/{id}. Only sent fields change."""

    model_config = ConfigDict(str_strip_whitespace=True)

    address: Optional[str] = Field(default=None, max_length=64)
    status: Optional[AllocationStatusEnum] = None
    mac_address: Optional[str] = Field(default=None, max_length=64)
    assigned_to_email: Optional[str] = Field(default=None, max_length=255)
    hostname: Optional[str] = Field(default=None, max_length=255)
    device_type: Optional[DeviceTypeEnum] = None
    department: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    tags: Optional[list[str]] = Field(default=None, max_length=20)


class AllocationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    subnet_id: int
    address: str
    status: str
    mac_address: Optional[str]
    assigned_to_email: Optional[str]
    hostname: Optional[str]
    device_type: str
    department: Optional[str]
    description: str
    tags: list[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, alloc: AddressAllocation) -> "AllocationResponse":
        return cls(**asdict(alloc))


class NextAvailableResponse(BaseModel):
    """address is null when the subnet has no free usable address."""

    model_config = ConfigDict(frozen=True)

    subnet_id: int
    address: Optional[str]


class ConflictScanResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    subnet_id: int
    marked: list[AllocationResponse]


class UtilizedSubnetRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    subnet_id: int
    cidr: str
    name: str
    utilization_percent: int


class IPAMOverviewResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_subnets: int
    total_addresses: int
    allocated: int
    reserved: int
    conflict: int
    available: int
    utilization_percent: int
    subnets_by_status: dict[str, int]
    devices_by_type: dict[str, int]
    top_utilized: list[UtilizedSubnetRow]

    @classmethod
    def from_domain(cls, overview: IPAMOverview) -> "IPAMOverviewResponse":
        return cls(
            total_subnets=overview.total_subnets,
            total_addresses=overview.total_addresses,
            allocated=overview.allocated,
            reserved=overview.reserved,
            conflict=overview.conflict,
            available=overview.available,
            utilization_percent=overview.utilization_percent,
            subnets_by_status=overview.subnets_by_status,
            devices_by_type=overview.devices_by_type,
            top_utilized=[
                UtilizedSubnetRow(subnet_id=s.id, cidr=s.cidr, name=s.name, utilization_percent=pct)
                for s, pct in overview.top_utilized
            ],
        )


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------


class AssetCreate(BaseModel):
    """Request body for POST /api/v1/assets."""

    model_config = ConfigDict(str_strip_whitespace=True)

    asset_tag: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=255)
    category: AssetCategoryEnum = AssetCategoryEnum.other
    status: AssetStatusEnum = AssetStatusEnum.active
    condition: AssetConditionEnum = AssetConditionEnum.good
    organization_id: Optional[int] = None
    asset_type: str = Field(default="", max_length=100)
    brand: str = Field(default="", max_length=100)
    model: str = Field(default="", max_length=100)
    serial_number: str = Field(default="", max_length=100)
    department: str = Field(default="", max_length=100)
    assigned_to: Optional[str] = Field(default=None, max_length=255)
    assigned_to_email: Optional[str] = Field(default=None, max_length=255)
    location: str = Field(default="", max_length=255)
    purchase_date: Optional[date] = None
    warranty_expiry: Optional[date] = None
    purchase_price: float = Field(default=0.0, ge=0)
    current_value: float = Field(default=0.0, ge=0)
    supplier: str = Field(default="", max_length=255)
    notes: str = Field(default="", max_length=5000)
    specifications: dict[str, str] = Field(default_factory=dict)


class AssetUpdate(BaseModel):
    """Request body for PATCH /api/v1/assets/{id}. Only sent fields change."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    category: Optional[AssetCategoryEnum] = None
    status: Optional[AssetStatusEnum] = None
    condition: Optional[AssetConditionEnum] = None
    department: Optional[str] = Field(default=None, max_length=100)
    assigned_to: Optional[str] = Field(default=None, max_length=255)
    assigned_to_email: Optional[str] = Field(default=None, max_length=255)
    location: Optional[str] = Field(default=None, max_length=255)
    warranty_expiry: Optional[date] = None
    current_value: Optional[float] = Field(default=None, ge=0)
    supplier: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = Field(default=None, max_length=5000)
    specifications: Optional[dict[str, str]] = None


class AssetResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    asset_tag: str
    name: str
    category: str
    status: str
    condition: str
    organization_id: Optional[int]
    asset_type: str
    brand: str
    model: str
    serial_number: str
    department: str
    assigned_to: Optional[str]
    assigned_to_email: Optional[str]
    location: str
    purchase_date: Optional[date]
    warranty_expiry: Optional[date]
    purchase_price: float
    current_value: float
    supplier: str
    notes: str
    specifications: dict[str, str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, asset: Asset) -> "AssetResponse":
        return cls(**asdict(asset))


class AssetStatsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    active: int
    maintenance: int
    retired: int
    total_value: float
    by_category: dict[str, int]
    by_status: dict[str, int]
    warranty_expiring: list[AssetResponse]

    @classmethod
    def from_domain(cls, stats: AssetStats) -> "AssetStatsResponse":
        return cls(
            total=stats.total,
            active=stats.active,
            maintenance=stats.maintenance,
            retired=stats.retired,
            total_value=stats.total_value,
            by_category=stats.by_category,
            by_status=stats.by_status,
            warranty_expiring=[AssetResponse.from_domain(a) for a in stats.warranty_expiring],
        )


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


class DashboardResponse(BaseModel):
    """Response for GET /api/v1/dashboard."""

    model_config = ConfigDict(frozen=True)

    generated_at: datetime
    tickets: TicketStatsResponse
    ipam: IPAMOverviewResponse
    assets: AssetStatsResponse
