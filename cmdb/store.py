"""
cmdb/store.py -- SQLAlchemy-backed persistence layer for assets and IPAM.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in cmdb/models.py and
core/models.py remain the authoritative domain representation. SQLAlchemy
provides a database-agnostic abstraction: swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Pattern: Repository + Data Mapper. CMDBStore is the repository (one clean
interface per entity). The _row_to_* functions are the mappers (they translate
raw DB rows into domain dataclasses). Route handlers never touch SQL directly.

Allocation writes are check-then-act: fetch the subnet's allocations, run
core.ipam.validate_allocation(), then insert. allocate_address() and
update_allocation() do all three on one connection inside one transaction,
after locking the subnet row (SELECT ... FOR UPDATE; a no-op on SQLite) and
while holding the store's write lock, so two callers can never both see "no
conflict" for the same address.

Allocation statuses are only ever changed by an explicit caller request
(update_allocation, mark_conflicts).

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = CMDBStore()                               # SQLite default
    store = CMDBStore("postgresql://user:pw@host/db") # PostgreSQL
    subnet = store.create_subnet(Subnet(network="10.0.0.0", prefix_length=24, gateway="10.0.0.1"))
    alloc = store.allocate_address(AddressAllocation(address="10.0.0.20", subnet_id=subnet.id))
    store.subnet_stats(subnet.id)
    store.close()
"""

import json
import logging
import threading
from collections import Counter
from dataclasses import fields as dataclass_fields
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import (
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine

from cmdb.models import WARRANTY_WARNING_DAYS, Asset, AssetStats
from core.errors import InvalidStatus, MalformedEmail, OverlappingSubnet, SubnetInUse
from core.ipam import (
    find_overlapping,
    ipam_overview,
    next_available_address,
    subnet_stats,
    validate_allocation,
    validate_subnet,
)
from core.models import OCCUPYING_STATUSES, SUBNET_STATUSES, AddressAllocation, IPAMOverview, Subnet, SubnetStats
from core.netaddr import is_valid_email

logger = logging.getLogger("secdesk.cmdb")

_DEFAULT_DB_URL = "sqlite:///secdesk_cmdb.db"

# Fields update_subnet() may change. Addressing (network, prefix, gateway) is
# fixed once allocations can exist inside it.
_SUBNET_MUTABLE = frozenset({"name", "description", "location", "status", "vlan_id", "tags"})

_ALLOCATION_MUTABLE = frozenset(
    {
        "address",
        "status",
        "mac_address",
        "assigned_to_email",
        "hostname",
        "device_type",
        "department",
        "description",
        "tags",
    }
)

_ASSET_MUTABLE = frozenset(f.name for f in dataclass_fields(Asset)) - {"id", "created_at", "updated_at"}

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_assets = Table(
    "assets",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("asset_tag", String(50), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("category", String(30), nullable=False, server_default="other"),
    Column("asset_type", String(100), nullable=False, server_default=""),
    Column("brand", String(100), nullable=False, server_default=""),
    Column("model", String(100), nullable=False, server_default=""),
    Column("serial_number", String(100), nullable=False, server_default=""),
    Column("status", String(20), nullable=False, server_default="active"),
    Column("condition", String(20), nullable=False, server_default="good"),
    Column("organization_id", Integer),
    Column("department", String(100), nullable=False, server_default=""),
    Column("assigned_to", String(255)),
    Column("assigned_to_email", String(255)),
    Column("location", String(255), nullable=False, server_default=""),
    Column("purchase_date", String(10)),  # YYYY-MM-DD
    Column("warranty_expiry", String(10)),  # YYYY-MM-DD
    Column("purchase_price", Float, nullable=False, server_default="0"),
    Column("current_value", Float, nullable=False, server_default="0"),
    Column("supplier", String(255), nullable=False, server_default=""),
    Column("notes", Text, nullable=False, server_default=""),
    Column("specifications", Text),  # JSON object serialized as text
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    sqlite_autoincrement=True,
)

_subnets = Table(
    "subnets",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("network", String(15), nullable=False),
    Column("prefix_length", Integer, nullable=False),
    Column("gateway", String(15), nullable=False),
    Column("name", String(255), nullable=False, server_default=""),
    Column("description", Text, nullable=False, server_default=""),
    Column("organization_id", Integer),
    Column("vlan_id", Integer),
    Column("location", String(255), nullable=False, server_default=""),
    Column("status", String(20), nullable=False, server_default="active"),
    Column("tags", Text),  # JSON array serialized as text
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    sqlite_autoincrement=True,
)

_allocations = Table(
    "ip_allocations",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("subnet_id", Integer, nullable=False, index=True),
    Column("address", String(15), nullable=False),
    Column("status", String(20), nullable=False, server_default="allocated"),
    Column("mac_address", String(17)),
    Column("assigned_to_email", String(255)),
    Column("hostname", String(255)),
    Column("device_type", String(30), nullable=False, server_default="other"),
    Column("department", String(100)),
    Column("description", Text, nullable=False, server_default=""),
    Column("tags", Text),  # JSON array serialized as text
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    sqlite_autoincrement=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat()


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _date_str(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    WAL (Write-Ahead Logging) allows readers to proceed without blocking
    during writes. Set per-connection because SQLite PRAGMAs are not
    inherited by new connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _allocation_values(alloc: AddressAllocation) -> dict:
    return {
        "subnet_id": alloc.subnet_id,
        "address": alloc.address,
        "status": alloc.status,
        "mac_address": alloc.mac_address,
        "assigned_to_email": alloc.assigned_to_email,
        "hostname": alloc.hostname,
        "device_type": alloc.device_type,
        "department": alloc.department,
        "description": alloc.description,
        "tags": json.dumps(alloc.tags),
    }


def _asset_values(asset: Asset) -> dict:
    return {
        "asset_tag": asset.asset_tag.strip(),
        "name": asset.name.strip(),
        "category": asset.category,
        "asset_type": asset.asset_type,
        "brand": asset.brand,
        "model": asset.model,
        "serial_number": asset.serial_number,
        "status": asset.status,
        "condition": asset.condition,
        "organization_id": asset.organization_id,
        "department": asset.department,
        "assigned_to": asset.assigned_to,
        "assigned_to_email": asset.assigned_to_email,
        "location": asset.location,
        "purchase_date": _date_str(asset.purchase_date),
        "warranty_expiry": _date_str(asset.warranty_expiry),
        "purchase_price": asset.purchase_price,
        "current_value": asset.current_value,
        "supplier": asset.supplier,
        "notes": asset.notes,
        "specifications": json.dumps(asset.specifications),
    }


def _check_asset(asset: Asset) -> Asset:
    email = (asset.assigned_to_email or "").strip() or None
    if email is not None and not is_valid_email(email):
        raise MalformedEmail(f"'{email[:64]}' is not a valid email address.", "assigned_to_email")
    return replace(asset, assigned_to_email=email)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CMDBStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL, clock: Optional[Callable[[], datetime]] = None) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # SQLite requires check_same_thread=False when used from FastAPI's
            # thread pool, where a pooled connection may be used by any thread.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)
        self._clock = clock or _utc_now
        # Serializes allocation check-then-insert within this process. The
        # subnet row lock covers other processes on backends that support it.
        self._write_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def create_asset(self, asset: Asset) -> int:
        """Insert a new asset and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if asset_tag is already taken,
        MalformedEmail for a bad assigned_to_email.
        """
        asset = _check_asset(asset)
        now = _iso(self._clock())
        with self.engine.connect() as conn:
            result = conn.execute(_assets.insert().values(**_asset_values(asset), created_at=now, updated_at=now))
            conn.commit()
        asset_id = result.inserted_primary_key[0]
        logger.info("Asset %s created (id=%d)", asset.asset_tag.strip(), asset_id)
        return asset_id

    def update_asset(self, asset_id: int, **fields) -> bool:
        """Update mutable fields on an existing asset.

        Accepts any subset of the Asset fields except id and the timestamps.
        Returns True if a row was updated, False if asset_id was not found.
        """
        unknown = set(fields) - _ASSET_MUTABLE
        if unknown:
            raise ValueError(f"Asset fields cannot be updated: {', '.join(sorted(unknown))}")
        current = self.get_asset(asset_id)
        if current is None:
            return False
        updated = _check_asset(replace(current, **fields))
        values = {k: v for k, v in _asset_values(updated).items() if k in fields}
        with self.engine.connect() as conn:
            result = conn.execute(
                _assets.update().where(_assets.c.id == asset_id).values(**values, updated_at=_iso(self._clock()))
            )
            conn.commit()
        return result.rowcount > 0

    def get_asset(self, asset_id: int) -> Optional[Asset]:
        """Fetch a single asset by ID. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_assets.select().where(_assets.c.id == asset_id)).fetchone()
        return _row_to_asset(row) if row is not None else None

    def get_asset_by_tag(self, asset_tag: str) -> Optional[Asset]:
        """Look up an asset by exact asset tag. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_assets.select().where(_assets.c.asset_tag == asset_tag.strip())).fetchone()
        return _row_to_asset(row) if row is not None else None

    def list_assets(
        self,
        organization_id: Optional[int] = None,
        status: Optional[str] = None,
        category: Optional[str] = None,
    ) -> list[Asset]:
        """Return assets, newest first, optionally filtered."""
        stmt = _assets.select()
        if organization_id is not None:
            stmt = stmt.where(_assets.c.organization_id == organization_id)
        if status is not None:
            stmt = stmt.where(_assets.c.status == status)
        if category is not None:
            stmt = stmt.where(_assets.c.category == category)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt.order_by(_assets.c.created_at.desc(), _assets.c.id.desc())).fetchall()
        return [_row_to_asset(r) for r in rows]

    def delete_asset(self, asset_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_assets.delete().where(_assets.c.id == asset_id))
            conn.commit()
        if result.rowcount:
            logger.info("Asset %d deleted", asset_id)
        return result.rowcount > 0

    def asset_stats(self, today: date, organization_id: Optional[int] = None) -> AssetStats:
        """Inventory summary for the dashboard.

        warranty_expiring holds assets whose warranty ends after today and
        within WARRANTY_WARNING_DAYS of it.
        """
        assets = self.list_assets(organization_id=organization_id)
        statuses = Counter(a.status for a in assets)
        horizon = today + timedelta(days=WARRANTY_WARNING_DAYS)
        expiring = [a for a in assets if a.warranty_expiry is not None and today < a.warranty_expiry <= horizon]
        expiring.sort(key=lambda a: a.warranty_expiry)
        return AssetStats(
            total=len(assets),
            active=statuses["active"],
            maintenance=statuses["maintenance"],
            retired=statuses["retired"],
            total_value=sum(a.current_value for a in assets),
            by_category=dict(Counter(a.category for a in assets)),
            by_status=dict(statuses),
            warranty_expiring=expiring,
            recent=assets[:5],
        )

    # ------------------------------------------------------------------
    # Subnets
    # ------------------------------------------------------------------

    def create_subnet(self, subnet: Subnet) -> Subnet:
        """Validate and insert a subnet, returning the stored record.

        Raises the core.ipam.validate_subnet errors, or OverlappingSubnet if
        the block overlaps another subnet of the same organization.
        """
        subnet = validate_subnet(subnet)
        now = _iso(self._clock())
        with self._write_lock, self.engine.connect() as conn:
            siblings = conn.execute(_subnets.select().where(_org_filter(subnet.organization_id))).fetchall()
            clash = find_overlapping(subnet, [_row_to_subnet(r) for r in siblings])
            if clash is not None:
                logger.warning("Refused subnet %s: overlaps %s (id=%d)", subnet.cidr, clash.cidr, clash.id)
                raise OverlappingSubnet(f"{subnet.cidr} overlaps existing subnet {clash.cidr}.", "network")
            result = conn.execute(
                _subnets.insert().values(
                    network=subnet.network,
                    prefix_length=subnet.prefix_length,
                    gateway=subnet.gateway,
                    name=subnet.name,
                    description=subnet.description,
                    organization_id=subnet.organization_id,
                    vlan_id=subnet.vlan_id,
                    location=subnet.location,
                    status=subnet.status,
                    tags=json.dumps(subnet.tags),
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        subnet_id = result.inserted_primary_key[0]
        logger.info("Subnet %s created (id=%d)", subnet.cidr, subnet_id)
        return self.get_subnet(subnet_id)

    def get_subnet(self, subnet_id: int) -> Optional[Subnet]:
        with self.engine.connect() as conn:
            row = conn.execute(_subnets.select().where(_subnets.c.id == subnet_id)).fetchone()
        return _row_to_subnet(row) if row is not None else None

    def list_subnets(self, organization_id: Optional[int] = None) -> list[Subnet]:
        """Return subnets ordered by network address."""
        stmt = _subnets.select()
        if organization_id is not None:
            stmt = stmt.where(_subnets.c.organization_id == organization_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        subnets = [_row_to_subnet(r) for r in rows]
        # Dotted quads do not sort lexically; order on the integer value.
        subnets.sort(key=lambda s: (tuple(int(p) for p in s.network.split(".")), s.prefix_length))
        return subnets

    def update_subnet(self, subnet_id: int, **fields) -> Optional[Subnet]:
        """Change descriptive fields on a subnet. Returns None if not found."""
        unknown = set(fields) - _SUBNET_MUTABLE
        if unknown:
            raise ValueError(f"Subnet fields cannot be updated: {', '.join(sorted(unknown))}")
        if "status" in fields and fields["status"] not in SUBNET_STATUSES:
            raise InvalidStatus(f"Unknown subnet status {fields['status']!r}.", "status")
        if "tags" in fields:
            fields["tags"] = json.dumps(fields["tags"])
        with self.engine.connect() as conn:
            result = conn.execute(
                _subnets.update()
                .where(_subnets.c.id == subnet_id)
                .values(**fields, updated_at=_iso(self._clock()))
            )
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_subnet(subnet_id)

    def delete_subnet(self, subnet_id: int) -> bool:
        """Delete an empty subnet.

        Raises SubnetInUse while any allocation still references it; release
        those first. Returns False if subnet_id was not found.
        """
        with self._write_lock, self.engine.connect() as conn:
            in_use = conn.execute(
                select(func.count()).select_from(_allocations).where(_allocations.c.subnet_id == subnet_id)
            ).scalar_one()
            if in_use:
                logger.warning("Refused delete of subnet %d: %d allocation(s) remain", subnet_id, in_use)
                raise SubnetInUse(f"Subnet still has {in_use} address allocation(s).", "subnet_id")
            result = conn.execute(_subnets.delete().where(_subnets.c.id == subnet_id))
            conn.commit()
        if result.rowcount:
            logger.info("Subnet %d deleted", subnet_id)
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Address allocations
    # ------------------------------------------------------------------

    def _lock_subnet(self, conn, subnet_id: int) -> Optional[Subnet]:
        row = conn.execute(_subnets.select().where(_subnets.c.id == subnet_id).with_for_update()).fetchone()
        return _row_to_subnet(row) if row is not None else None

    def _siblings(self, conn, subnet_id: int) -> list[AddressAllocation]:
        rows = conn.execute(_allocations.select().where(_allocations.c.subnet_id == subnet_id)).fetchall()
        return [_row_to_allocation(r) for r in rows]

    def allocate_address(self, allocation: AddressAllocation) -> Optional[AddressAllocation]:
        """Validate and store a new allocation atomically.

        Returns the stored allocation, or None if the subnet does not exist.
        Raises the core.ipam.validate_allocation errors unchanged.
        """
        now = _iso(self._clock())
        with self._write_lock, self.engine.connect() as conn:
            subnet = self._lock_subnet(conn, allocation.subnet_id)
            if subnet is None:
                conn.rollback()
                return None
            try:
                checked = validate_allocation(replace(allocation, id=None), subnet, self._siblings(conn, subnet.id))
            except ValueError as exc:
                conn.rollback()
                logger.warning("Refused allocation of %r in %s: %s", allocation.address, subnet.cidr, exc)
                raise
            result = conn.execute(
                _allocations.insert().values(**_allocation_values(checked), created_at=now, updated_at=now)
            )
            conn.commit()
        alloc_id = result.inserted_primary_key[0]
        logger.info("Allocated %s in %s (id=%d, status=%s)", checked.address, subnet.cidr, alloc_id, checked.status)
        return self.get_allocation(alloc_id)

    def update_allocation(self, allocation_id: int, **fields) -> Optional[AddressAllocation]:
        """Edit an allocation, re-running the full validation atomically.

        The allocation never conflicts with its own stored row. Returns None
        if the allocation does not exist.
        """
        unknown = set(fields) - _ALLOCATION_MUTABLE
        if unknown:
            raise ValueError(f"Allocation fields cannot be updated: {', '.join(sorted(unknown))}")
        with self._write_lock, self.engine.connect() as conn:
            row = conn.execute(_allocations.select().where(_allocations.c.id == allocation_id)).fetchone()
            if row is None:
                conn.rollback()
                return None
            current = _row_to_allocation(row)
            subnet = self._lock_subnet(conn, current.subnet_id)
            try:
                checked = validate_allocation(replace(current, **fields), subnet, self._siblings(conn, subnet.id))
            except ValueError as exc:
                conn.rollback()
                logger.warning("Refused update of allocation %d: %s", allocation_id, exc)
                raise
            conn.execute(
                _allocations.update()
                .where(_allocations.c.id == allocation_id)
                .values(**_allocation_values(checked), updated_at=_iso(self._clock()))
            )
            conn.commit()
        logger.info("Allocation %d updated (%s)", allocation_id, ", ".join(sorted(fields)) or "no fields")
        return self.get_allocation(allocation_id)

    def get_allocation(self, allocation_id: int) -> Optional[AddressAllocation]:
        with self.engine.connect() as conn:
            row = conn.execute(_allocations.select().where(_allocations.c.id == allocation_id)).fetchone()
        return _row_to_allocation(row) if row is not None else None

    def list_allocations(self, subnet_id: Optional[int] = None) -> list[AddressAllocation]:
        """Return allocations in address order (all subnets when subnet_id is None)."""
        stmt = _allocations.select()
        if subnet_id is not None:
            stmt = stmt.where(_allocations.c.subnet_id == subnet_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        allocs = [_row_to_allocation(r) for r in rows]
        allocs.sort(key=lambda a: (a.subnet_id, tuple(int(p) for p in a.address.split(".")), a.id))
        return allocs

    def release_allocation(self, allocation_id: int) -> bool:
        """Delete an allocation, freeing its address."""
        with self._write_lock, self.engine.connect() as conn:
            result = conn.execute(_allocations.delete().where(_allocations.c.id == allocation_id))
            conn.commit()
        if result.rowcount:
            logger.info("Allocation %d released", allocation_id)
        return result.rowcount > 0

    def mark_conflicts(self, subnet_id: int) -> list[AddressAllocation]:
        """Flag every allocated/reserved row whose address another such row also holds.

        Only rows imported or written before validation existed can collide;
        allocate_address() never creates a duplicate. Returns the rows now
        marked "conflict".
        """
        with self._write_lock, self.engine.connect() as conn:
            siblings = self._siblings(conn, subnet_id)
            holders = Counter(a.address for a in siblings if a.status in OCCUPYING_STATUSES)
            clashing = [a.id for a in siblings if a.status in OCCUPYING_STATUSES and holders[a.address] > 1]
            if clashing:
                conn.execute(
                    _allocations.update()
                    .where(_allocations.c.id.in_(clashing))
                    .values(status="conflict", updated_at=_iso(self._clock()))
                )
            conn.commit()
        if clashing:
            logger.warning("Subnet %d: marked %d allocation(s) as conflict", subnet_id, len(clashing))
        return [a for a in self.list_allocations(subnet_id) if a.id in clashing]

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def subnet_stats(self, subnet_id: int) -> Optional[SubnetStats]:
        subnet = self.get_subnet(subnet_id)
        if subnet is None:
            return None
        return subnet_stats(subnet, self.list_allocations(subnet_id))

    def next_available_address(self, subnet_id: int) -> Optional[str]:
        """Lowest free usable address in the subnet. Raises LookupError for an unknown subnet."""
        subnet = self.get_subnet(subnet_id)
        if subnet is None:
            raise LookupError(f"Subnet {subnet_id} not found")
        return next_available_address(subnet, self.list_allocations(subnet_id))

    def ipam_overview(self, organization_id: Optional[int] = None) -> IPAMOverview:
        subnets = self.list_subnets(organization_id=organization_id)
        ids = {s.id for s in subnets}
        allocations = [a for a in self.list_allocations() if a.subnet_id in ids]
        return ipam_overview(subnets, allocations)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(select(func.count()).select_from(_subnets)).scalar_one()
        return True

    def close(self) -> None:
        self.engine.dispose()


def _org_filter(organization_id: Optional[int]):
    if organization_id is None:
        return _subnets.c.organization_id.is_(None)
    return _subnets.c.organization_id == organization_id


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_asset(row) -> Asset:
    return Asset(
        id=row.id,
        asset_tag=row.asset_tag,
        name=row.name,
        category=row.category,
        asset_type=row.asset_type,
        brand=row.brand,
        model=row.model,
        serial_number=row.serial_number,
        status=row.status,
        condition=row.condition,
        organization_id=row.organization_id,
        department=row.department,
        assigned_to=row.assigned_to,
        assigned_to_email=row.assigned_to_email,
        location=row.location,
        purchase_date=_parse_date(row.purchase_date),
        warranty_expiry=_parse_date(row.warranty_expiry),
        purchase_price=row.purchase_price,
        current_value=row.current_value,
        supplier=row.supplier,
        notes=row.notes,
        specifications=json.loads(row.specifications) if row.specifications else {},
        created_at=_parse_ts(row.created_at),
        updated_at=_parse_ts(row.updated_at),
    )


def _row_to_subnet(row) -> Subnet:
    return Subnet(
        id=row.id,
        network=row.network,
        prefix_length=row.prefix_length,
        gateway=row.gateway,
        name=row.name,
        description=row.description,
        organization_id=row.organization_id,
        vlan_id=row.vlan_id,
        location=row.location,
        status=row.status,
        tags=json.loads(row.tags) if row.tags else [],
        created_at=_parse_ts(row.created_at),
        updated_at=_parse_ts(row.updated_at),
    )


def _row_to_allocation(row) -> AddressAllocation:
    return AddressAllocation(
        id=row.id,
        subnet_id=row.subnet_id,
        address=row.address,
        status=row.status,
        mac_address=row.mac_address,
        assigned_to_email=row.assigned_to_email,
        hostname=row.hostname,
        device_type=row.device_type,
        department=row.department,
        description=row.description,
        tags=json.loads(row.tags) if row.tags else [],
        created_at=_parse_ts(row.created_at),
        updated_at=_parse_ts(row.updated_at),
    )
