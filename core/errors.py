"""
core/errors.py -- Error taxonomy for the SecDesk core.

Every error here is a caller-correctable input problem, never a transient
fault: the core performs no I/O, so nothing it raises is worth retrying.

Each exception carries:
  code    -- stable snake_case identifier, used as the API error code
  field   -- the offending input field, or None when no single field applies
  message -- human-readable text suitable for a form error

DeskError subclasses ValueError so callers that only care about "bad input"
can catch the builtin.

Layer rule: core/ is the kernel. This module imports nothing from helpdesk/,
cmdb/, or api/.
"""

from typing import Optional


class DeskError(ValueError):
    """Base class for all SecDesk validation errors."""

    code = "invalid_input"

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "field": self.field}


# ---------------------------------------------------------------------------
# SLA engine
# ---------------------------------------------------------------------------


class InvalidPriority(DeskError):
    code = "invalid_priority"


class IncompletePolicy(DeskError):
    code = "incomplete_policy"


# ---------------------------------------------------------------------------
# Address primitives and validator
# ---------------------------------------------------------------------------


class MalformedAddress(DeskError):
    code = "malformed_address"


class InvalidPrefixLength(DeskError):
    code = "invalid_prefix_length"


class AddressOutOfRange(DeskError):
    code = "address_out_of_range"


class ReservedAddress(DeskError):
    code = "reserved_address"


class DuplicateAllocation(DeskError):
    code = "duplicate_allocation"


class MalformedMacAddress(DeskError):
    code = "malformed_mac_address"


class MalformedEmail(DeskError):
    code = "malformed_email"


# ---------------------------------------------------------------------------
# Status vocabularies
# ---------------------------------------------------------------------------


class InvalidStatus(DeskError):
    """A ticket, subnet or allocation status outside its fixed vocabulary."""

    code = "invalid_status"


# ---------------------------------------------------------------------------
# Subnet entity rules
# ---------------------------------------------------------------------------


class InvalidSubnet(DeskError):
    """Network has host bits set, or the gateway is not a usable host address."""

    code = "invalid_subnet"


class OverlappingSubnet(DeskError):
    code = "overlapping_subnet"


class SubnetInUse(DeskError):
    """Raised by the persistence layer when deleting a subnet that still owns allocations."""

    code = "subnet_in_use"


# Errors that describe a clash with existing state rather than a bad value.
# The API layer maps these to 409 instead of 422.
CONFLICT_ERRORS: tuple[type[DeskError], ...] = (DuplicateAllocation, OverlappingSubnet, SubnetInUse)
