#!/usr/bin/env python3
"""
SecDesk -- command-line checks for IP allocations, subnets and SLA deadlines.
Runs the same core rules as the API, without a database.

Usage:
  python main.py ip check 10.0.0.20 --subnet 10.0.0.0/24
  python main.py ip check 10.0.0.20 --subnet 10.0.0.0/24 --mac aa:bb:cc:dd:ee:ff --email ops@example.com
  python main.py subnet info 192.168.10.0/26
  python main.py sla deadline high
  python main.py sla deadline critical --created 2025-03-01T09:00:00+00:00
  python main.py sla status 2025-03-01T13:00:00+00:00 --now 2025-03-01T12:30:00+00:00
  python main.py --json subnet info 10.0.0.0/24
  python main.py --no-color sla status 2025-03-01T13:00:00Z

Exit status: 0 on success, 1 when the input fails validation, 2 on usage errors.

Environment variables:
  SLA_CRITICAL_HOURS, SLA_HIGH_HOURS, SLA_MEDIUM_HOURS, SLA_LOW_HOURS
                Default policy used by "sla deadline" (1/4/24/72).
  SLA_WARNING_HOURS
                Window before the deadline reported as "warning" (24).
"""

import argparse
import json
import sys
from datetime import datetime, timedelta, timezone
from typing import Optional

from core.config import get_settings
from core.errors import DeskError, InvalidPrefixLength, MalformedAddress
from core.formatter import colorize_priority, colorize_state, disable_color, render_block, render_error
from core.ipam import is_in_subnet, usable_capacity, validate_allocation
from core.models import TICKET_STATUSES, AddressAllocation, Subnet
from core.netaddr import (
    broadcast_address,
    int_to_address,
    mask_to_dotted,
    network_address,
    parse_ipv4,
    prefix_to_mask,
)
from core.sla import breach_state, compute_deadline, format_time_remaining, time_remaining


def _iso_datetime(text: str) -> datetime:
    """argparse type: ISO 8601 timestamp. A trailing Z means UTC; naive means UTC."""
    value = text.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{text}' is not an ISO 8601 timestamp (e.g. 2025-03-01T09:00:00Z)")
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _parse_cidr(text: str) -> tuple[str, int]:
    """Split "a.b.c.d/p" into (network address, prefix). Host bits are cleared."""
    address, sep, prefix_text = text.strip().partition("/")
    if not sep:
        raise MalformedAddress(f"'{text[:40]}' is not in CIDR form (e.g. 10.0.0.0/24).", "subnet")
    if not prefix_text.isascii() or not prefix_text.isdigit():
        raise InvalidPrefixLength(f"Prefix length must be a whole number 0-32, got '{prefix_text[:8]}'.", "subnet")
    prefix = int(prefix_text)
    address = parse_ipv4(address, field="subnet")
    prefix_to_mask(prefix)
    return int_to_address(network_address(address, prefix)), prefix


# ---------------------------------------------------------------------------
# Commands. Each returns (title, rows, payload); payload is the --json form.
# ---------------------------------------------------------------------------


def cmd_ip_check(args: argparse.Namespace) -> tuple[str, list, dict]:
    network, prefix = _parse_cidr(args.subnet)
    # The gateway plays no part in allocation checks.
    subnet = Subnet(network=network, prefix_length=prefix, gateway=network)
    checked = validate_allocation(
        AddressAllocation(address=args.address, mac_address=args.mac, assigned_to_email=args.email),
        subnet,
        [],
    )
    payload = {
        "address": checked.address,
        "subnet": subnet.cidr,
        "valid": True,
        "mac_address": checked.mac_address,
        "assigned_to_email": checked.assigned_to_email,
    }
    rows = [("Address", checked.address), ("Subnet", subnet.cidr), ("Result", colorize_state("ok"))]
    if checked.mac_address:
        rows.append(("MAC", checked.mac_address))
    if checked.assigned_to_email:
        rows.append(("Assigned to", checked.assigned_to_email))
    return "Allocation check", rows, payload


def cmd_subnet_info(args: argparse.Namespace) -> tuple[str, list, dict]:
    network, prefix = _parse_cidr(args.cidr)
    broadcast = broadcast_address(network, prefix)
    usable = usable_capacity(prefix)
    first = int_to_address(network_address(network, prefix) + 1) if usable else None
    last = int_to_address(broadcast - 1) if usable else None
    payload = {
        "cidr": f"{network}/{prefix}",
        "network": network,
        "prefix_length": prefix,
        "netmask": mask_to_dotted(prefix_to_mask(prefix)),
        "broadcast": int_to_address(broadcast),
        "first_usable": first,
        "last_usable": last,
        "usable_addresses": usable,
    }
    rows = [
        ("Network", network),
        ("Netmask", payload["netmask"]),
        ("Broadcast", payload["broadcast"]),
        ("Usable range", f"{first} - {last}" if usable else "none"),
        ("Usable hosts", str(usable)),
    ]
    if args.contains:
        inside = is_in_subnet(parse_ipv4(args.contains.strip(), field="contains"), network, prefix)
        payload["contains"] = {"address": args.contains.strip(), "inside": inside}
        rows.append((f"Contains {args.contains.strip()}", "yes" if inside else "no"))
    return f"Subnet {network}/{prefix}", rows, payload


def cmd_sla_deadline(args: argparse.Namespace) -> tuple[str, list, dict]:
    settings = get_settings()
    policy = settings.default_sla_policy()
    created = args.created or datetime.now(timezone.utc)
    priority = args.priority.strip().lower()
    deadline = compute_deadline(priority, created, policy)
    payload = {
        "priority": priority,
        "created_at": created.isoformat(),
        "budget_hours": policy[priority],
        "sla_deadline": deadline.isoformat(),
    }
    rows = [
        ("Priority", colorize_priority(priority)),
        ("Created", created.isoformat()),
        ("Budget", f"{policy[priority]}h"),
        ("Deadline", deadline.isoformat()),
    ]
    return "SLA deadline", rows, payload


def cmd_sla_status(args: argparse.Namespace) -> tuple[str, list, dict]:
    settings = get_settings()
    now = args.now or datetime.now(timezone.utc)
    window = timedelta(hours=settings.sla_warning_hours)
    state = breach_state(args.deadline, now, args.status, window)
    remaining = time_remaining(args.deadline, now)
    payload = {
        "sla_deadline": args.deadline.isoformat(),
        "now": now.isoformat(),
        "status": args.status,
        "sla_state": state,
        "is_overdue": remaining.is_overdue,
        "hours": remaining.hours,
        "minutes": remaining.minutes,
        "sla_text": format_time_remaining(remaining),
    }
    rows = [
        ("Deadline", args.deadline.isoformat()),
        ("Now", now.isoformat()),
        ("Ticket status", args.status),
        ("SLA state", colorize_state(state)),
        ("Time", payload["sla_text"]),
    ]
    return "SLA status", rows, payload


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="secdesk",
        description="Validate IP allocations and subnets, and compute ticket SLA deadlines.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py ip check 10.0.0.20 --subnet 10.0.0.0/24
  python main.py subnet info 192.168.10.0/26 --contains 192.168.10.70
  python main.py sla deadline high --created 2025-03-01T09:00:00Z
  python main.py --json sla status 2025-03-01T13:00:00Z --now 2025-03-01T14:05:00Z
        """,
    )
    parser.add_argument("--json", action="store_true", help="Output structured JSON")
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI color codes in terminal output")
    groups = parser.add_subparsers(dest="group", metavar="COMMAND", required=True)

    ip = groups.add_parser("ip", help="Address allocation checks").add_subparsers(
        dest="command", metavar="SUBCOMMAND", required=True
    )
    check = ip.add_parser("check", help="Validate an address (and optional MAC/email) against a subnet")
    check.add_argument("address", metavar="ADDRESS", help="IPv4 address to allocate")
    check.add_argument("--subnet", required=True, metavar="CIDR", help="Subnet in CIDR form, e.g. 10.0.0.0/24")
    check.add_argument("--mac", metavar="MAC", default=None, help="MAC address, e.g. AA:BB:CC:DD:EE:FF")
    check.add_argument("--email", metavar="EMAIL", default=None, help="Email of the assignee")
    check.set_defaults(handler=cmd_ip_check)

    subnet = groups.add_parser("subnet", help="Subnet arithmetic").add_subparsers(
        dest="command", metavar="SUBCOMMAND", required=True
    )
    info = subnet.add_parser("info", help="Show netmask, broadcast and usable range")
    info.add_argument("cidr", metavar="CIDR")
    info.add_argument("--contains", metavar="ADDRESS", default=None, help="Also report whether ADDRESS is inside")
    info.set_defaults(handler=cmd_subnet_info)

    sla = groups.add_parser("sla", help="SLA deadline arithmetic").add_subparsers(
        dest="command", metavar="SUBCOMMAND", required=True
    )
    deadline = sla.add_parser("deadline", help="Deadline for a priority under the default policy")
    deadline.add_argument("priority", metavar="PRIORITY", help="critical, high, medium or low")
    deadline.add_argument("--created", type=_iso_datetime, default=None, metavar="ISO", help="Creation time (default: now)")
    deadline.set_defaults(handler=cmd_sla_deadline)

    status = sla.add_parser("status", help="Breach state and time remaining for a deadline")
    status.add_argument("deadline", type=_iso_datetime, metavar="DEADLINE", help="ISO 8601 deadline")
    status.add_argument("--status", choices=TICKET_STATUSES, default="open", help="Ticket status (default: open)")
    status.add_argument("--now", type=_iso_datetime, default=None, metavar="ISO", help="Evaluation time (default: now)")
    status.set_defaults(handler=cmd_sla_status)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # Apply color preference before any output
    if args.no_color:
        disable_color()

    try:
        title, rows, payload = args.handler(args)
    except DeskError as exc:
        if args.json:
            print(json.dumps({"error": exc.to_dict()}, indent=2))
        else:
            print(render_error(exc.code, exc.message, exc.field))
        return 1

    if args.json:
        print(json.dumps(payload, indent=2))
    else:
        print(render_block(title, rows))
    return 0


if __name__ == "__main__":
    sys.exit(main())
