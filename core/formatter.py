"""
core/formatter.py -- Renders core results for the terminal and tickets as CSV.
"""

import csv
import io
import os
import re
import sys
from datetime import datetime, timedelta
from typing import Optional

from .sla import DEFAULT_WARNING_WINDOW, breach_state, format_time_remaining, time_remaining

W = 60  # output width

# ---------------------------------------------------------------------------
# ANSI color control
# ---------------------------------------------------------------------------

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from a string."""
    return _ANSI_RE.sub("", text)


def _use_color() -> bool:
    """Return True if stdout is a TTY and color has not been disabled.

    Respects NO_COLOR env var (https://no-color.org) and FORCE_COLOR.
    """
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


_color_enabled: Optional[bool] = None  # None = auto-detect


def disable_color() -> None:
    """Force-disable color output (called when --no-color flag is set)."""
    global _color_enabled
    _color_enabled = False


def enable_color() -> None:
    global _color_enabled
    _color_enabled = True


def _color_active() -> bool:
    if _color_enabled is not None:
        return _color_enabled
    return _use_color()


STATE_COLORS = {
    "breached": "\033[91m",  # red
    "warning": "\033[93m",  # yellow
    "ok": "\033[92m",  # green
}

PRIORITY_COLORS = {
    "critical": "\033[91m",
    "high": "\033[93m",
    "medium": "\033[94m",
    "low": "\033[92m",
}


def _reset() -> str:
    return "\033[0m" if _color_active() else ""


def _bold() -> str:
    return "\033[1m" if _color_active() else ""


def _red() -> str:
    return "\033[91m" if _color_active() else ""


def colorize(text: str, color_code: str) -> str:
    if not _color_active() or not color_code:
        return text
    return f"{color_code}{text}{_reset()}"


def colorize_state(state: str) -> str:
    return colorize(state.upper(), STATE_COLORS.get(state, ""))


def colorize_priority(priority: str) -> str:
    return colorize(priority.upper(), PRIORITY_COLORS.get(priority, ""))


# ---------------------------------------------------------------------------
# Terminal blocks
# ---------------------------------------------------------------------------


def render_block(title: str, rows: list[tuple[str, str]]) -> str:
    """Render a titled key/value block. Keys are left-aligned to the longest key."""
    bold = _bold()
    reset = _reset()
    width = max((len(k) for k, _ in rows), default=0)
    lines = [f"\n  {bold}{title}{reset}", f"  {'─' * (W - 2)}"]
    for key, value in rows:
        lines.append(f"  {key.ljust(width)}  {value}")
    return "\n".join(lines) + "\n"


def render_error(code: str, message: str, field: Optional[str] = None) -> str:
    where = f" [{field}]" if field else ""
    return f"  {_red()}[!] {code}{where}{_reset()}: {message}"


# ---------------------------------------------------------------------------
# CSV export
# ---------------------------------------------------------------------------

# Spreadsheet applications evaluate cells starting with these as formulas
# (CWE-1236). Tab and CR are included because some apps strip them and then
# evaluate what follows.
_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _sanitize_csv_cell(value: object) -> str:
    """Neutralize formula-looking cells by prefixing a tab. None becomes ""."""
    if value is None:
        return ""
    text = str(value)
    if text.startswith(_FORMULA_PREFIXES):
        return "\t" + text
    return text


def tickets_to_csv(
    tickets: list,
    now: datetime,
    warning_window: timedelta = DEFAULT_WARNING_WINDOW,
) -> str:
    """Render tickets as CSV, one row per ticket.

    Columns: ticket_number, title, status, priority, category, department,
             submitter_email, assigned_to_email, created_at, sla_deadline,
             sla_state, sla_remaining

    Every cell passes through _sanitize_csv_cell(): titles and emails are
    user-supplied text.
    """
    headers = [
        "ticket_number",
        "title",
        "status",
        "priority",
        "category",
        "department",
        "submitter_email",
        "assigned_to_email",
        "created_at",
        "sla_deadline",
        "sla_state",
        "sla_remaining",
    ]

    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(headers)

    for t in tickets:
        state = breach_state(t.sla_deadline, now, t.status, warning_window)
        remaining = format_time_remaining(time_remaining(t.sla_deadline, now))
        row = [
            t.ticket_number,
            t.title,
            t.status,
            t.priority,
            t.category,
            t.department,
            t.submitter_email,
            t.assigned_to_email,
            t.created_at.isoformat() if t.created_at else "",
            t.sla_deadline.isoformat(),
            state,
            remaining,
        ]
        writer.writerow([_sanitize_csv_cell(cell) for cell in row])

    return buf.getvalue()
