"""
api/dependencies.py -- FastAPI Depends() helpers shared by the v1 routers.

Stores and the clock live on app.state (set up in api/main.py lifespan), so
handlers reach them through these helpers instead of importing globals. Tests
swap them by patching the lifespan.

The clock is a zero-argument callable returning an aware UTC datetime. Every
SLA calculation in a request uses one reading of it, taken once per request.

Layer rule: no imports from api/routes/ or the top-level main.py CLI.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from fastapi import HTTPException, Request
from pydantic import BaseModel

from api.models import ErrorDetail
from cmdb.store import CMDBStore
from core.config import get_settings
from helpdesk.store import HelpdeskStore


def get_helpdesk(request: Request) -> HelpdeskStore:
    return request.app.state.helpdesk


def get_cmdb(request: Request) -> CMDBStore:
    return request.app.state.cmdb


def request_now(request: Request) -> datetime:
    """Read the injected clock once for this request."""
    return request.app.state.clock()


def warning_window() -> timedelta:
    return timedelta(hours=get_settings().sla_warning_hours)


def changed_fields(body: BaseModel, nullable: frozenset[str] = frozenset()) -> dict:
    """Return the fields a PATCH body actually set, with enums unwrapped.

    An explicit null is kept only for fields in nullable; for the rest it is
    treated as "not sent".
    """
    fields = {}
    for key, value in body.model_dump(exclude_unset=True).items():
        if value is None and key not in nullable:
            continue
        fields[key] = value.value if isinstance(value, Enum) else value
    return fields


def not_found(code: str, message: str) -> HTTPException:
    """Build a 404 carrying the standard error envelope. Callers raise it."""
    return HTTPException(
        status_code=404,
        detail=ErrorDetail(code=code, message=message).model_dump(),
    )
