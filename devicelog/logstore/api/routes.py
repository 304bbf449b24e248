"""
HTTP routes for the device log.

Every route is a thin translation between a request and one LogService
call. Devices talk to these endpoints directly, so paths and response
envelopes follow the historical server:

    POST   /api/logger, /log, /logs   add an entry (JSON body or query params)
    GET    /api/logger, /log, /logs   list entries (?limit, ?offset, ?source, ?name)
    DELETE /api/logger, /log, /logs   clear all entries
    GET    /api/logger/stats, /stats  statistics
    GET    /api/logger/location       latest location of ?source
    GET    /quick                     add an entry from query params, stamped now
    GET    /health                    liveness
"""

import json
import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..store import EntryValidationError, LogService, format_timestamp, parse_client_datetime

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Device Log"])

ENTRY_PATHS = ("/api/logger", "/log", "/logs")
STATS_PATHS = ("/api/logger/stats", "/stats")


# --- Request models ---


class AddEntryRequest(BaseModel):
    """Request to add an entry."""

    model_config = ConfigDict(extra="ignore")

    datetime: str = Field("", description="RFC3339 or YYYY-MM-DDTHH:MM:SS")
    transaction: str = Field("", description="Transaction tag")
    name: str = Field("", description="Field name")
    value: Any = Field(None, description="Value of any JSON type, stored as text")
    source: str = Field("", description="Emitting device")
    note: str = Field("", description="Note text for note transactions")


# --- Dependencies ---


def get_service(request: Request) -> LogService:
    """Get the log service from app state."""
    return request.app.state.log_service


def _int_param(raw: str | None, default: int | None) -> int | None:
    """Parse an integer query parameter, falling back to default when invalid."""
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


async def _read_add_request(request: Request) -> AddEntryRequest:
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("application/json"):
            try:
                body = await request.json()
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise EntryValidationError(f"Invalid JSON: {e}") from e
            return AddEntryRequest.model_validate(body)
        # Plain devices send GET-style query params even on POST
        return AddEntryRequest.model_validate(dict(request.query_params))
    except ValidationError as e:
        raise EntryValidationError(f"Invalid JSON: {e.errors()[0]['msg']}") from e


# --- Entry endpoints ---


async def add_entry(
    request: Request,
    service: LogService = Depends(get_service),
) -> dict[str, Any]:
    """Add an entry from a JSON body or query parameters."""
    payload = await _read_add_request(request)
    entry_id = await service.add_entry(
        parse_client_datetime(payload.datetime),
        transaction=payload.transaction,
        name=payload.name,
        value=payload.value,
        source=payload.source,
        note=payload.note,
    )
    return {"success": True, "message": "Log entry created successfully", "id": entry_id}


async def list_entries(
    limit: str | None = Query(None),
    offset: str | None = Query(None),
    source: str = Query(""),
    name: str = Query(""),
    service: LogService = Depends(get_service),
) -> dict[str, Any]:
    """List entries with optional source/name filters."""
    page = await service.list_entries(
        limit=_int_param(limit, None),
        offset=_int_param(offset, 0),
        source=source,
        name=name,
    )
    return {
        "success": True,
        "entries": [e.to_dict() for e in page.entries],
        "total": page.total,
        "limit": page.limit,
        "offset": page.offset,
    }


async def clear_entries(service: LogService = Depends(get_service)) -> dict[str, Any]:
    """Remove all entries."""
    await service.clear_entries()
    return {"success": True, "message": "All log entries cleared"}


for _index, _path in enumerate(ENTRY_PATHS):
    _documented = _index == 0
    router.add_api_route(_path, add_entry, methods=["POST"], include_in_schema=_documented)
    router.add_api_route(_path, list_entries, methods=["GET"], include_in_schema=_documented)
    router.add_api_route(_path, clear_entries, methods=["DELETE"], include_in_schema=_documented)


# --- Aggregates ---


async def get_stats(service: LogService = Depends(get_service)) -> dict[str, Any]:
    """Entry counts and the distinct sources and names."""
    stats = await service.get_stats()
    return {"success": True, **stats.to_dict()}


for _index, _path in enumerate(STATS_PATHS):
    router.add_api_route(_path, get_stats, methods=["GET"], include_in_schema=_index == 0)


@router.get("/api/logger/location")
async def get_location(
    source: str = Query(""),
    service: LogService = Depends(get_service),
) -> dict[str, Any]:
    """Latest declared location of a source."""
    location, found = await service.resolve_location(source)
    return {"success": True, "source": source, "location": location, "found": found}


# --- Device shortcuts ---


@router.get("/quick")
async def quick_log(
    name: str = Query(""),
    value: str = Query(""),
    source: str = Query(""),
    transaction: str = Query(""),
    note: str = Query(""),
    service: LogService = Depends(get_service),
) -> dict[str, Any]:
    """Add an entry from query parameters, timestamped with server time.

    Example: GET /quick?name=temp&value=25.5&source=arduino-1
    """
    entry_id = await service.add_entry(
        datetime.now().astimezone(),
        transaction=transaction,
        name=name,
        value=value,
        source=source,
        note=note,
    )
    return {"success": True, "message": "Log entry created successfully", "id": entry_id}


@router.get("/health")
async def health() -> dict[str, Any]:
    return {"status": "ok", "time": format_timestamp(datetime.now().astimezone())}
