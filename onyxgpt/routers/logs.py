"""
Log center API: read-only view of the API-call telemetry log.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import Response

from onyxgpt import telemetry
from onyxgpt.dependencies import enforce_auth

router = APIRouter(prefix="/logs", tags=["logs"])


@router.get("")
async def list_logs(
    request: Request,
    limit: Optional[int] = Query(default=None, ge=0, le=telemetry.MAX_LOG_ENTRIES),
    type: Optional[str] = None,
) -> Dict[str, Any]:
    """Newest-first entries, optionally filtered by entry type."""
    enforce_auth(request)
    entries = telemetry.get_logs(limit=limit, log_type=type)
    return {"entries": entries, "count": len(entries)}


@router.get("/export")
async def export_logs(request: Request) -> Response:
    enforce_auth(request)
    return Response(
        content=telemetry.export_logs(),
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="onyxgpt-logs.json"'},
    )
