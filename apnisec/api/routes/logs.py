from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, Depends, Query

from apnisec.adapters.users.base import User
from apnisec.core.auth import get_current_user
from apnisec.core.dependencies import get_request_event_logger
from apnisec.core.event_logger import StructuredLogger
from apnisec.schemas.logs import LogsData, LogsResponse

router = APIRouter(tags=["Logs"])


@router.get("/logs", response_model=LogsResponse)
async def get_logs(
    count: int = Query(100, ge=1, le=1000, description="Maximum number of entries to return."),
    level: Literal["debug", "info", "warn", "error"] | None = Query(
        None,
        description="Only return entries at or above this level.",
    ),
    user: User = Depends(get_current_user),
    events: StructuredLogger = Depends(get_request_event_logger),
) -> LogsResponse:
    """Return the most recent in-memory event log entries (oldest first).

    Entries evicted from the ring buffer are gone; this is an inspection aid,
    not an archive.
    """
    entries = events.get_recent_logs(count, level)

    events.info(
        "Logs retrieved",
        context="LogsAPI",
        user_id=user.id,
        metadata={"count": len(entries), "level": level},
    )

    return LogsResponse(
        data=LogsData(
            logs=[entry.to_dict() for entry in entries],
            total=len(entries),
            retrieved_at=datetime.now(timezone.utc),
        )
    )
