"""Pydantic schemas for the log retrieval endpoint."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field


class LogsData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    logs: List[Dict[str, Any]] = Field(
        default_factory=list,
        description="Event log entries, oldest first, in the stable camelCase schema.",
    )
    total: int = Field(..., description="Number of entries returned.")
    retrieved_at: datetime = Field(..., alias="retrievedAt")


class LogsResponse(BaseModel):
    success: bool = True
    data: LogsData
