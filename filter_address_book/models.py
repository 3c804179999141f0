"""Data models for directory responses and filter status."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationInfo, field_validator


class FilterStatus(str, Enum):
    """Runtime status of the filter process."""

    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class ScanResponse(BaseModel):
    """Body of a ``GET /scan/<mailbox>/<address>/`` response."""

    success: bool = Field(description="Whether the scan itself succeeded")
    message: str = Field(default="", description="Diagnostic message from the service")
    books: list[str] = Field(
        default_factory=list,
        description="Names of the address books containing the address",
    )

    @field_validator("message", "books", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any, info: ValidationInfo) -> Any:
        # filterctld sends null for an empty book list or message
        if value is None:
            return "" if info.field_name == "message" else []
        return value


class LookupStats(BaseModel):
    """Counters for directory lookups made by the controller."""

    lookups: int = 0
    hits: int = 0
    failures: int = 0
    headers_added: int = 0
    headers_suppressed: int = 0


class HealthStatus(BaseModel):
    """Response model for the /health endpoint."""

    filter_name: str = Field(description="Name of the filter")
    version: str = Field(description="Filter version")
    status: FilterStatus = Field(description="Current filter status")
    uptime_seconds: float = Field(description="Seconds since the filter started")
    active_sessions: int = Field(description="Sessions currently allocated")
    stats: LookupStats = Field(default_factory=LookupStats)
    details: dict[str, Any] = Field(default_factory=dict)
