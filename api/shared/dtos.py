"""Shared DTOs for the MediTrack API."""
from datetime import datetime, timezone
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseDTO(BaseModel):
    """Base DTO with common configuration."""

    model_config = ConfigDict(from_attributes=True)


class HealthCheckResponse(BaseDTO):
    """Health check response DTO."""

    status: str = Field(description="Service status")
    timestamp: datetime = Field(default_factory=utcnow)
    version: str = Field(default="0.1.0")
    dependencies: Dict[str, str] = Field(default_factory=dict)
