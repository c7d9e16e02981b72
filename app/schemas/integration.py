"""Resolved per-user integration configuration."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class IntegrationConfig(BaseModel):
    """Voiceflow settings for one user, as held in the process-wide cache."""

    user_id: UUID
    project_id: str
    version_id: str = "latest"
    api_key: Optional[str] = Field(default=None, repr=False)

    model_config = {"frozen": True}
