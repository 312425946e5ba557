"""Persisted per-version sidecar record."""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from fwupdater.models.status import VersionPurpose


class PersistedVersionState(BaseModel):
    """Stored at <persist_dir>/<version_id>.json.

    Survives restarts so discovery can restore boot priority and purpose.
    """

    model_config = ConfigDict(validate_assignment=True)

    priority: Optional[int] = Field(
        None, ge=0, le=255, description="Redundancy priority (0 boots first)"
    )
    purpose: Optional[VersionPurpose] = Field(
        None, description="Firmware class of the version"
    )
