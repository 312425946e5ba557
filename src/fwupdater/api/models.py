"""Pydantic models for HTTP API requests and responses."""

from typing import List, Optional
from pydantic import BaseModel, Field

from fwupdater.models.status import ActivationState, RequestedActivation, VersionPurpose


class ImageNotification(BaseModel):
    """POST /api/v1.0/software/notify payload.

    Sent when an image has been uploaded or discovered. Fields are optional
    on purpose: malformed notifications are accepted and ignored.

    Example:
        {
            "purpose": "xyz.openbmc_project.Software.Version.VersionPurpose.Host",
            "version": "2.0.1",
            "path": "/tmp/images/4b1e0b4c"
        }
    """

    purpose: Optional[str] = Field(
        None,
        description="Version purpose (BMC, Host, Auxiliary, System)",
        examples=["BMC", "xyz.openbmc_project.Software.Version.VersionPurpose.Host"],
    )
    version: Optional[str] = Field(None, description="Version string", examples=["2.0.1"])
    path: Optional[str] = Field(
        None, description="Directory holding the staged image", examples=["/tmp/images/4b1e0b4c"]
    )


class RequestedActivationRequest(BaseModel):
    """PUT /api/v1.0/software/{id}/requested-activation payload."""

    value: RequestedActivation = Field(..., description="Requested activation")


class PriorityRequest(BaseModel):
    """PUT /api/v1.0/software/{id}/priority payload."""

    priority: int = Field(..., ge=0, le=255, description="Redundancy priority (0 boots first)")


class HostVersionRequest(BaseModel):
    """POST /api/v1.0/software/host-version payload."""

    version: str = Field(..., description="Running host firmware version", examples=["2.0"])


class FieldModeRequest(BaseModel):
    """PUT /api/v1.0/field-mode payload."""

    enabled: bool = Field(..., description="Field mode latch (can only be enabled)")


class JobRemovedSignal(BaseModel):
    """POST /api/v1.0/systemd/job-removed payload.

    Result is one of done, canceled, timeout, failed, dependency, skipped.
    """

    id: int = Field(0, description="Job id")
    job: str = Field("", description="Job object path")
    unit: str = Field(..., description="Unit name", examples=["bios-update.service"])
    result: str = Field(..., description="Job result", examples=["done", "failed"])


class SoftwareData(BaseModel):
    """Published view of one version and its activation."""

    id: str
    version: str
    purpose: VersionPurpose
    path: str
    source_path: str = Field("", description="Staged image directory, empty once consumed")
    functional: bool
    activation: ActivationState
    requested_activation: RequestedActivation
    progress: Optional[int] = Field(None, ge=0, le=100, description="Only while Activating")
    priority: Optional[int] = Field(None, ge=0, le=255, description="Only while Active")
    blocks_transition: bool = False
    error: Optional[str] = None


class AssociationData(BaseModel):
    forward: str
    reverse: str
    path: str


class SoftwareListResponse(BaseModel):
    code: int = Field(default=200, description="Application-level status code")
    msg: str = Field(default="success")
    data: List[SoftwareData]


class SoftwareResponse(BaseModel):
    code: int = Field(default=200, description="Application-level status code")
    msg: str = Field(default="success")
    data: SoftwareData


class AssociationListResponse(BaseModel):
    code: int = Field(default=200, description="Application-level status code")
    msg: str = Field(default="success")
    data: List[AssociationData]


class SuccessResponse(BaseModel):
    """Success response for command endpoints."""

    code: int = Field(default=200, description="Application-level status code (200)")
    msg: str = Field(default="success", description="Success message")
    data: Optional[dict] = Field(None, description="Optional response data")


class ErrorResponse(BaseModel):
    """Error response for all endpoints.

    HTTP status code is always 200, real status in 'code' field.
    """

    code: int = Field(..., description="Application-level error code (400/403/404/409/500)")
    msg: str = Field(..., description="Error message with error code prefix")
