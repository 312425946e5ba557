"""API route handlers publishing versions, activations and associations."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from fwupdater.api.models import (
    AssociationData,
    AssociationListResponse,
    ErrorResponse,
    FieldModeRequest,
    HostVersionRequest,
    ImageNotification,
    JobRemovedSignal,
    PriorityRequest,
    RequestedActivationRequest,
    SoftwareData,
    SoftwareListResponse,
    SoftwareResponse,
    SuccessResponse,
)
from fwupdater.errors import NotAllowed
from fwupdater.services.activation import JobRemoved
from fwupdater.services.item_updater import ItemUpdater

router = APIRouter(prefix="/api/v1.0")


def get_item_updater(request: Request) -> ItemUpdater:
    """Orchestrator created by the application lifespan."""
    return request.app.state.item_updater


def _error(code: int, msg: str) -> JSONResponse:
    return JSONResponse(status_code=200, content=ErrorResponse(code=code, msg=msg).model_dump())


def _success(data=None) -> JSONResponse:
    return JSONResponse(status_code=200, content={"code": 200, "msg": "success", "data": data})


def _software_data(updater: ItemUpdater, version_id: str) -> SoftwareData:
    version = updater.versions[version_id]
    activation = updater.activations[version_id]
    return SoftwareData(
        id=version_id,
        version=version.version,
        purpose=version.purpose,
        path=version.path,
        source_path=version.source_path,
        functional=version.is_functional,
        activation=activation.state,
        requested_activation=activation.requested_activation,
        progress=activation.progress,
        priority=activation.priority,
        blocks_transition=activation.blocks_transition,
        error=activation.error,
    )


def _not_found(version_id: str) -> JSONResponse:
    return _error(404, f"Version not found: {version_id}")


@router.get("/software", response_model=SoftwareListResponse)
async def list_software(updater: ItemUpdater = Depends(get_item_updater)):
    """GET /api/v1.0/software - List every known version.

    Response format:
        {
            "code": 200,
            "msg": "success",
            "data": [
                {
                    "id": "4b1e0b4c",
                    "version": "2.0.1",
                    "purpose": "Host",
                    "activation": "Activating",
                    "progress": 30,
                    "priority": null,
                    ...
                }
            ]
        }
    """
    data = [
        _software_data(updater, vid)
        for vid in updater.versions
        if vid in updater.activations
    ]
    return SoftwareListResponse(data=data)


@router.get("/software/{version_id}", response_model=SoftwareResponse)
async def get_software(version_id: str, updater: ItemUpdater = Depends(get_item_updater)):
    """GET /api/v1.0/software/{id} - One version and its activation."""
    if version_id not in updater.versions or version_id not in updater.activations:
        return _not_found(version_id)
    return SoftwareResponse(data=_software_data(updater, version_id))


@router.put("/software/{version_id}/requested-activation", response_model=SoftwareResponse)
async def put_requested_activation(
    version_id: str,
    request: RequestedActivationRequest,
    updater: ItemUpdater = Depends(get_item_updater),
):
    """PUT /api/v1.0/software/{id}/requested-activation - Request activation.

    Requesting "Active" on a Ready or Failed version starts the write; the
    response carries the state reached so far (Activating while the write
    service runs, Failed if it could not be started).
    """
    activation = updater.activations.get(version_id)
    if activation is None or version_id not in updater.versions:
        return _not_found(version_id)

    await activation.request_activation(request.value)
    if version_id not in updater.activations:
        # evicted by a concurrent activation of the same class
        return _not_found(version_id)
    return SoftwareResponse(data=_software_data(updater, version_id))


@router.put("/software/{version_id}/priority", response_model=SoftwareResponse)
async def put_priority(
    version_id: str,
    request: PriorityRequest,
    updater: ItemUpdater = Depends(get_item_updater),
):
    """PUT /api/v1.0/software/{id}/priority - Change boot priority.

    Other versions of the same class holding the value are bumped.
    """
    activation = updater.activations.get(version_id)
    if activation is None or version_id not in updater.versions:
        return _not_found(version_id)
    if activation.redundancy_priority is None:
        return _error(409, f"Version {version_id} is not Active, it has no priority")

    activation.redundancy_priority.priority = request.priority
    return SoftwareResponse(data=_software_data(updater, version_id))


@router.delete("/software/{version_id}", response_model=SuccessResponse)
async def delete_software(version_id: str, updater: ItemUpdater = Depends(get_item_updater)):
    """DELETE /api/v1.0/software/{id} - Erase a version."""
    if version_id not in updater.versions and version_id not in updater.activations:
        return _not_found(version_id)
    if not updater.erase(version_id):
        return _error(403, f"NOT_ALLOWED: version {version_id} is running and cannot be removed")
    return _success()


@router.post("/software/delete-all", response_model=SuccessResponse)
async def post_delete_all(updater: ItemUpdater = Depends(get_item_updater)):
    """POST /api/v1.0/software/delete-all - Erase every non-functional version."""
    updater.delete_all()
    return _success()


@router.post("/software/notify", response_model=SuccessResponse)
async def post_notify(
    notification: ImageNotification, updater: ItemUpdater = Depends(get_item_updater)
):
    """POST /api/v1.0/software/notify - New image intake.

    Malformed notifications (missing version or path, unknown purpose) are
    ignored and still answered with code 200, data null.
    """
    version_id = updater.create_activation(
        notification.purpose, notification.version, notification.path
    )
    if version_id is None:
        return _success()
    return _success({"id": version_id})


@router.post("/software/host-version", response_model=SuccessResponse)
async def post_host_version(
    request: HostVersionRequest, updater: ItemUpdater = Depends(get_item_updater)
):
    """POST /api/v1.0/software/host-version - Report the running host version."""
    if not request.version:
        return _error(400, "Host version must contain data")
    updater.update_host_version(request.version)
    return _success()


@router.get("/associations", response_model=AssociationListResponse)
async def get_associations(updater: ItemUpdater = Depends(get_item_updater)):
    """GET /api/v1.0/associations - The whole association list."""
    data = [
        AssociationData(forward=a.forward, reverse=a.reverse, path=a.path)
        for a in updater.associations.published
    ]
    return AssociationListResponse(data=data)


@router.get("/field-mode", response_model=SuccessResponse)
async def get_field_mode(updater: ItemUpdater = Depends(get_item_updater)):
    return _success({"enabled": updater.field_mode_enabled})


@router.put("/field-mode", response_model=SuccessResponse)
async def put_field_mode(
    request: FieldModeRequest, updater: ItemUpdater = Depends(get_item_updater)
):
    """PUT /api/v1.0/field-mode - Enable the one-way field mode latch.

    Clearing an enabled latch answers code 403.
    """
    try:
        enabled = await updater.set_field_mode(request.enabled)
    except NotAllowed as e:
        return _error(403, str(e))
    return _success({"enabled": enabled})


@router.post("/reset", response_model=SuccessResponse)
async def post_reset(updater: ItemUpdater = Depends(get_item_updater)):
    """POST /api/v1.0/reset - Factory reset.

    Long running: blocks for the settle interval (10 s by default) and
    no other request is served meanwhile.
    """
    updater.reset()
    return _success()


@router.post("/systemd/job-removed", response_model=SuccessResponse)
async def post_job_removed(
    signal: JobRemovedSignal, updater: ItemUpdater = Depends(get_item_updater)
):
    """POST /api/v1.0/systemd/job-removed - Write service completion signal."""
    handled = await updater.dispatch_job_removed(
        JobRemoved(job_id=signal.id, job_path=signal.job, unit=signal.unit, result=signal.result)
    )
    return _success({"handled": handled})
