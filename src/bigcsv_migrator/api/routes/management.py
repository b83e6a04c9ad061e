"""Migration management routes."""

from __future__ import annotations

from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Path, Request, Response
from fastapi.responses import JSONResponse

from bigcsv_migrator.api.dependencies import get_cluster_forwarder, get_management_service
from bigcsv_migrator.application.services import ManagementService
from bigcsv_migrator.domain.errors import (
    ClusterForwardError,
    ConflictError,
    MigrationValidationError,
    NotFoundError,
)
from bigcsv_migrator.domain.management_models import (
    ArtifactPreviewResponse,
    BatchListResponse,
    BatchResponse,
    FileTaskListResponse,
    FileTaskResponse,
    GlobalVerifyResponse,
    JobCreateRequest,
    JobListResponse,
    JobResponse,
    OwnerKind,
    OwnerResponse,
    SplitListResponse,
    SplitResponse,
)
from bigcsv_migrator.infrastructure.cluster import FORWARDED_HEADER, ClusterForwarder

router = APIRouter(prefix="/management", tags=["migration management"])


def _raise_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, MigrationValidationError):
        raise HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ClusterForwardError):
        raise HTTPException(status_code=502, detail=str(exc))
    raise HTTPException(status_code=500, detail="Unexpected migration error")


async def _forward_if_remote(
    request: Request,
    kind: OwnerKind,
    record_id: int,
    service: ManagementService,
    forwarder: ClusterForwarder,
) -> JSONResponse | None:
    """Relay the request to the owning node, or return None to run it here."""

    if request.headers.get(FORWARDED_HEADER):
        return None
    owner = await service.find_owner(kind, record_id)
    if owner.local:
        return None
    forwarded = await forwarder.forward(
        owner.node_id,
        request.method,
        request.url.path,
        params=dict(request.query_params),
    )
    return JSONResponse(status_code=forwarded.status_code, content=forwarded.payload)


@router.post("/jobs", response_model=JobResponse, status_code=201)
async def create_job(
    body: JobCreateRequest,
    service: ManagementService = Depends(get_management_service),
) -> JobResponse:
    """Create a migration job watching a source directory."""

    try:
        return await service.create_job(body)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.get("/jobs", response_model=JobListResponse, status_code=200)
async def list_jobs(
    service: ManagementService = Depends(get_management_service),
) -> JobListResponse:
    try:
        return await service.list_jobs()
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.get("/jobs/{job_id}", response_model=JobResponse, status_code=200)
async def get_job(
    job_id: int = Path(...),
    service: ManagementService = Depends(get_management_service),
) -> JobResponse:
    try:
        return await service.get_job(job_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.delete("/jobs/{job_id}", status_code=204)
async def delete_job(
    job_id: int = Path(...),
    service: ManagementService = Depends(get_management_service),
) -> Response:
    """Delete a job, its records and its target connection pool."""

    try:
        await service.delete_job(job_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return Response(status_code=204)


@router.post("/jobs/{job_id}/stop", response_model=JobResponse, status_code=200)
async def stop_job(
    job_id: int = Path(...),
    service: ManagementService = Depends(get_management_service),
) -> JobResponse:
    """Stop a job; running workers give up at their next checkpoint."""

    try:
        return await service.stop_job(job_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.post("/jobs/{job_id}/pause", response_model=JobResponse, status_code=200)
async def pause_job(
    job_id: int = Path(...),
    service: ManagementService = Depends(get_management_service),
) -> JobResponse:
    try:
        return await service.pause_job(job_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.post("/jobs/{job_id}/resume", response_model=JobResponse, status_code=200)
async def resume_job(
    job_id: int = Path(...),
    service: ManagementService = Depends(get_management_service),
) -> JobResponse:
    try:
        return await service.resume_job(job_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.get("/jobs/{job_id}/batches", response_model=BatchListResponse, status_code=200)
async def list_batches(
    job_id: int = Path(...),
    service: ManagementService = Depends(get_management_service),
) -> BatchListResponse:
    try:
        return await service.list_batches(job_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.get("/jobs/{job_id}/global-verify", response_model=GlobalVerifyResponse, status_code=200)
async def global_verify(
    job_id: int = Path(...),
    service: ManagementService = Depends(get_management_service),
) -> GlobalVerifyResponse:
    """Reconcile source, split and target row totals per table."""

    try:
        return await service.global_verify(job_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.get("/batches/{batch_id}/file-tasks", response_model=FileTaskListResponse, status_code=200)
async def list_file_tasks(
    batch_id: int = Path(...),
    service: ManagementService = Depends(get_management_service),
) -> FileTaskListResponse:
    try:
        return await service.list_file_tasks(batch_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.post("/batches/{batch_id}/close", response_model=BatchResponse, status_code=200)
async def close_batch(
    batch_id: int = Path(...),
    service: ManagementService = Depends(get_management_service),
) -> BatchResponse:
    """Finish a batch whose file tasks all settled, accepting their errors."""

    try:
        return await service.close_batch(batch_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.get("/file-tasks/{file_task_id}/splits", response_model=SplitListResponse, status_code=200)
async def list_splits(
    file_task_id: int = Path(...),
    service: ManagementService = Depends(get_management_service),
) -> SplitListResponse:
    try:
        return await service.list_splits(file_task_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.post(
    "/file-tasks/{file_task_id}/retry-transcode",
    response_model=FileTaskResponse,
    status_code=200,
)
async def retry_transcode(
    request: Request,
    file_task_id: int = Path(...),
    service: ManagementService = Depends(get_management_service),
    forwarder: ClusterForwarder = Depends(get_cluster_forwarder),
) -> FileTaskResponse | JSONResponse:
    """Send a failed file back to transcoding on its owning node."""

    try:
        forwarded = await _forward_if_remote(
            request, OwnerKind.FILE_TASK, file_task_id, service, forwarder
        )
        if forwarded is not None:
            return forwarded
        return await service.retry_transcode(file_task_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.get(
    "/file-tasks/{file_task_id}/errors",
    response_model=ArtifactPreviewResponse,
    status_code=200,
)
async def preview_errors(
    request: Request,
    file_task_id: int = Path(...),
    service: ManagementService = Depends(get_management_service),
    forwarder: ClusterForwarder = Depends(get_cluster_forwarder),
) -> ArtifactPreviewResponse | JSONResponse:
    """Return the head of the transcode error file, read on the owning node."""

    try:
        forwarded = await _forward_if_remote(
            request, OwnerKind.FILE_TASK, file_task_id, service, forwarder
        )
        if forwarded is not None:
            return forwarded
        return await service.preview_errors(file_task_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.post("/splits/{split_id}/retry", response_model=SplitResponse, status_code=200)
async def retry_split(
    request: Request,
    split_id: int = Path(...),
    service: ManagementService = Depends(get_management_service),
    forwarder: ClusterForwarder = Depends(get_cluster_forwarder),
) -> SplitResponse | JSONResponse:
    """Return a failed split to its waiting status on its owning node."""

    try:
        forwarded = await _forward_if_remote(request, OwnerKind.SPLIT, split_id, service, forwarder)
        if forwarded is not None:
            return forwarded
        return await service.retry_split(split_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.get("/splits/{split_id}/diff", response_model=ArtifactPreviewResponse, status_code=200)
async def preview_diff(
    request: Request,
    split_id: int = Path(...),
    service: ManagementService = Depends(get_management_service),
    forwarder: ClusterForwarder = Depends(get_cluster_forwarder),
) -> ArtifactPreviewResponse | JSONResponse:
    try:
        forwarded = await _forward_if_remote(request, OwnerKind.SPLIT, split_id, service, forwarder)
        if forwarded is not None:
            return forwarded
        return await service.preview_diff(split_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.get("/owners/{kind}/{record_id}", response_model=OwnerResponse, status_code=200)
async def find_owner(
    kind: OwnerKind = Path(...),
    record_id: int = Path(...),
    service: ManagementService = Depends(get_management_service),
) -> OwnerResponse:
    """Return the node owning a batch, file task or split."""

    try:
        return await service.find_owner(kind, record_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


__all__ = ["router"]
