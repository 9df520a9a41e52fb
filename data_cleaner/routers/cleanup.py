"""API endpoints for synchronous and asynchronous table cleanup."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from .. import schemas
from ..config import Settings, get_settings
from ..dependencies import get_cleanup_engine, get_dispatcher
from ..errors import InvalidBatchSize, TaskAlreadyFinished
from ..services.cleanup_engine import CleanupEngine
from ..services.dispatcher import CleanupDispatcher


router = APIRouter(prefix="/api/v1", tags=["cleanup"])


def _prepare_request(payload: schemas.CleanupRequest, settings: Settings) -> schemas.CleanupRequest:
    """Apply the default batch size and the configured ceiling."""
    request = payload.with_default_batch_size(settings.default_batch_size)
    if request.batch_size > settings.max_batch_size:
        raise InvalidBatchSize(f"batch size must not exceed {settings.max_batch_size}")
    return request


@router.post("/cleanup", response_model=schemas.CleanupResult)
def run_cleanup(
    payload: schemas.CleanupRequest,
    engine: CleanupEngine = Depends(get_cleanup_engine),
    settings: Settings = Depends(get_settings),
) -> schemas.CleanupResult:
    """Delete stale rows and wait for the run to finish."""
    request = _prepare_request(payload, settings)
    return engine.clean_table(request, timeout=settings.sync_timeout)


@router.post("/cleanup/async", response_model=schemas.AsyncCleanupAccepted, status_code=202)
def start_async_cleanup(
    payload: schemas.CleanupRequest,
    dispatcher: CleanupDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
) -> schemas.AsyncCleanupAccepted:
    """Start a background cleanup and return the task identifier."""
    task_id = dispatcher.submit(_prepare_request(payload, settings))
    return schemas.AsyncCleanupAccepted(
        task_id=task_id,
        status_url=f"{router.prefix}/cleanup/{task_id}",
    )


@router.get("/cleanup/{task_id}", response_model=schemas.CleanupResult)
def get_cleanup_status(
    task_id: str,
    dispatcher: CleanupDispatcher = Depends(get_dispatcher),
) -> schemas.CleanupResult:
    return dispatcher.get_status(task_id)


@router.post("/cleanup/{task_id}/cancel", response_model=schemas.CleanupResult, status_code=202)
def cancel_cleanup(
    task_id: str,
    dispatcher: CleanupDispatcher = Depends(get_dispatcher),
) -> schemas.CleanupResult:
    """Ask a running task to stop after its current batch."""
    if not dispatcher.cancel(task_id):
        raise TaskAlreadyFinished(task_id)
    return dispatcher.get_status(task_id)
