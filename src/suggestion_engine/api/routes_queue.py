"""Background auto-connect queue endpoints, including an SSE event stream."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from suggestion_engine.api.dependencies import get_queue
from suggestion_engine.models.schemas import (
    EnqueueRequest,
    EnqueueResponse,
    JobResponse,
    QueueStatusResponse,
    RelationshipSuggestionsResponse,
)
from suggestion_engine.queue.auto_connect import BackgroundSuggestionQueue

router = APIRouter(prefix="/queue")


@router.post("/jobs", response_model=EnqueueResponse)
async def enqueue(
    request: EnqueueRequest,
    queue: BackgroundSuggestionQueue = Depends(get_queue),
) -> EnqueueResponse:
    job_id = queue.enqueue(request.working_set.to_domain(), request.item_id)
    return EnqueueResponse(job_id=job_id, accepted=job_id is not None)


@router.get("/status", response_model=QueueStatusResponse)
async def status(queue: BackgroundSuggestionQueue = Depends(get_queue)) -> QueueStatusResponse:
    current = queue.get_status()
    return QueueStatusResponse(
        pending=current.pending,
        processing=current.processing,
        completed=current.completed,
        failed=current.failed,
        running=current.running,
        current_item_id=current.current_item_id,
        jobs=[JobResponse.from_domain(j) for j in queue.jobs()],
    )


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, queue: BackgroundSuggestionQueue = Depends(get_queue)) -> JobResponse:
    job = queue.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return JobResponse.from_domain(job)


@router.get("/items/{item_id}/suggestions", response_model=RelationshipSuggestionsResponse)
async def item_suggestions(
    item_id: str, queue: BackgroundSuggestionQueue = Depends(get_queue)
) -> RelationshipSuggestionsResponse:
    return RelationshipSuggestionsResponse(suggestions=queue.get_suggestions_for_item(item_id))


@router.delete("/jobs/{job_id}")
async def cancel_job(job_id: str, queue: BackgroundSuggestionQueue = Depends(get_queue)) -> dict:
    if not queue.cancel_job(job_id):
        raise HTTPException(status_code=409, detail=f"Job {job_id} is not pending")
    return {"cancelled": job_id}


@router.delete("/jobs")
async def clear(queue: BackgroundSuggestionQueue = Depends(get_queue)) -> dict:
    return {"removed": queue.clear()}


async def event_stream(queue: BackgroundSuggestionQueue) -> AsyncIterator[str]:
    """Format suggestions-ready events as SSE frames.

    The subscription opens when the client starts reading and closes with the stream.
    """
    with queue.subscribe() as subscription:
        async for event in subscription:
            data = json.dumps(
                {
                    "job_id": event.job_id,
                    "item_id": event.item_id,
                    "suggestions": [s.model_dump(mode="json") for s in event.suggestions],
                    "auto_apply_candidates": event.auto_apply_candidates,
                    "timestamp": event.timestamp.isoformat(),
                }
            )
            yield f"event: suggestions_ready\ndata: {data}\n\n"


@router.get("/events")
async def events(queue: BackgroundSuggestionQueue = Depends(get_queue)):
    """Stream suggestions-ready events via Server-Sent Events."""
    return StreamingResponse(
        event_stream(queue),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
