"""
Description Router

Starts, cancels and inspects background description generation for an
upload session. Progress and per-package results are pushed over the
session WebSocket and written back onto the session's package records.
"""

import logging

from fastapi import APIRouter, HTTPException

from app.models.package import DescriptionTaskResponse, SessionRequest
from app.services.description_tasks import description_task_manager
from app.services.session_store import session_store

router = APIRouter(prefix="/descriptions")
logger = logging.getLogger(__name__)


@router.post(
    "/generate",
    response_model=DescriptionTaskResponse,
    summary="Start Description Generation",
)
async def generate_descriptions(request: SessionRequest) -> DescriptionTaskResponse:
    """Start (or restart) description generation for a session"""
    session = session_store.get(request.sessionId)
    if session is None:
        raise HTTPException(status_code=400, detail="Session not found")
    if not session.valid_packages:
        raise HTTPException(status_code=400, detail="No valid SCORM packages to describe")

    async def on_progress(event: dict) -> None:
        await session.send({**event, "type": f"description_{event['type']}"})

    async def on_item_update(event: dict) -> None:
        pkg = session.find_package(event["packageId"])
        if pkg is not None:
            pkg.description = event["description"]
        await session.send(event)

    task_id = await description_task_manager.start_description_generation(
        session.id, session.packages, on_progress, on_item_update
    )
    status = description_task_manager.get_task_status(session.id)
    return DescriptionTaskResponse(taskId=task_id, total=status.total)


@router.post("/cancel", summary="Cancel Description Generation")
async def cancel_descriptions(request: SessionRequest):
    if not request.sessionId:
        raise HTTPException(status_code=400, detail="Session ID is required")
    cancelled = description_task_manager.cancel_task(request.sessionId)
    return {"success": True, "cancelled": cancelled}


@router.get("/status/{session_id}", summary="Get Description Task Status")
async def description_status(session_id: str):
    status = description_task_manager.get_task_status(session_id)
    return status.model_dump(mode="json", exclude_none=True)


@router.get("/results/{session_id}", summary="Get Generated Descriptions")
async def description_results(session_id: str):
    return {
        "sessionId": session_id,
        "results": description_task_manager.get_task_results(session_id),
    }
