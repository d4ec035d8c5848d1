"""
Package Router

Upload, ordering, merge and download endpoints for SCORM packages.
Merge progress is pushed to the session's WebSocket when one is connected.
"""

import logging
import time
import uuid
from pathlib import Path
from typing import List, Optional

import aiofiles
from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from app.config import get_settings
from app.models.package import (
    MergeResponse,
    PackageRecord,
    ReorderRequest,
    SessionRequest,
    UploadResponse,
)
from app.services.exceptions import MergeError, ParseError
from app.services.scorm_merge import scorm_merge_service
from app.services.session_store import session_store
from app.utils.validation import (
    safe_download_name,
    safe_upload_name,
    validate_upload,
)

router = APIRouter()
logger = logging.getLogger(__name__)

DOWNLOAD_NAME = "merged-scorm-package.zip"


async def _store_upload(file: UploadFile, content: bytes) -> Path:
    settings = get_settings()
    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    stamp = int(time.time() * 1000)
    path = settings.upload_dir / f"{stamp}-{safe_upload_name(file.filename)}"
    async with aiofiles.open(path, "wb") as f:
        await f.write(content)
    return path


@router.post("/upload", response_model=UploadResponse, summary="Upload SCORM Packages")
async def upload_packages(
    scormPackages: List[UploadFile] = File(..., description="SCORM ZIP archives"),
    sessionId: Optional[str] = Form(None, description="Upload session id"),
) -> UploadResponse:
    """
    Upload one or more SCORM packages into a session

    Every archive is stored and parsed. Packages whose manifest cannot be
    read are still returned, with an ``error`` explaining why they will be
    excluded from the merge.
    """
    settings = get_settings()
    logger.info(f"Upload request received for session {sessionId}: {len(scormPackages)} files")

    if not scormPackages:
        raise HTTPException(status_code=400, detail="No files uploaded")
    if len(scormPackages) > settings.max_upload_files:
        raise HTTPException(
            status_code=400,
            detail=f"Too many files. Maximum is {settings.max_upload_files} files.",
        )

    session = session_store.get_or_create(sessionId)
    packages: List[PackageRecord] = []

    for file in scormPackages:
        content = await file.read()
        is_valid, message = validate_upload(file.filename, file.content_type, len(content))
        if not is_valid:
            raise HTTPException(status_code=400, detail=message)

        path = await _store_upload(file, content)
        package_id = uuid.uuid4().hex
        try:
            metadata = await scorm_merge_service.validate_and_parse_package(
                path, file.filename
            )
            packages.append(
                PackageRecord(id=package_id, path=str(path), **metadata.model_dump())
            )
        except ParseError as e:
            logger.warning(f"Error processing file {file.filename}: {e}")
            packages.append(
                PackageRecord(
                    id=package_id,
                    filename=file.filename,
                    path=str(path),
                    error=str(e),
                )
            )

    session.packages = packages
    logger.info(
        f"Upload successful: {len(session.valid_packages)} of {len(packages)} packages valid"
    )
    return UploadResponse(sessionId=session.id, packages=packages)


@router.post("/reorder", summary="Reorder Session Packages")
async def reorder_packages(request: ReorderRequest):
    """
    Replace the package order of a session

    Packages are matched by id against the uploaded records; client-side
    edits to title and description are kept, storage paths are not.
    """
    if not request.sessionId:
        raise HTTPException(status_code=400, detail="Session ID is required")
    if request.packages is None:
        raise HTTPException(status_code=400, detail="Packages are required")

    session = session_store.get_or_create(request.sessionId)
    ordered: List[PackageRecord] = []
    for incoming in request.packages:
        existing = session.find_package(incoming.id)
        if existing is None:
            raise HTTPException(
                status_code=400, detail=f"Unknown package id: {incoming.id}"
            )
        ordered.append(
            existing.model_copy(
                update={
                    "title": incoming.title,
                    "description": incoming.description,
                }
            )
        )

    session.packages = ordered
    logger.info(f"Packages reordered successfully for session: {request.sessionId}")
    return {"success": True}


@router.post("/merge", response_model=MergeResponse, summary="Merge Session Packages")
async def merge_packages(request: SessionRequest) -> MergeResponse:
    """
    Merge the session's valid packages in their current order

    Progress milestones are pushed over the session WebSocket as
    ``{"type": "progress", "progress": {"step", "progress"}}`` messages.
    """
    session = session_store.get_or_create(request.sessionId)
    valid_packages = session.valid_packages

    if not valid_packages:
        raise HTTPException(status_code=400, detail="No valid SCORM packages to merge")

    async def on_progress(progress: dict) -> None:
        await session.send({"type": "progress", "progress": progress})

    try:
        output_path = await scorm_merge_service.merge_packages(
            valid_packages, on_progress
        )
    except MergeError as e:
        logger.error(f"SCORM merge failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return MergeResponse(downloadUrl=f"/api/v1/download/{output_path.name}")


@router.get("/download/{filename}", summary="Download Merged Package")
async def download_package(filename: str):
    """Stream a merged package once; the file is deleted after sending"""
    safe_name = safe_download_name(filename)
    if safe_name is None:
        raise HTTPException(status_code=404, detail="File not found")

    path = get_settings().temp_dir / safe_name
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")

    return FileResponse(
        path,
        media_type="application/zip",
        filename=DOWNLOAD_NAME,
        background=BackgroundTask(path.unlink, missing_ok=True),
    )
