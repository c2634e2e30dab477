import os
from typing import AsyncIterator, List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse

from file_registry_service import schemas
from file_registry_service.config import Settings
from file_registry_service.dependencies import (
    get_registry, get_settings, require_admin, require_member
)
from file_registry_service.exceptions import (
    BlobNotFound, Forbidden, IncompleteUpload, RecordNotFound, StorageIOError, UploadTooLarge
)
from file_registry_service.logging_config import get_logger
from file_registry_service.registry import NOT_FOUND_OR_FORBIDDEN, FileRegistry
from file_registry_service.stats import admin_summary

logger = get_logger(__name__)

router = APIRouter(
    tags=["files"],
)

CHUNK_SIZE = 1024 * 1024

async def _read_chunks(file: UploadFile) -> AsyncIterator[bytes]:
    while chunk := await file.read(CHUNK_SIZE):
        yield chunk

async def _stream_blob(blob) -> AsyncIterator[bytes]:
    try:
        while chunk := await blob.read(CHUNK_SIZE):
            yield chunk
    finally:
        await blob.close()

def _attachment(filename: str) -> str:
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'

def _server_error(error: StorageIOError) -> HTTPException:
    logger.error(f"Storage failure: {error}")
    return HTTPException(status_code=500, detail="Internal server error")

@router.post("/upload", response_model=schemas.UploadResult)
@router.post("/upload-with-category", response_model=schemas.UploadResult)
async def upload_file(
    request: Request,
    file: UploadFile = File(...),
    category: Optional[str] = Form(None),
    principal: schemas.Principal = Depends(require_member),
    registry: FileRegistry = Depends(get_registry),
):
    logger.info(f"Upload request for filename: '{file.filename}', content_type: '{file.content_type}', category: '{category}'")
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file received")

    try:
        return await registry.add_file(
            _read_chunks(file),
            original_name=file.filename,
            mime_type=file.content_type,
            size=file.size,
            category=category,
            uploader=principal,
            base_url=str(request.base_url),
        )
    except UploadTooLarge as e:
        logger.warning(f"Rejected '{file.filename}': {e}")
        raise HTTPException(status_code=413, detail=str(e))
    except IncompleteUpload as e:
        logger.warning(f"Rejected '{file.filename}': {e}")
        raise HTTPException(status_code=400, detail="Upload incomplete")
    except StorageIOError as e:
        raise _server_error(e)
    finally:
        await file.close()

@router.get("/files", response_model=List[schemas.FilePublic])
async def list_files(
    principal: schemas.Principal = Depends(require_member),
    registry: FileRegistry = Depends(get_registry),
):
    return await registry.list_files()

@router.get("/files/category/{category}", response_model=List[schemas.FilePublic])
async def list_files_by_category(
    category: str,
    principal: schemas.Principal = Depends(require_member),
    registry: FileRegistry = Depends(get_registry),
):
    return await registry.list_files(category=category)

@router.delete("/files/{file_id}")
async def delete_file(
    file_id: str,
    principal: schemas.Principal = Depends(require_member),
    registry: FileRegistry = Depends(get_registry),
):
    logger.info(f"Delete request for file_id: {file_id} by {principal.name}")
    try:
        await registry.delete_file(file_id, principal)
    except (RecordNotFound, Forbidden):
        raise HTTPException(status_code=404, detail=NOT_FOUND_OR_FORBIDDEN)
    except StorageIOError as e:
        raise _server_error(e)
    return {"success": True}

@router.get("/share/{share_link}")
async def download_shared_file(
    share_link: str,
    registry: FileRegistry = Depends(get_registry),
):
    logger.info(f"Download request for share link: {share_link}")
    try:
        ticket = await registry.record_download(share_link)
    except BlobNotFound:
        raise HTTPException(status_code=404, detail="Physical file not found")
    except RecordNotFound:
        logger.warning(f"File not found for download: share link {share_link}")
        raise HTTPException(status_code=404, detail="File not found")
    except StorageIOError as e:
        raise _server_error(e)

    try:
        blob = await registry.open_download(ticket)
    except BlobNotFound:
        raise HTTPException(status_code=404, detail="Physical file not found")
    except StorageIOError as e:
        raise _server_error(e)

    return StreamingResponse(
        _stream_blob(blob),
        media_type=ticket.mime_type,
        headers={
            "Content-Disposition": _attachment(ticket.original_name),
            "Content-Length": str(os.fstat(blob.fileno()).st_size),
        },
    )

@router.get("/info/{share_link}", response_model=schemas.FilePublic)
async def get_file_info(
    share_link: str,
    registry: FileRegistry = Depends(get_registry),
):
    try:
        return await registry.get_file_info(share_link)
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="File not found")

@router.get("/stats", response_model=schemas.ClassroomStats)
@router.get("/classroom/stats", response_model=schemas.ClassroomStats)
async def classroom_stats(
    principal: schemas.Principal = Depends(require_member),
    registry: FileRegistry = Depends(get_registry),
    current_settings: Settings = Depends(get_settings),
):
    return await registry.statistics(recent_limit=current_settings.RECENT_UPLOADS_LIMIT)

@router.get("/admin/files", response_model=List[schemas.FilePublic])
async def admin_list_files(
    principal: schemas.Principal = Depends(require_admin),
    registry: FileRegistry = Depends(get_registry),
):
    return await registry.list_files()

@router.get("/admin/stats", response_model=schemas.AdminStats)
async def admin_stats(
    principal: schemas.Principal = Depends(require_admin),
    registry: FileRegistry = Depends(get_registry),
):
    return admin_summary(await registry.statistics(recent_limit=0))

@router.delete("/admin/students/{student_id}/files", response_model=List[schemas.BulkDeleteOutcome])
async def admin_delete_student_files(
    student_id: str,
    principal: schemas.Principal = Depends(require_admin),
    registry: FileRegistry = Depends(get_registry),
):
    logger.info(f"Admin {principal.name} removing all files of student {student_id}")
    return await registry.delete_files_for_principal(student_id)
