from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import FileResponse

from ..attachments import AttachmentStorage
from ..deps import get_current_user, get_uploads
from ..schemas import AttachmentsResponse

router = APIRouter(tags=["uploads"])


@router.post("/upload", response_model=AttachmentsResponse)
async def upload_files(
    attachments: List[UploadFile] = File(...),
    user: dict = Depends(get_current_user),
    uploads: AttachmentStorage = Depends(get_uploads),
):
    """Store files ahead of task creation (used by the WebSocket client)"""
    saved = await uploads.save(user["id"], attachments)
    return {"attachments": saved}


@router.get("/uploads/{user_id}/{filename}")
async def get_upload(
    user_id: str,
    filename: str,
    user: dict = Depends(get_current_user),
    uploads: AttachmentStorage = Depends(get_uploads),
):
    """Serve an attachment to the user who owns it"""
    if user["id"] != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    path = uploads.locate(user_id, filename)
    if path is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return FileResponse(path)
