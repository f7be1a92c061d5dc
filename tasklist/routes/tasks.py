from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from pydantic import ValidationError

from .. import crud
from ..attachments import AttachmentStorage
from ..deps import get_current_user, get_store, get_uploads
from ..schemas import (
    AttachmentsResponse,
    MessageResponse,
    TaskCreate,
    TaskFilter,
    TaskResponse,
    TaskUpdate,
    validation_message,
)
from ..store import RecordStore
from .realtime import manager

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _task_not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")


@router.get("", response_model=List[TaskResponse])
async def get_tasks(
    filter: TaskFilter = Query("all"),
    user: dict = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    """Get the current user's tasks, optionally only active or completed ones"""
    return await crud.get_tasks(store, user["id"], filter)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: str,
    user: dict = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    """Get a specific task by ID"""
    task = await crud.get_task(store, task_id, user["id"])
    if task is None:
        raise _task_not_found()
    return task


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    due_date: Optional[str] = Form(None, alias="dueDate"),
    attachments: Optional[List[UploadFile]] = File(None),
    user: dict = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
    uploads: AttachmentStorage = Depends(get_uploads),
):
    """Create a new task from a multipart form, with optional file attachments"""
    fields = {"title": title, "description": description, "dueDate": due_date or None}
    try:
        task_in = TaskCreate.model_validate({k: v for k, v in fields.items() if v is not None})
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=validation_message(e))

    saved = await uploads.save(user["id"], attachments or [])
    try:
        task = await crud.create_task(store, user["id"], task_in, saved)
    except Exception:
        await uploads.delete_all(user["id"], saved)
        raise

    await manager.task_created(task)
    return task


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    task_update: TaskUpdate,
    user: dict = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    """Update a specific task"""
    task = await crud.update_task(store, task_id, user["id"], task_update)
    if task is None:
        raise _task_not_found()

    await manager.task_updated(task)
    return task


@router.patch("/{task_id}/toggle", response_model=TaskResponse)
async def toggle_task(
    task_id: str,
    user: dict = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    """Flip a task between active and completed"""
    task = await crud.toggle_task(store, task_id, user["id"])
    if task is None:
        raise _task_not_found()

    await manager.task_updated(task)
    return task


@router.delete("/{task_id}", response_model=MessageResponse)
async def delete_task(
    task_id: str,
    user: dict = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
    uploads: AttachmentStorage = Depends(get_uploads),
):
    """Delete a specific task and its attachment files"""
    removed = await crud.delete_task(store, uploads, task_id, user["id"])
    if removed is None:
        raise _task_not_found()

    await manager.task_deleted(removed)
    return {"message": "Task deleted successfully"}


@router.post("/{task_id}/upload", response_model=AttachmentsResponse)
async def upload_attachments(
    task_id: str,
    attachments: List[UploadFile] = File(...),
    user: dict = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
    uploads: AttachmentStorage = Depends(get_uploads),
):
    """Attach more files to an existing task"""
    result = await crud.add_attachments(store, uploads, task_id, user["id"], attachments)
    if result is None:
        raise _task_not_found()

    task, saved = result
    await manager.task_updated(task)
    return {"attachments": saved}


@router.delete("/{task_id}/attachments/{filename}", response_model=TaskResponse)
async def remove_attachment(
    task_id: str,
    filename: str,
    user: dict = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
    uploads: AttachmentStorage = Depends(get_uploads),
):
    """Detach a file from a task and delete it"""
    task = await crud.remove_attachment(store, uploads, task_id, user["id"], filename)
    if task is None:
        raise _task_not_found()

    await manager.task_updated(task)
    return task
