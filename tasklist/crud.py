import asyncio
import logging
from typing import Iterable, List, Optional
from uuid import uuid4

from .attachments import AttachmentStorage, Upload
from .exceptions import TaskValidationError, UserExistsError
from .schemas import TaskCreate, TaskUpdate
from .security import hash_password, verify_password
from .store import RecordStore
from .utils import TASK_FILTERS, clean_text, filter_tasks, now_iso

logger = logging.getLogger(__name__)


# Tasks

async def create_task(
    store: RecordStore,
    owner_id: Optional[str],
    task: TaskCreate,
    attachments: Iterable[dict] = (),
) -> dict:
    """Create a new task"""
    record = {
        "id": str(uuid4()),
        "ownerId": owner_id,
        "title": task.title,
        "description": clean_text(task.description),
        "dueDate": task.due_date or None,
        "completed": False,
        "createdAt": now_iso(),
        "updatedAt": None,
        "attachments": list(attachments),
    }
    if owner_id is None:
        del record["ownerId"]

    await store.tasks.insert(record)
    logger.info("Created task %s", record["id"])
    return record


async def get_tasks(
    store: RecordStore,
    owner_id: Optional[str],
    status_filter: Optional[str] = "all",
) -> List[dict]:
    """Get the owner's tasks, optionally filtered by completion status"""
    status_filter = status_filter or "all"
    if status_filter not in TASK_FILTERS:
        raise TaskValidationError(f"Invalid filter: {status_filter}")

    if owner_id is None:
        tasks = await store.tasks.load_all()
    else:
        tasks = await store.tasks.filter(lambda t: t.get("ownerId") == owner_id)
    return filter_tasks(tasks, status_filter)


async def get_task(store: RecordStore, task_id: str, owner_id: Optional[str]) -> Optional[dict]:
    """Get a task by ID"""
    return await store.tasks.find_by_id(task_id, owner_id)


async def update_task(
    store: RecordStore,
    task_id: str,
    owner_id: Optional[str],
    task_update: TaskUpdate,
) -> Optional[dict]:
    """Update a task with the fields present in the request"""
    changes = task_update.model_dump(exclude_unset=True, by_alias=True)

    def apply(record: dict) -> None:
        for field, value in changes.items():
            if field in ("title", "completed") and value is None:
                continue
            if field == "description":
                value = clean_text(value)
            record[field] = value

    return await store.tasks.update(task_id, apply, owner_id)


async def toggle_task(store: RecordStore, task_id: str, owner_id: Optional[str]) -> Optional[dict]:
    """Flip a task's completed flag"""

    def flip(record: dict) -> None:
        record["completed"] = not record.get("completed", False)

    return await store.tasks.update(task_id, flip, owner_id)


async def delete_task(
    store: RecordStore,
    uploads: AttachmentStorage,
    task_id: str,
    owner_id: Optional[str],
) -> Optional[dict]:
    """Delete a task together with its attachment files"""
    removed = await store.tasks.remove(task_id, owner_id)
    if removed is None:
        return None

    await uploads.delete_all(removed.get("ownerId"), removed.get("attachments") or [])
    logger.info("Deleted task %s", task_id)
    return removed


async def add_attachments(
    store: RecordStore,
    uploads: AttachmentStorage,
    task_id: str,
    owner_id: Optional[str],
    files: Iterable[Upload],
) -> Optional[tuple]:
    """Store files and attach them to an existing task.

    Returns ``(task, new_attachments)`` or None if the task does not exist.
    """
    if await store.tasks.find_by_id(task_id, owner_id) is None:
        return None

    saved = await uploads.save(owner_id, files)

    def attach(record: dict) -> None:
        record.setdefault("attachments", []).extend(saved)

    task = await store.tasks.update(task_id, attach, owner_id)
    if task is None:
        # Task was deleted while the files were being written
        await uploads.delete_all(owner_id, saved)
        return None
    return task, saved


async def remove_attachment(
    store: RecordStore,
    uploads: AttachmentStorage,
    task_id: str,
    owner_id: Optional[str],
    filename: str,
) -> Optional[dict]:
    """Detach a file from a task and delete it from disk"""
    detached: List[dict] = []

    def detach(record: dict) -> None:
        attachments = record.get("attachments") or []
        detached.extend(a for a in attachments if a.get("filename") == filename)
        record["attachments"] = [a for a in attachments if a.get("filename") != filename]

    task = await store.tasks.update(task_id, detach, owner_id)
    if task is None:
        return None

    await uploads.delete_all(task.get("ownerId"), detached)
    return task


# Users

async def register_user(store: RecordStore, username: str, password: str) -> dict:
    """Create a user with a bcrypt hashed password.

    Raises UserExistsError if the username is taken (exact match).
    """
    password_hash = await asyncio.to_thread(hash_password, password)
    user = {
        "id": str(uuid4()),
        "username": username,
        "passwordHash": password_hash,
        "createdAt": now_iso(),
    }
    if await store.users.insert_unique(user, "username") is None:
        raise UserExistsError("User already exists")

    logger.info("Registered user %s", username)
    return user


async def authenticate_user(store: RecordStore, username: str, password: str) -> Optional[dict]:
    """Return the user if the credentials are valid"""
    user = await store.users.find_one(lambda u: u.get("username") == username)
    if user is None:
        return None

    ok = await asyncio.to_thread(verify_password, password, user.get("passwordHash", ""))
    return user if ok else None


async def get_user(store: RecordStore, user_id: str) -> Optional[dict]:
    return await store.users.find_by_id(user_id)
