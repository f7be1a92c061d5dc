import json
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from starlette.applications import Starlette

from .. import crud
from ..deps import resolve_user
from ..exceptions import AuthenticationError, StorageError, TaskValidationError
from ..schemas import SocketRequest, TaskCreate, TaskUpdate, validation_message

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

TASK_CREATED = "taskCreated"
TASK_UPDATED = "taskUpdated"
TASK_DELETED = "taskDeleted"


class ConnectionManager:
    """Tracks open WebSockets per owner so every tab of a user gets the push"""

    def __init__(self):
        self.owner_connections: Dict[str, Set[WebSocket]] = defaultdict(set)

    async def connect(self, websocket: WebSocket, owner_id: str):
        await websocket.accept()
        self.owner_connections[owner_id].add(websocket)

    def disconnect(self, websocket: WebSocket, owner_id: str):
        connections = self.owner_connections.get(owner_id)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            del self.owner_connections[owner_id]

    def connection_count(self, owner_id: Optional[str] = None) -> int:
        if owner_id is not None:
            return len(self.owner_connections.get(owner_id, ()))
        return sum(len(c) for c in self.owner_connections.values())

    async def notify(self, owner_id: Optional[str], event: str, data: dict):
        if not owner_id:
            return

        disconnected = set()
        message = {"event": event, "data": data}
        for connection in list(self.owner_connections.get(owner_id, ())):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.debug("Dropping dead connection for %s: %s", owner_id, e)
                disconnected.add(connection)

        # Remove disconnected connections
        for connection in disconnected:
            self.disconnect(connection, owner_id)

    async def task_created(self, task: dict):
        await self.notify(task.get("ownerId"), TASK_CREATED, {"task": task})

    async def task_updated(self, task: dict):
        await self.notify(task.get("ownerId"), TASK_UPDATED, {"task": task})

    async def task_deleted(self, task: dict):
        await self.notify(task.get("ownerId"), TASK_DELETED, {"id": task["id"]})


# Global connection manager
manager = ConnectionManager()


Notification = Optional[Callable[[], Awaitable[None]]]
Handler = Callable[[Starlette, dict, dict], Awaitable[Tuple[dict, Notification]]]


def _not_found() -> Tuple[dict, Notification]:
    return {"error": "Task not found"}, None


async def _get_tasks(app, user, data):
    tasks = await crud.get_tasks(app.state.store, user["id"], data.get("filter") or "all")
    return {"tasks": tasks}, None


async def _get_task(app, user, data):
    task = await crud.get_task(app.state.store, str(data.get("id", "")), user["id"])
    if task is None:
        return _not_found()
    return {"task": task}, None


async def _create_task(app, user, data):
    task_in = TaskCreate.model_validate(data)

    # Only files this user already uploaded through /api/upload may be attached
    requested = data.get("attachments")
    if not isinstance(requested, list):
        requested = []

    attachments = []
    for attachment in requested:
        if not isinstance(attachment, dict):
            continue
        filename = attachment.get("filename")
        if not isinstance(filename, str) or not app.state.uploads.locate(user["id"], filename):
            continue
        original_name = attachment.get("originalName")
        if not isinstance(original_name, str) or not original_name:
            original_name = filename
        attachments.append({
            "filename": filename,
            "originalName": original_name,
            "path": f"{app.state.uploads.url_prefix}/{user['id']}/{filename}",
        })

    task = await crud.create_task(app.state.store, user["id"], task_in, attachments)
    return {"task": task}, lambda: manager.task_created(task)


async def _update_task(app, user, data):
    task_update = TaskUpdate.model_validate(data)
    task = await crud.update_task(app.state.store, str(data.get("id", "")), user["id"], task_update)
    if task is None:
        return _not_found()
    return {"task": task}, lambda: manager.task_updated(task)


async def _toggle_task(app, user, data):
    task = await crud.toggle_task(app.state.store, str(data.get("id", "")), user["id"])
    if task is None:
        return _not_found()
    return {"task": task}, lambda: manager.task_updated(task)


async def _delete_task(app, user, data):
    removed = await crud.delete_task(
        app.state.store, app.state.uploads, str(data.get("id", "")), user["id"]
    )
    if removed is None:
        return _not_found()
    return {"message": "Deleted", "id": removed["id"]}, lambda: manager.task_deleted(removed)


async def _whoami(app, user, data):
    return {"user": user}, None


HANDLERS: Dict[str, Handler] = {
    "getTasks": _get_tasks,
    "getTask": _get_task,
    "createTask": _create_task,
    "updateTask": _update_task,
    "toggleTask": _toggle_task,
    "deleteTask": _delete_task,
    "whoami": _whoami,
}


async def handle_message(app: Starlette, user: dict, raw: str) -> Tuple[dict, Notification]:
    """Dispatch one client frame and build the reply sent back to the caller"""
    try:
        request = SocketRequest.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError):
        return {"event": "error", "data": {"error": "Invalid message format"}}, None

    reply: Dict[str, Any] = {"event": request.event, "ref": request.ref}
    handler = HANDLERS.get(request.event)
    if handler is None:
        reply["data"] = {"error": f"Unknown event: {request.event}"}
        return reply, None

    notification: Notification = None
    try:
        reply["data"], notification = await handler(app, user, request.data)
    except ValidationError as e:
        reply["data"] = {"error": validation_message(e)}
    except TaskValidationError as e:
        reply["data"] = {"error": str(e)}
    except StorageError:
        logger.exception("Storage failure while handling %s", request.event)
        reply["data"] = {"error": "Server error"}
    except Exception:
        logger.exception("Unexpected failure while handling %s", request.event)
        reply["data"] = {"error": "Server error"}
    return reply, notification


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for task commands and real-time task updates"""
    token = websocket.cookies.get(websocket.app.state.settings.cookie_name)
    try:
        user = await resolve_user(websocket.app, token)
    except AuthenticationError as e:
        logger.info("Rejected WebSocket handshake: %s", e)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await manager.connect(websocket, user["id"])
    logger.info("User %s connected", user["username"])

    try:
        while True:
            raw = await websocket.receive_text()
            reply, notification = await handle_message(websocket.app, user, raw)
            await websocket.send_json(reply)
            if notification is not None:
                await notification()
    except WebSocketDisconnect as e:
        logger.info("User %s disconnected (code %s)", user["username"], e.code)
    finally:
        manager.disconnect(websocket, user["id"])
