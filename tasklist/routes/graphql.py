"""GraphQL endpoint exposing the task operations as queries and mutations."""

import logging
from typing import List, Optional

import strawberry
from fastapi import Request, Response
from pydantic import ValidationError
from strawberry.extensions import MaskErrors
from strawberry.fastapi import GraphQLRouter
from strawberry.types import Info

from .. import crud
from ..deps import resolve_user
from ..exceptions import (
    AuthenticationError,
    NotFoundError,
    TaskValidationError,
    UserExistsError,
)
from ..schemas import TaskCreate, TaskUpdate, validation_message
from ..security import create_access_token
from .auth import clear_session_cookie, set_session_cookie
from .realtime import manager

logger = logging.getLogger(__name__)

EXPOSED_ERRORS = (AuthenticationError, NotFoundError, TaskValidationError, UserExistsError)


@strawberry.type
class Attachment:
    filename: str
    original_name: Optional[str]
    path: str


@strawberry.type
class Task:
    id: strawberry.ID
    owner_id: Optional[strawberry.ID]
    title: str
    description: Optional[str]
    due_date: Optional[str]
    completed: bool
    created_at: str
    updated_at: Optional[str]
    attachments: List[Attachment]

    @classmethod
    def from_record(cls, record: dict) -> "Task":
        return cls(
            id=strawberry.ID(record["id"]),
            owner_id=record.get("ownerId"),
            title=record["title"],
            description=record.get("description"),
            due_date=record.get("dueDate"),
            completed=bool(record.get("completed")),
            created_at=record.get("createdAt", ""),
            updated_at=record.get("updatedAt"),
            attachments=[
                Attachment(
                    filename=a["filename"],
                    original_name=a.get("originalName"),
                    path=a["path"],
                )
                for a in record.get("attachments") or []
            ],
        )


@strawberry.type
class AuthPayload:
    message: str


@strawberry.input
class TaskInput:
    title: str
    description: Optional[str] = None
    due_date: Optional[str] = None


@strawberry.input
class TaskUpdateInput:
    title: Optional[str] = strawberry.UNSET
    description: Optional[str] = strawberry.UNSET
    due_date: Optional[str] = strawberry.UNSET
    completed: Optional[bool] = strawberry.UNSET


def require_user(info: Info) -> dict:
    user = info.context.get("user")
    if user is None:
        raise AuthenticationError(info.context.get("auth_error") or "Unauthorized")
    return user


def _state(info: Info):
    return info.context["request"].app.state


@strawberry.type
class Query:
    @strawberry.field
    async def tasks(self, info: Info, filter: Optional[str] = "all") -> List[Task]:
        user = require_user(info)
        records = await crud.get_tasks(_state(info).store, user["id"], filter)
        return [Task.from_record(r) for r in records]

    @strawberry.field
    async def task(self, info: Info, id: strawberry.ID) -> Optional[Task]:
        user = require_user(info)
        record = await crud.get_task(_state(info).store, str(id), user["id"])
        if record is None:
            raise NotFoundError("Task not found")
        return Task.from_record(record)


@strawberry.type
class Mutation:
    @strawberry.mutation
    async def create_task(self, info: Info, input: TaskInput) -> Task:
        user = require_user(info)
        try:
            task_in = TaskCreate(
                title=input.title,
                description=input.description,
                due_date=input.due_date,
            )
        except ValidationError as e:
            raise TaskValidationError(validation_message(e))

        record = await crud.create_task(_state(info).store, user["id"], task_in)
        await manager.task_created(record)
        return Task.from_record(record)

    @strawberry.mutation
    async def update_task(self, info: Info, id: strawberry.ID, input: TaskUpdateInput) -> Task:
        user = require_user(info)
        fields = {
            name: getattr(input, name)
            for name in ("title", "description", "due_date", "completed")
            if getattr(input, name) is not strawberry.UNSET
        }
        try:
            task_update = TaskUpdate(**fields)
        except ValidationError as e:
            raise TaskValidationError(validation_message(e))

        record = await crud.update_task(_state(info).store, str(id), user["id"], task_update)
        if record is None:
            raise NotFoundError("Task not found")
        await manager.task_updated(record)
        return Task.from_record(record)

    @strawberry.mutation
    async def delete_task(self, info: Info, id: strawberry.ID) -> bool:
        user = require_user(info)
        state = _state(info)
        removed = await crud.delete_task(state.store, state.uploads, str(id), user["id"])
        if removed is None:
            raise NotFoundError("Task not found")
        await manager.task_deleted(removed)
        return True

    @strawberry.mutation
    async def toggle_task(self, info: Info, id: strawberry.ID) -> Task:
        user = require_user(info)
        record = await crud.toggle_task(_state(info).store, str(id), user["id"])
        if record is None:
            raise NotFoundError("Task not found")
        await manager.task_updated(record)
        return Task.from_record(record)

    @strawberry.mutation
    async def remove_attachment(self, info: Info, task_id: strawberry.ID, filename: str) -> Task:
        user = require_user(info)
        state = _state(info)
        record = await crud.remove_attachment(
            state.store, state.uploads, str(task_id), user["id"], filename
        )
        if record is None:
            raise NotFoundError("Task not found")
        await manager.task_updated(record)
        return Task.from_record(record)

    @strawberry.mutation
    async def register(self, info: Info, username: str, password: str) -> AuthPayload:
        if not username or not password:
            raise TaskValidationError("Username and password required")
        await crud.register_user(_state(info).store, username, password)
        return AuthPayload(message="Registered successfully")

    @strawberry.mutation
    async def login(self, info: Info, username: str, password: str) -> AuthPayload:
        if not username or not password:
            raise TaskValidationError("Username and password required")

        state = _state(info)
        user = await crud.authenticate_user(state.store, username, password)
        if user is None:
            logger.info("Failed GraphQL login for %s", username)
            raise AuthenticationError("Invalid credentials")

        token = create_access_token(user, state.secret, state.settings.jwt_expires_minutes)
        set_session_cookie(info.context["response"], token, state.settings)
        return AuthPayload(message="Login successful")

    @strawberry.mutation
    async def logout(self, info: Info) -> AuthPayload:
        clear_session_cookie(info.context["response"], _state(info).settings)
        return AuthPayload(message="Logged out")


def should_mask_error(error) -> bool:
    """Hide everything except the errors clients are meant to see"""
    original = error.original_error
    if original is None:
        # Syntax and schema validation errors from graphql-core
        return False
    return not isinstance(original, EXPOSED_ERRORS)


async def get_context(request: Request, response: Response) -> dict:
    """Attach the session user (if any) to every GraphQL operation"""
    settings = request.app.state.settings
    context = {"request": request, "response": response, "user": None, "auth_error": None}

    token = request.cookies.get(settings.cookie_name)
    if token:
        try:
            context["user"] = await resolve_user(request.app, token)
        except AuthenticationError as e:
            context["auth_error"] = str(e)
    return context


schema = strawberry.Schema(
    query=Query,
    mutation=Mutation,
    extensions=[
        lambda: MaskErrors(should_mask_error=should_mask_error, error_message="Internal server error"),
    ],
)

router = GraphQLRouter(schema, context_getter=get_context)
