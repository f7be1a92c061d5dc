from typing import Optional

from fastapi import HTTPException, Request, status
from starlette.applications import Starlette

from . import crud
from .attachments import AttachmentStorage
from .config import Settings
from .exceptions import AuthenticationError
from .security import decode_access_token
from .store import RecordStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_uploads(request: Request) -> AttachmentStorage:
    return request.app.state.uploads


def get_secret(request: Request) -> str:
    return request.app.state.secret


async def resolve_user(app: Starlette, token: Optional[str]) -> dict:
    """Turn a session token into the user it belongs to.

    Shared by the HTTP, WebSocket and GraphQL entry points. Raises
    AuthenticationError when there is no valid session.
    """
    if not token:
        raise AuthenticationError("Unauthorized")

    claims = decode_access_token(token, app.state.secret)
    user = await crud.get_user(app.state.store, claims["id"])
    if user is None:
        raise AuthenticationError("Unauthorized")
    return {"id": user["id"], "username": user["username"]}


async def get_current_user(request: Request) -> dict:
    """Dependency for routes that require a logged in user"""
    token = request.cookies.get(request.app.state.settings.cookie_name)
    try:
        return await resolve_user(request.app, token)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
