import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from .. import crud
from ..config import Settings
from ..deps import get_current_user, get_secret, get_settings, get_store
from ..exceptions import UserExistsError
from ..schemas import MessageResponse, UserCredentials, UserResponse
from ..security import create_access_token
from ..store import RecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        settings.cookie_name,
        token,
        max_age=settings.token_max_age,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        settings.cookie_name,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )


@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def register(credentials: UserCredentials, store: RecordStore = Depends(get_store)):
    """Create a new account"""
    try:
        await crud.register_user(store, credentials.username, credentials.password)
    except UserExistsError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User exists")
    return {"message": "Registered"}


@router.post("/login", response_model=MessageResponse)
async def login(
    credentials: UserCredentials,
    response: Response,
    store: RecordStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    secret: str = Depends(get_secret),
):
    """Check credentials and start a cookie session"""
    user = await crud.authenticate_user(store, credentials.username, credentials.password)
    if user is None:
        logger.info("Failed login for %s", credentials.username)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = create_access_token(user, secret, settings.jwt_expires_minutes)
    set_session_cookie(response, token, settings)
    return {"message": "Login successful"}


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response, settings: Settings = Depends(get_settings)):
    """End the cookie session"""
    clear_session_cookie(response, settings)
    return {"message": "Logged out"}


@router.get("/me", response_model=UserResponse)
async def me(user: dict = Depends(get_current_user)):
    """Who the session cookie belongs to"""
    return user
