from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

TaskFilter = Literal["all", "active", "completed"]


class CamelModel(BaseModel):
    """Serialised with the camelCase keys used in the JSON documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _required_title(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("Title is required")
    return value


class TaskBase(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    due_date: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        return _required_title(value)


class TaskCreate(TaskBase):
    pass


class TaskUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    due_date: Optional[str] = None
    completed: Optional[bool] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _required_title(value)


class Attachment(CamelModel):
    filename: str
    original_name: Optional[str] = None
    path: str


class TaskResponse(CamelModel):
    id: str
    owner_id: Optional[str] = None
    title: str
    description: str = ""
    due_date: Optional[str] = None
    completed: bool = False
    created_at: str
    updated_at: Optional[str] = None
    attachments: List[Attachment] = Field(default_factory=list)


class AttachmentsResponse(BaseModel):
    attachments: List[Attachment]


class UserCredentials(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1, max_length=72)


class UserResponse(BaseModel):
    id: str
    username: str


class MessageResponse(BaseModel):
    message: str


# WebSocket message schemas
class SocketRequest(BaseModel):
    event: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)
    ref: Optional[Any] = None


def validation_message(exc) -> str:
    """First error of a pydantic ValidationError as a short client message."""
    errors = exc.errors()
    if not errors:
        return "Invalid input"

    error = errors[0]
    field = ".".join(str(part) for part in error.get("loc", ())) or "input"
    if error.get("type") == "missing":
        return f"{field} is required"

    message = error.get("msg", "Invalid input")
    if message.startswith("Value error, "):
        return message[len("Value error, "):]
    return f"{field}: {message}"
