"""
Defines the core Pydantic data models for the application.

These models are the validated data contract between the store, the dispatcher,
the orchestrator and the rendering pipeline. Message turns follow the
``{role, content}`` shape used by OpenAI-compatible chat completion APIs.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# --- Constants ---
USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
SYSTEM_ROLE = "system"
Role = Literal["user", "assistant", "system"]

DEFAULT_TITLE = "New Chat"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# --- Records ---
class ModelDescriptor(BaseModel):
    """One entry of the static model catalog."""

    model_id: str
    display_name: str
    provider: str
    description: str = ""
    max_tokens: int = 4096
    temperature: float = 0.7
    top_p: float = 1.0
    active: bool = True
    provider_model_id: Optional[str] = None

    @property
    def wire_id(self) -> str:
        """The identifier sent to the provider endpoint."""
        return self.provider_model_id or self.model_id


class Session(BaseModel):
    """One continuous conversation bound to a model and a message history."""

    id: str = Field(default_factory=new_id)
    user_id: Optional[str] = None
    title: str = DEFAULT_TITLE
    model_id: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)
    archived: bool = False


class SessionSummary(Session):
    """A session annotated for list views."""

    message_count: int = 0
    last_message_at: Optional[datetime] = None


class Message(BaseModel):
    """A committed conversation turn. Frozen once created."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    session_id: str
    role: Role
    content: str
    model_id: Optional[str] = None
    token_count: Optional[int] = None
    response_time_ms: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)
    model_name: Optional[str] = Field(default=None, exclude=True)


class SessionStats(BaseModel):
    total_messages: int = 0
    user_messages: int = 0
    assistant_messages: int = 0
    total_tokens: int = 0
    avg_response_time_ms: float = 0.0


class ModelUsageStats(BaseModel):
    total_requests: int = 0
    total_tokens: int = 0
    avg_response_time_ms: float = 0.0
    unique_sessions: int = 0


class StoreData(BaseModel):
    """The serializable blob behind the persistence store."""

    sessions: List[Session] = Field(default_factory=list)
    messages: List[Message] = Field(default_factory=list)
    current_session_id: Optional[str] = None
    available_models: List[ModelDescriptor] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)


# --- Dispatch ---
class Turn(BaseModel):
    """A role-tagged unit of content as sent over the wire."""

    role: Role
    content: str


class DispatchResult(BaseModel):
    text: str
    token_count: int = 0
    raw_model_id: Optional[str] = None
    usage: Dict[str, Any] = Field(default_factory=dict)


class SendResult(BaseModel):
    user_message: Message
    assistant_message: Message
    response_time_ms: int
