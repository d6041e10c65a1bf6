"""The persistence store for sessions, messages and the model catalog.

State lives in a single ``StoreData`` blob serialized through a ``Storage``
backend. Every write builds the next state on a copy, persists it, and only
then swaps it in, so a failed write leaves the previous state untouched and
no caller ever observes a partial write.

The store enforces the single-session design: creating a session evicts all
prior sessions and messages.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from . import catalog
from .errors import NotFoundError, StorageError, ValidationError
from .models import (
    ASSISTANT_ROLE,
    DEFAULT_TITLE,
    SYSTEM_ROLE,
    USER_ROLE,
    Message,
    ModelDescriptor,
    ModelUsageStats,
    Session,
    SessionStats,
    SessionSummary,
    StoreData,
    utcnow,
)
from .storage import InMemory, Storage

logger = logging.getLogger(__name__)

STORAGE_KEY = "polychat_data"
ROLES = (USER_ROLE, ASSISTANT_ROLE, SYSTEM_ROLE)


class Store:
    """Owns Session, Message and ModelDescriptor records.

    Parameters
    ----------
    storage : Storage, optional
        Blob backend. Defaults to ``storage.InMemory()``.
    models : list of ModelDescriptor, optional
        Static catalog source. Defaults to ``catalog.load_catalog()``. It is
        reloaded on every initialization regardless of the stored blob.
    clock : callable, optional
        Returns the current UTC time. Injected by tests.
    """

    def __init__(
        self,
        storage: Optional[Storage] = None,
        models: Optional[List[ModelDescriptor]] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.storage = storage if storage is not None else InMemory()
        self._models_source = models
        self._clock = clock
        self._data = self._load()

    # ------------------------------------------------------------------
    # Blob handling
    # ------------------------------------------------------------------

    def _fresh_catalog(self) -> List[ModelDescriptor]:
        if self._models_source is not None:
            return [m.model_copy() for m in self._models_source]
        return catalog.load_catalog()

    def _load(self) -> StoreData:
        try:
            raw = self.storage.get(STORAGE_KEY)
        except OSError as e:
            logger.error("Error loading from storage: %s", e)
            raise StorageError(f"Failed to read stored chat data: {e}") from e

        data = StoreData()
        if raw:
            try:
                data = StoreData.model_validate_json(raw)
            except PydanticValidationError as e:
                logger.error("Stored chat data is corrupt, starting empty: %s", e)
                data = StoreData()
        data.available_models = self._fresh_catalog()
        return data

    def _begin(self) -> StoreData:
        return self._data.model_copy(deep=True)

    def _commit(self, data: StoreData) -> None:
        try:
            self.storage.set(STORAGE_KEY, data.model_dump_json())
        except (OSError, TypeError, ValueError) as e:
            logger.error("Error saving to storage: %s", e)
            raise StorageError(f"Failed to save chat data: {e}") from e
        self._data = data

    @staticmethod
    def _find_session(data: StoreData, session_id: str) -> Optional[Session]:
        return next((s for s in data.sessions if s.id == session_id), None)

    def _require_session(self, data: StoreData, session_id: str) -> Session:
        session = self._find_session(data, session_id)
        if session is None:
            raise NotFoundError(f"Session not found: {session_id}")
        return session

    @staticmethod
    def _check_days(days: Any) -> None:
        if not isinstance(days, (int, float)) or isinstance(days, bool) or days < 0:
            raise ValidationError(f"days must be a non-negative number, got {days!r}")

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self,
        user_id: Optional[str] = None,
        model_id: Optional[str] = None,
        title: str = DEFAULT_TITLE,
    ) -> Session:
        """Creates the one active session, evicting every prior session and message."""
        model_id = model_id or catalog.get_default_model(self._data.available_models).model_id
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("Session title must be a non-empty string")

        now = self._clock()
        session = Session(
            user_id=user_id,
            title=title.strip(),
            model_id=model_id,
            created_at=now,
            updated_at=now,
            last_activity=now,
        )
        data = self._begin()
        data.sessions = [session]
        data.messages = []
        data.current_session_id = session.id
        self._commit(data)
        logger.info("Created session %s with model %s", session.id, model_id)
        return session.model_copy()

    def get_session(self, session_id: str) -> Optional[Session]:
        session = self._find_session(self._data, session_id)
        return session.model_copy() if session else None

    def list_sessions(
        self, user_id: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> List[SessionSummary]:
        """Non-archived sessions of ``user_id``, most recently active first."""
        sessions = sorted(
            (s for s in self._data.sessions if s.user_id == user_id and not s.archived),
            key=lambda s: s.last_activity,
            reverse=True,
        )
        summaries = []
        for session in sessions[offset : offset + limit]:
            session_messages = [m for m in self._data.messages if m.session_id == session.id]
            summaries.append(
                SessionSummary(
                    **session.model_dump(),
                    message_count=len(session_messages),
                    last_message_at=max(
                        (m.created_at for m in session_messages), default=None
                    ),
                )
            )
        return summaries

    def update_session(
        self,
        session_id: str,
        title: Optional[str] = None,
        model_id: Optional[str] = None,
        archived: Optional[bool] = None,
    ) -> Session:
        if title is not None and (not isinstance(title, str) or not title.strip()):
            raise ValidationError("Session title must be a non-empty string")
        if model_id is not None and (not isinstance(model_id, str) or not model_id):
            raise ValidationError("model_id must be a non-empty string")

        data = self._begin()
        session = self._require_session(data, session_id)
        if title is not None:
            session.title = title.strip()
        if model_id is not None:
            session.model_id = model_id
        if archived is not None:
            session.archived = bool(archived)
        now = self._clock()
        session.updated_at = now
        session.last_activity = now
        self._commit(data)
        return session.model_copy()

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        model_id: Optional[str] = None,
        token_count: Optional[int] = None,
        response_time_ms: Optional[int] = None,
    ) -> Message:
        """Appends an immutable message and bumps the session's last activity."""
        if role not in ROLES:
            raise ValidationError(f"role must be one of {', '.join(ROLES)}, got {role!r}")
        if not isinstance(content, str):
            raise ValidationError("Message content must be a string")

        data = self._begin()
        session = self._require_session(data, session_id)

        # createdAt never goes backwards, even if the wall clock does.
        now = self._clock()
        if data.messages and data.messages[-1].created_at > now:
            now = data.messages[-1].created_at

        message = Message(
            session_id=session_id,
            role=role,
            content=content,
            model_id=model_id,
            token_count=token_count,
            response_time_ms=response_time_ms,
            created_at=now,
        )
        data.messages.append(message)
        session.last_activity = now
        self._commit(data)
        return message

    def get_messages(self, session_id: str, limit: int = 100, offset: int = 0) -> List[Message]:
        """Messages of a session in insertion order, annotated with model names."""
        session_messages = sorted(
            (m for m in self._data.messages if m.session_id == session_id),
            key=lambda m: m.created_at,
        )
        result = []
        for message in session_messages[offset : offset + limit]:
            model = catalog.get_model(message.model_id, self._data.available_models) if message.model_id else None
            result.append(
                message.model_copy(update={"model_name": model.display_name if model else None})
            )
        return result

    def get_message(self, message_id: str) -> Optional[Message]:
        return next((m for m in self._data.messages if m.id == message_id), None)

    def count_messages(self, session_id: Optional[str] = None) -> int:
        if session_id is None:
            return len(self._data.messages)
        return sum(1 for m in self._data.messages if m.session_id == session_id)

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    def get_available_models(self) -> List[ModelDescriptor]:
        return catalog.get_active_models(self._data.available_models)

    def get_model(self, model_id: str) -> Optional[ModelDescriptor]:
        return catalog.get_model(model_id, self._data.available_models)

    def refresh_models(self) -> None:
        """Overwrites the cached catalog without touching sessions or messages."""
        data = self._begin()
        data.available_models = self._fresh_catalog()
        self._commit(data)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_session_stats(self, session_id: str) -> SessionStats:
        messages = [m for m in self._data.messages if m.session_id == session_id]
        response_times = [m.response_time_ms for m in messages if m.response_time_ms]
        return SessionStats(
            total_messages=len(messages),
            user_messages=sum(1 for m in messages if m.role == USER_ROLE),
            assistant_messages=sum(1 for m in messages if m.role == ASSISTANT_ROLE),
            total_tokens=sum(m.token_count or 0 for m in messages),
            avg_response_time_ms=(
                sum(response_times) / len(response_times) if response_times else 0.0
            ),
        )

    def get_model_usage_stats(self, model_id: str, days: int = 30) -> ModelUsageStats:
        self._check_days(days)
        cutoff = self._clock() - timedelta(days=days)
        messages = [
            m for m in self._data.messages if m.model_id == model_id and m.created_at >= cutoff
        ]
        response_times = [m.response_time_ms for m in messages if m.response_time_ms]
        return ModelUsageStats(
            total_requests=len(messages),
            total_tokens=sum(m.token_count or 0 for m in messages),
            avg_response_time_ms=(
                sum(response_times) / len(response_times) if response_times else 0.0
            ),
            unique_sessions=len({m.session_id for m in messages}),
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def archive_older_than(self, days: int = 30) -> int:
        """Archives sessions idle for longer than ``days``. Returns the count."""
        self._check_days(days)
        now = self._clock()
        cutoff = now - timedelta(days=days)
        data = self._begin()
        archived = 0
        for session in data.sessions:
            if not session.archived and session.last_activity < cutoff:
                session.archived = True
                session.updated_at = now
                archived += 1
        self._commit(data)
        logger.info("Archived %d idle sessions", archived)
        return archived

    def purge_messages_older_than(self, days: int = 90) -> int:
        """Deletes messages created more than ``days`` ago. Returns the count."""
        self._check_days(days)
        cutoff = self._clock() - timedelta(days=days)
        data = self._begin()
        before = len(data.messages)
        data.messages = [m for m in data.messages if m.created_at >= cutoff]
        deleted = before - len(data.messages)
        self._commit(data)
        logger.info("Purged %d old messages", deleted)
        return deleted

    # ------------------------------------------------------------------
    # Current-session pointer and settings
    # ------------------------------------------------------------------

    def get_current_session(self) -> Optional[Session]:
        if self._data.current_session_id is None:
            return None
        return self.get_session(self._data.current_session_id)

    def set_current_session(self, session_id: Optional[str]) -> None:
        data = self._begin()
        if session_id is not None:
            self._require_session(data, session_id)
        data.current_session_id = session_id
        self._commit(data)

    def get_setting(self, key: str) -> Any:
        return self._data.settings.get(key)

    def set_setting(self, key: str, value: Any) -> None:
        data = self._begin()
        data.settings[key] = value
        self._commit(data)

    def clear_all_data(self) -> None:
        """Drops sessions, messages, settings and the pointer; keeps the catalog."""
        data = StoreData(available_models=self._data.available_models)
        self._commit(data)
