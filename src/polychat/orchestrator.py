"""The session orchestrator.

Owns the single active session and mediates between the store and the
dispatcher. States::

    NO_SESSION --create_session/send_message/switch_model--> ACTIVE
    ACTIVE --send_message--> PENDING --(success or failure)--> ACTIVE
    ACTIVE --archive_session/clear_session--> NO_SESSION

The user's message is committed before the provider is called, so it
survives a failed send. The assistant message is committed only on success.
"""

import logging
import time
from enum import Enum
from typing import Callable, List, Optional

from . import catalog
from .dispatcher import CancellationToken, Dispatcher
from .errors import BusyError, NotFoundError, PolyChatError, ValidationError
from .models import (
    ASSISTANT_ROLE,
    DEFAULT_TITLE,
    USER_ROLE,
    Message,
    ModelDescriptor,
    SendResult,
    Session,
    SessionStats,
    SessionSummary,
    Turn,
)
from .store import Store

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 20


class OrchestratorState(str, Enum):
    NO_SESSION = "no_session"
    ACTIVE = "active"
    PENDING = "active_pending"


class Orchestrator:
    """Session lifecycle and the send-message flow.

    Parameters
    ----------
    store : Store
        The persistence store. Owned by the application, injected here.
    dispatcher : Dispatcher
        Sends turn-sets to the model provider.
    default_model : str, optional
        Model for lazily created sessions until another model is used.
    history_limit : int
        Most recent persisted turns sent along with each new user turn.
    user_id : str, optional
        Owner recorded on created sessions.
    clock : callable, optional
        Monotonic seconds used to measure response time.
    """

    def __init__(
        self,
        store: Store,
        dispatcher: Dispatcher,
        default_model: Optional[str] = None,
        history_limit: int = HISTORY_LIMIT,
        user_id: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.history_limit = history_limit
        self.user_id = user_id
        self._clock = clock
        self._last_model = default_model or catalog.get_default_model(
            store.get_available_models() or catalog.AI_MODELS
        ).model_id
        self.current_session: Optional[Session] = store.get_current_session()
        self._pending = False
        self._token: Optional[CancellationToken] = None

    @property
    def state(self) -> OrchestratorState:
        if self.current_session is None:
            return OrchestratorState.NO_SESSION
        if self._pending:
            return OrchestratorState.PENDING
        return OrchestratorState.ACTIVE

    @property
    def current_model(self) -> str:
        return self.current_session.model_id if self.current_session else self._last_model

    def _invalidate_pending(self) -> None:
        if self._token is not None:
            self._token.cancel()
            self._token = None

    def _require_session(self) -> Session:
        if self.current_session is None:
            raise NotFoundError("No active session")
        return self.current_session

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_session(self, model_id: Optional[str] = None, title: str = DEFAULT_TITLE) -> Session:
        self._invalidate_pending()
        session = self.store.create_session(self.user_id, model_id or self._last_model, title)
        self.current_session = session
        self._last_model = session.model_id
        return session

    async def load_session(self, session_id: str) -> Session:
        session = self.store.get_session(session_id)
        if session is None or session.archived:
            raise NotFoundError(f"Session not found: {session_id}")
        self._invalidate_pending()
        self.store.set_current_session(session.id)
        self.current_session = session
        self._last_model = session.model_id
        return session

    async def switch_model(self, model_id: str) -> Session:
        """Changes the session's model, keeping history. Creates a session if none."""
        if not isinstance(model_id, str) or not model_id:
            raise ValidationError("model_id must be a non-empty string")
        if self.current_session is None:
            return await self.create_session(model_id)
        session = self.store.update_session(self.current_session.id, model_id=model_id)
        self.current_session = session
        self._last_model = model_id
        logger.info("Session %s switched to model %s", session.id, model_id)
        return session

    async def update_title(self, title: str) -> Session:
        session = self._require_session()
        self.current_session = self.store.update_session(session.id, title=title)
        return self.current_session

    async def archive_session(self) -> None:
        session = self._require_session()
        self._invalidate_pending()
        self.store.update_session(session.id, archived=True)
        self.store.set_current_session(None)
        self.current_session = None

    async def clear_session(self) -> None:
        """Drops the current pointer without archiving."""
        self._invalidate_pending()
        self.store.set_current_session(None)
        self.current_session = None

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send_message(self, content: str, model_id: Optional[str] = None) -> SendResult:
        """Commits the user turn, dispatches, and commits the assistant turn.

        Raises
        ------
        BusyError
            If another send is still pending.
        PolyChatError
            The dispatcher's classified error, unchanged. The user message
            stays committed; no assistant message is created.
        """
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Message content must be a non-empty string")
        if self._pending:
            raise BusyError()

        self._pending = True
        token = CancellationToken()
        try:
            if self.current_session is None:
                await self.create_session(model_id or self._last_model)
            self._token = token
            session = self.current_session
            use_model = model_id or session.model_id

            history = self._recent_history(session.id)
            user_message = self.store.add_message(session.id, USER_ROLE, content)

            turns = [Turn(role=m.role, content=m.content) for m in history]
            turns.append(Turn(role=USER_ROLE, content=content))

            started = self._clock()
            try:
                result = await self.dispatcher.dispatch(use_model, turns, token=token)
            except PolyChatError as e:
                logger.warning("Send failed in session %s: [%s] %s", session.id, e.kind.value, e.message)
                raise
            token.raise_if_cancelled()
            elapsed_ms = int((self._clock() - started) * 1000)

            assistant_message = self.store.add_message(
                session.id,
                ASSISTANT_ROLE,
                result.text,
                model_id=use_model,
                token_count=result.token_count,
                response_time_ms=elapsed_ms,
            )
            self._last_model = use_model
            return SendResult(
                user_message=user_message,
                assistant_message=assistant_message,
                response_time_ms=elapsed_ms,
            )
        finally:
            self._pending = False
            if self._token is token:
                self._token = None

    def _recent_history(self, session_id: str) -> List[Message]:
        total = self.store.count_messages(session_id)
        offset = max(0, total - self.history_limit)
        return self.store.get_messages(session_id, limit=self.history_limit, offset=offset)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_conversation_history(self, limit: int = 100) -> List[Message]:
        session = self._require_session()
        return self.store.get_messages(session.id, limit=limit)

    async def list_user_sessions(self, limit: int = 50) -> List[SessionSummary]:
        return self.store.list_sessions(self.user_id, limit=limit)

    async def get_session_stats(self) -> SessionStats:
        session = self._require_session()
        return self.store.get_session_stats(session.id)

    async def get_available_models(self) -> List[ModelDescriptor]:
        return self.store.get_available_models()
