"""Request dispatch to the model provider with bounded retry.

Each failed attempt is classified exactly once (``errors.classify_error``).
Only retryable kinds (network, timeout, 5xx, rate limit) enter the backoff
loop; everything else fails fast.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, Field

from . import catalog
from .errors import CancelledError, MalformedResponseError, PolyChatError, ValidationError, classify_error
from .llm import LLM
from .models import SYSTEM_ROLE, DispatchResult, ModelDescriptor, Turn

logger = logging.getLogger(__name__)

TurnLike = Union[Turn, Dict[str, Any]]


class RetryPolicy(BaseModel):
    """Bounded exponential backoff: ``base_delay * 2 ** (attempt - 1)``."""

    attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0.0)

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2 ** (attempt - 1))


class CancellationToken:
    """Checked before each attempt and each backoff sleep."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CancelledError()


def to_wire_turns(turns: Sequence[TurnLike]) -> List[Dict[str, str]]:
    """Reduces turns to ``{role, content}``, dropping system-authored ones."""
    wire = []
    for turn in turns:
        role = turn.role if isinstance(turn, Turn) else turn.get("role")
        content = turn.content if isinstance(turn, Turn) else turn.get("content")
        if role == SYSTEM_ROLE:
            continue
        if role not in ("user", "assistant") or not isinstance(content, str):
            raise ValidationError(f"Malformed turn: {turn!r}")
        wire.append({"role": role, "content": content})
    return wire


class Dispatcher:
    """Sends one conversation turn-set to a model endpoint.

    Parameters
    ----------
    llm : LLM
        The provider backend.
    models : list of ModelDescriptor, optional
        Catalog used to resolve wire ids and generation parameters.
    retry : RetryPolicy, optional
        Defaults to 3 attempts with a 1 second base delay.
    sleep : callable, optional
        Awaitable sleep used between attempts. Defaults to ``asyncio.sleep``.
    """

    def __init__(
        self,
        llm: LLM,
        models: Optional[List[ModelDescriptor]] = None,
        retry: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.llm = llm
        self.models = models if models is not None else catalog.AI_MODELS
        self.retry = retry or RetryPolicy()
        self._sleep = sleep

    async def dispatch(
        self,
        model_id: str,
        turns: Sequence[TurnLike],
        token: Optional[CancellationToken] = None,
    ) -> DispatchResult:
        if not isinstance(model_id, str) or not model_id:
            raise ValidationError("model_id must be a non-empty string")
        payload = to_wire_turns(turns)
        if not payload:
            raise ValidationError("At least one user or assistant turn is required")

        descriptor = catalog.get_model(model_id, self.models)
        wire_model = descriptor.wire_id if descriptor else model_id
        params = catalog.get_model_config(model_id, self.models)

        logger.info("Dispatching %d turns to %s", len(payload), wire_model)
        attempt = 0
        while True:
            attempt += 1
            if token is not None:
                token.raise_if_cancelled()
            try:
                response = await self.llm.generate_response(payload, model=wire_model, **params)
            except Exception as exc:
                error = classify_error(exc)
                if not error.retryable or attempt >= self.retry.attempts:
                    logger.error(
                        "Dispatch to %s failed after %d attempt(s): [%s] %s",
                        wire_model,
                        attempt,
                        error.kind.value,
                        error.message,
                    )
                    if error is exc:
                        raise
                    raise error from exc
                delay = self.retry.delay_for(attempt)
                logger.warning(
                    "Attempt %d to %s failed with %s, retrying in %.1fs",
                    attempt,
                    wire_model,
                    error.kind.value,
                    delay,
                )
                if token is not None:
                    token.raise_if_cancelled()
                await self._sleep(delay)
                continue
            return self._parse(response)

    def _parse(self, response: Any) -> DispatchResult:
        try:
            text = self.llm.extract_content(response)
        except MalformedResponseError:
            logger.error("Response carried no completion choice")
            raise
        except (AttributeError, KeyError, IndexError, TypeError) as e:
            logger.error("Could not read completion from response: %s", e)
            raise MalformedResponseError() from e
        if not isinstance(text, str) or not text.strip():
            logger.error("Response completion text was empty")
            raise MalformedResponseError("The model returned an empty response.")

        usage = self.llm.extract_usage(response)
        return DispatchResult(
            text=text,
            token_count=int(usage.get("total_tokens") or 0),
            raw_model_id=self.llm.extract_model(response),
            usage=usage,
        )

    async def test_connection(self, model_id: Optional[str] = None) -> Dict[str, Any]:
        """Sends a one-turn probe. Never raises provider errors."""
        model_id = model_id or catalog.get_default_model(self.models).model_id
        try:
            await self.dispatch(model_id, [Turn(role="user", content="Hello, this is a test message.")])
        except PolyChatError as e:
            return {"success": False, "message": e.message}
        return {"success": True, "message": "API connection successful"}
