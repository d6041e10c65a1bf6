"""Concrete implementations for LLM providers.

Every provider is async and returns its SDK's native response object; the
``extract_*`` methods normalize that object for the dispatcher. Provider SDKs
are imported lazily so only the one in use has to be installed.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .config import DEFAULT_BASE_URL, DEFAULT_MODEL
from .errors import AuthError, MalformedResponseError

logger = logging.getLogger(__name__)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Reads ``name`` from a dict or an SDK object alike."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class LLM(ABC):
    """Abstract Base Class for all LLM providers."""

    model: str

    @abstractmethod
    async def generate_response(
        self, messages: List[Dict[str, Any]], model: Optional[str] = None, **kwargs: Any
    ) -> Any:
        """Generates a response from the LLM provider.

        Parameters
        ----------
        messages : List[Dict[str, Any]]
            ``{role, content}`` turns, oldest first.
        model : str, optional
            Provider model identifier. Falls back to the provider default.
        **kwargs : Any
            Generation parameters (max_tokens, temperature, top_p).

        Returns
        -------
        Any
            The provider's native response object.
        """
        pass

    @abstractmethod
    def extract_content(self, response: Any) -> str:
        """Extracts the completion text from the native response.

        Raises
        ------
        MalformedResponseError
            If the response carries no completion choice.
        """
        pass

    def extract_usage(self, response: Any) -> Dict[str, Any]:
        """Token usage as ``{prompt_tokens, completion_tokens, total_tokens}``."""
        return {}

    def extract_model(self, response: Any) -> Optional[str]:
        """The model id the provider reports having used."""
        return _field(response, "model")


class OpenAI(LLM):
    """OpenAI chat completions, or any OpenAI-compatible endpoint."""

    def __init__(
        self,
        default_model: str = "gpt-4o",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        default_headers: Optional[Dict[str, str]] = None,
    ):
        self.model = default_model
        self.api_key = api_key if api_key is not None else os.getenv("OPENAI_API_KEY", "")
        self.base_url = base_url
        self.client = None
        if self.api_key:
            from openai import AsyncOpenAI

            # Retries are owned by the dispatcher.
            self.client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=base_url,
                timeout=timeout,
                max_retries=0,
                default_headers=default_headers,
            )

    async def generate_response(self, messages, model=None, **kwargs):
        if self.client is None:
            raise AuthError(
                "API key is not configured. Please check your .env file and restart the app."
            )
        return await self.client.chat.completions.create(
            messages=messages, model=model or self.model, stream=False, **kwargs
        )

    def extract_content(self, response: Any) -> str:
        choices = _field(response, "choices") or []
        if not choices:
            raise MalformedResponseError()
        message = _field(choices[0], "message")
        if message is None:
            raise MalformedResponseError()
        content = _field(message, "content")
        if isinstance(content, list):
            text_part = next((p for p in content if _field(p, "type") == "text"), None)
            return (_field(text_part, "text") or "") if text_part is not None else ""
        return content or ""

    def extract_usage(self, response: Any) -> Dict[str, Any]:
        usage = _field(response, "usage")
        if usage is None:
            return {}
        if not isinstance(usage, dict):
            usage = usage.model_dump() if hasattr(usage, "model_dump") else dict(vars(usage))
        return {k: v for k, v in usage.items() if v is not None}


class OpenRouter(OpenAI):
    """OpenRouter's OpenAI-compatible endpoint. The default provider."""

    def __init__(
        self,
        default_model: str = DEFAULT_MODEL,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        referer: str = "http://localhost:8050",
        title: str = "PolyChat - Multi-Model AI Chat",
    ):
        super().__init__(
            default_model=default_model,
            api_key=api_key if api_key is not None else os.getenv("OPENROUTER_API_KEY", ""),
            base_url=base_url,
            timeout=timeout,
            default_headers={"HTTP-Referer": referer, "X-Title": title},
        )
        logger.debug("OpenRouter provider ready (api key present: %s)", bool(self.api_key))


class Anthropic(LLM):
    def __init__(self, default_model: str = "claude-3-5-sonnet-20241022", api_key: Optional[str] = None):
        from anthropic import AsyncAnthropic

        self.client = AsyncAnthropic(
            api_key=api_key or os.environ["ANTHROPIC_API_KEY"], max_retries=0
        )
        self.model = default_model

    async def generate_response(self, messages, model=None, **kwargs):
        if "max_tokens" not in kwargs:
            kwargs["max_tokens"] = 4096
        return await self.client.messages.create(
            model=model or self.model, messages=messages, **kwargs
        )

    def extract_content(self, response: Any) -> str:
        blocks = _field(response, "content") or []
        if not blocks:
            raise MalformedResponseError()
        return "".join(_field(b, "text") or "" for b in blocks if _field(b, "type") == "text")

    def extract_usage(self, response: Any) -> Dict[str, Any]:
        usage = _field(response, "usage")
        if usage is None:
            return {}
        prompt = _field(usage, "input_tokens") or 0
        completion = _field(usage, "output_tokens") or 0
        return {
            "prompt_tokens": prompt,
            "completion_tokens": completion,
            "total_tokens": prompt + completion,
        }


class Ollama(LLM):
    def __init__(self, default_model: str = "llama3.1", host: Optional[str] = None):
        from ollama import AsyncClient

        self.client = AsyncClient(host=host)
        self.model = default_model

    async def generate_response(self, messages, model=None, **kwargs):
        options = {}
        if "max_tokens" in kwargs:
            options["num_predict"] = kwargs.pop("max_tokens")
        for key in ("temperature", "top_p"):
            if key in kwargs:
                options[key] = kwargs.pop(key)
        return await self.client.chat(
            model=model or self.model, messages=messages, options=options or None, **kwargs
        )

    def extract_content(self, response: Any) -> str:
        message = _field(response, "message")
        if message is None:
            raise MalformedResponseError()
        return _field(message, "content") or ""

    def extract_usage(self, response: Any) -> Dict[str, Any]:
        prompt = _field(response, "prompt_eval_count") or 0
        completion = _field(response, "eval_count") or 0
        return {
            "prompt_tokens": prompt,
            "completion_tokens": completion,
            "total_tokens": prompt + completion,
        }


class Echo(LLM):
    """Offline provider that answers with the last user prompt."""

    def __init__(self, default_model: str = "echo-v1", delay: float = 0.8):
        self.model = default_model
        self.delay = delay

    async def generate_response(self, messages, model=None, **kwargs):
        await asyncio.sleep(self.delay)
        user_prompt = messages[-1]["content"] if messages else "No message provided"
        content = f"**Echo LLM - static response for testing**\n\n_Your prompt:_\n\n{user_prompt}"
        tokens = len(content.split())
        return {
            "model": model or self.model,
            "choices": [{"message": {"role": "assistant", "content": content}}],
            "usage": {"prompt_tokens": 0, "completion_tokens": tokens, "total_tokens": tokens},
        }

    def extract_content(self, response: Any) -> str:
        choices = _field(response, "choices") or []
        if not choices:
            raise MalformedResponseError()
        return choices[0]["message"]["content"]

    def extract_usage(self, response: Any) -> Dict[str, Any]:
        return dict(_field(response, "usage") or {})
