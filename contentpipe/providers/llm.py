"""Model provider adapters.

Adapters translate provider-specific failures into a tagged ``ProviderError``
so callers switch on ``ProviderErrorKind`` instead of matching messages.
"""
from abc import ABC, abstractmethod
from typing import Any, Iterable
import structlog
import openai
from openai import AsyncOpenAI
from ..config import get_settings
from ..errors import ProviderError, ProviderErrorKind

log = structlog.get_logger()

REASONING_MODEL_PREFIXES = ("o1", "o3", "o4")


def is_reasoning_model(model: str) -> bool:
    normalized = model.lower()
    return normalized.startswith(REASONING_MODEL_PREFIXES) or "gpt-5" in normalized


class ModelProvider(ABC):
    """Narrow interface over a text-generation provider."""

    @abstractmethod
    async def invoke(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """
        Run one completion and return its raw text.

        Raises:
            ProviderError: tagged with the failure kind
        """
        pass


class OpenAIModelProvider(ModelProvider):
    """Chat-completions adapter over the OpenAI SDK."""

    def __init__(self, api_key: str | None = None, timeout_s: float | None = None, client: AsyncOpenAI | None = None):
        settings = get_settings()
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.timeout_s = timeout_s or settings.SCRIPTWRITER_TIMEOUT_S
        self._client = client

    def _get_client(self, model: str) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise ProviderError(
                    ProviderErrorKind.INVALID_CREDENTIALS,
                    "OpenAI credentials are required for model invocation.",
                    model=model,
                )
            # Retries are handled by the fallback chain, not hidden in the SDK
            self._client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout_s, max_retries=0)
        return self._client

    def _request_params(self, model: str, max_tokens: int | None, temperature: float | None) -> dict[str, Any]:
        params: dict[str, Any] = {"model": model}
        if is_reasoning_model(model):
            # Reasoning models only accept max_completion_tokens and no temperature
            if max_tokens:
                params["max_completion_tokens"] = max_tokens
            params["reasoning_effort"] = "low"
        else:
            if max_tokens:
                params["max_tokens"] = max_tokens
            if temperature is not None:
                params["temperature"] = temperature
        return params

    async def invoke(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        client = self._get_client(model)
        try:
            response = await client.chat.completions.create(
                messages=[{"role": "user", "content": prompt}],
                **self._request_params(model, max_tokens, temperature),
            )
        except openai.APITimeoutError as e:
            raise ProviderError(ProviderErrorKind.TIMEOUT, f"Request timed out: {e}", model=model) from e
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise ProviderError(ProviderErrorKind.INVALID_CREDENTIALS, str(e), model=model) from e
        except openai.BadRequestError as e:
            message = str(e)
            kind = (
                ProviderErrorKind.UNSUPPORTED_PARAMETER
                if "unsupported" in message.lower()
                else ProviderErrorKind.UNKNOWN
            )
            raise ProviderError(kind, message, model=model) from e
        except openai.OpenAIError as e:
            raise ProviderError(ProviderErrorKind.UNKNOWN, str(e), model=model) from e

        if not response.choices:
            raise ProviderError(ProviderErrorKind.MALFORMED_OUTPUT, "Model returned no choices.", model=model)

        choice = response.choices[0]
        content = (choice.message.content or "").strip()
        if not content:
            finish_reason = choice.finish_reason or "unknown"
            kind = (
                ProviderErrorKind.OUTPUT_TRUNCATED
                if finish_reason == "length"
                else ProviderErrorKind.MALFORMED_OUTPUT
            )
            raise ProviderError(
                kind,
                f"Model returned empty content (finish_reason={finish_reason}, model={model}).",
                model=model,
            )
        return content


class StaticModelProvider(ModelProvider):
    """
    Deterministic provider for local runs and tests.

    Returns queued responses in order (the last one repeats); queued exceptions
    are raised instead of returned. Every call is recorded in ``calls``.
    """

    def __init__(self, responses: Iterable[str | BaseException] | str):
        if isinstance(responses, str):
            responses = [responses]
        self._responses = list(responses)
        if not self._responses:
            raise ValueError("StaticModelProvider needs at least one response")
        self.calls: list[dict[str, Any]] = []

    async def invoke(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        self.calls.append(
            {"prompt": prompt, "model": model, "max_tokens": max_tokens, "temperature": temperature}
        )
        index = min(len(self.calls) - 1, len(self._responses) - 1)
        response = self._responses[index]
        if isinstance(response, BaseException):
            raise response
        return response


def create_model_provider(mock_response: str) -> ModelProvider:
    """OpenAI provider, or a static one replaying ``mock_response`` in mock mode."""
    if get_settings().use_mock_llm:
        log.info("model.provider.selected", provider="static")
        return StaticModelProvider(mock_response)
    return OpenAIModelProvider()
