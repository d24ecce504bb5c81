"""Two-tier model fallback chain for non-deterministic generation calls."""
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar
import pydantic
import structlog
from ..errors import (
    FallbackFailed,
    ModelInvocationError,
    ProviderError,
    ProviderErrorKind,
)
from ..providers.llm import ModelProvider

log = structlog.get_logger()

T = TypeVar("T")

RETRYABLE_KINDS = frozenset({
    ProviderErrorKind.TIMEOUT,
    ProviderErrorKind.UNSUPPORTED_PARAMETER,
    ProviderErrorKind.MALFORMED_OUTPUT,
    ProviderErrorKind.OUTPUT_TRUNCATED,
})

FallbackHook = Callable[[str, str, BaseException], Awaitable[None]]


def is_retryable(error: BaseException) -> bool:
    """Whether a failed attempt is worth one try on the fallback model."""
    if isinstance(error, ProviderError):
        return error.kind in RETRYABLE_KINDS
    # Model output that parsed but failed schema validation
    return isinstance(error, pydantic.ValidationError)


def failure_reason(error: BaseException) -> str:
    if isinstance(error, ProviderError):
        return error.kind.value
    if isinstance(error, pydantic.ValidationError):
        return ProviderErrorKind.MALFORMED_OUTPUT.value
    return ProviderErrorKind.UNKNOWN.value


@dataclass(frozen=True)
class ModelTier:
    model: str
    max_tokens: int | None = None
    temperature: float | None = None


class ModelFallbackChain(Generic[T]):
    """
    Primary attempt plus at most one fallback attempt.

    Fatal failures (e.g. missing credentials) propagate immediately as
    ``ModelInvocationError``. Retryable failures use the fallback tier only
    when its model differs from the primary one.
    """

    def __init__(
        self,
        provider: ModelProvider,
        primary: ModelTier,
        fallback: ModelTier | None = None,
        on_fallback: FallbackHook | None = None,
    ):
        self.provider = provider
        self.primary = primary
        self.fallback = fallback
        self.on_fallback = on_fallback

    @property
    def has_distinct_fallback(self) -> bool:
        return self.fallback is not None and self.fallback.model != self.primary.model

    async def _attempt(self, tier: ModelTier, prompt: str, parse: Callable[[str], T]) -> T:
        raw = await self.provider.invoke(
            prompt,
            model=tier.model,
            max_tokens=tier.max_tokens,
            temperature=tier.temperature,
        )
        return parse(raw)

    async def invoke(
        self,
        prompt: str,
        parse: Callable[[str], T],
        fallback_prompt: str | None = None,
        on_fallback: FallbackHook | None = None,
    ) -> T:
        """
        Run the chain.

        Args:
            prompt: Prompt for the primary model
            parse: Turns raw model text into the structured result; may raise
                ``ProviderError`` or ``pydantic.ValidationError``
            fallback_prompt: Shorter prompt for the fallback tier (defaults to ``prompt``)
            on_fallback: Awaited with (primary_model, fallback_model, error)
                before the fallback attempt; overrides the chain-level hook

        Raises:
            ModelInvocationError: Fatal failure, or retryable with no distinct fallback
            FallbackFailed: Both tiers failed
        """
        try:
            return await self._attempt(self.primary, prompt, parse)
        except Exception as e:
            primary_error = e

        if not is_retryable(primary_error) or not self.has_distinct_fallback:
            log.warning(
                "model.invocation_failed",
                model=self.primary.model,
                reason=failure_reason(primary_error),
                retryable=is_retryable(primary_error),
                error=str(primary_error),
            )
            raise ModelInvocationError(
                f"Model invocation failed on {self.primary.model}: {primary_error}",
                details={"model": self.primary.model, "reason": failure_reason(primary_error)},
            ) from primary_error

        fallback = self.fallback
        log.warning(
            "model.fallback",
            primary_model=self.primary.model,
            fallback_model=fallback.model,
            reason=failure_reason(primary_error),
        )
        hook = on_fallback or self.on_fallback
        if hook is not None:
            await hook(self.primary.model, fallback.model, primary_error)

        try:
            return await self._attempt(fallback, fallback_prompt or prompt, parse)
        except Exception as fallback_error:
            raise FallbackFailed(
                self.primary.model, primary_error, fallback.model, fallback_error
            ) from fallback_error
