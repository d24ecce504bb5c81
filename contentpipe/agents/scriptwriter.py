"""Scriptwriter agent: product + pattern + trend context -> persisted script."""
from typing import Any, List
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
import structlog
from .base import BaseAgent, RunContext, parse_input
from .generation import (
    MOCK_SCRIPT_RESPONSE,
    build_script_fallback_prompt,
    build_script_prompt,
    parse_script_output,
)
from ..config import get_settings
from ..errors import NotFoundError
from ..models import Script
from ..providers.llm import ModelProvider, create_model_provider
from ..resilience.fallback import ModelFallbackChain, ModelTier
from ..store.base import AGENT_NOTES, PATTERNS, PRODUCTS, SCRIPTS, TRENDS, gte

log = structlog.get_logger()

TREND_CONTEXT_SIZE = 5
NOTE_CONTEXT_SIZE = 5
IMPORTANT_NOTE_THRESHOLD = 3


class ScriptwriterInput(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    product_id: str = Field(..., min_length=1, validation_alias=AliasChoices("product_id", "productId"))
    pattern_id: str = Field(..., min_length=1, validation_alias=AliasChoices("pattern_id", "patternId"))
    warmup_notes: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("warmup_notes", "warmupNotes")
    )


class ScriptwriterResult(BaseModel):
    script_id: str
    script: Script


class ScriptwriterAgent(BaseAgent):
    name = "ScriptwriterAgent"

    def __init__(self, *args: Any, provider: ModelProvider | None = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        settings = get_settings()
        self.chain = ModelFallbackChain(
            provider or create_model_provider(MOCK_SCRIPT_RESPONSE),
            ModelTier(settings.SCRIPTWRITER_MODEL, settings.SCRIPTWRITER_MAX_TOKENS, 0.7),
            ModelTier(settings.SCRIPTWRITER_FALLBACK_MODEL, settings.SCRIPTWRITER_FALLBACK_MAX_TOKENS, 0.7)
            if settings.SCRIPTWRITER_FALLBACK_MODEL else None,
        )

    async def _load_trends(self, category: str | None) -> list[dict[str, Any]]:
        """Most recent trends, those in the product's category first."""
        trends = await self.records.select(TRENDS, order_by="captured_at", descending=True, limit=50)
        if category:
            trends.sort(key=lambda trend: trend.get("category") != category)
        return trends[:TREND_CONTEXT_SIZE]

    async def _load_notes(self) -> list[dict[str, Any]]:
        return await self.records.select(
            AGENT_NOTES,
            filters=[gte("importance", IMPORTANT_NOTE_THRESHOLD)],
            order_by="created_at",
            descending=True,
            limit=NOTE_CONTEXT_SIZE,
        )

    async def run(self, input: Any, ctx: RunContext) -> ScriptwriterResult:
        product_id = (input.get("product_id") or input.get("productId")) if isinstance(input, dict) else None
        try:
            params = parse_input(ScriptwriterInput, input, "scriptwriter input")
            product_id = params.product_id
            await self.log_event(
                "script.generate.start",
                {"product_id": params.product_id, "pattern_id": params.pattern_id},
                ctx,
            )

            product = await self.records.get(PRODUCTS, params.product_id)
            if product is None:
                raise NotFoundError(f"Product {params.product_id} not found")
            pattern = await self.records.get(PATTERNS, params.pattern_id)
            if pattern is None:
                raise NotFoundError(f"Pattern {params.pattern_id} not found")
            await self.log_event("context.product_loaded", {"product_id": params.product_id}, ctx)

            trends = await self._load_trends(product.get("category"))
            notes = await self._load_notes()
            await self.log_event(
                "context.trends_loaded",
                {"product_id": params.product_id, "trend_count": len(trends), "note_count": len(notes)},
                ctx,
            )

            draft = await self.chain.invoke(
                build_script_prompt(product, pattern, trends, notes, params.warmup_notes),
                parse_script_output,
                fallback_prompt=build_script_fallback_prompt(product, pattern),
                on_fallback=self.fallback_hook(ctx),
            )

            creative_variables = draft.creative_variables.model_dump(exclude_none=True) if draft.creative_variables else {}
            creative_variables.setdefault("pattern_id", params.pattern_id)
            if trends and "trend_tags" not in creative_variables:
                creative_variables["trend_tags"] = sorted({tag for t in trends for tag in t.get("tags") or []})

            row = await self.insert_record(SCRIPTS, {
                "product_id": params.product_id,
                "pattern_id": params.pattern_id,
                "title": draft.title,
                "hook": draft.hook,
                "outline": draft.outline,
                "script_text": draft.script_text,
                "cta": draft.cta,
                "creative_variables": creative_variables,
            })
            script = Script.model_validate(row)
            await self.log_event(
                "db.script_stored", {"product_id": params.product_id, "script_id": script.id}, ctx
            )

            note = await self.store_note(
                "script_generation",
                f"Generated script '{script.title}' for product {product.get('name') or params.product_id} "
                f"with pattern {pattern.get('name') or params.pattern_id} "
                f"({len(trends)} trends, {len(notes)} notes, {len(params.warmup_notes)} warmup notes)",
            )
            await self.log_event("memory.note_stored", {"note_id": note.id, "product_id": params.product_id}, ctx)

            await self.log_event(
                "script.generate.success", {"product_id": params.product_id, "script_id": script.id}, ctx
            )
            log.info("script.generated", script_id=script.id, product_id=params.product_id)
            return ScriptwriterResult(script_id=script.id, script=script)
        except Exception as e:
            await self._safe_log_event(
                "script.generate.error", {"product_id": product_id, "message": str(e)}, ctx
            )
            await self.handle_error(f"{self.name}.run", e, ctx)
