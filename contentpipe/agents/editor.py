"""Editor agent: script -> render plan -> uploaded placeholder -> video asset."""
from typing import Any, Dict, List
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
import structlog
from .base import BaseAgent, RunContext, parse_input
from .generation import (
    MOCK_RENDER_RESPONSE,
    RenderMetadata,
    RenderPlan,
    build_render_fallback_prompt,
    build_render_prompt,
    parse_render_plan,
)
from ..config import get_settings
from ..errors import NotFoundError
from ..models import VideoAsset
from ..providers.encoder import render_placeholder
from ..providers.llm import ModelProvider, create_model_provider
from ..providers.storage import StorageBackend, create_storage_backend
from ..resilience.fallback import ModelFallbackChain, ModelTier
from ..resilience.retry import retry_with_backoff
from ..store.base import SCRIPTS, VIDEO_ASSETS

log = structlog.get_logger()

VIDEO_CONTENT_TYPE = "video/mp4"


def default_storage_path(script_id: str) -> str:
    return f"videos/rendered/{script_id}.mp4"


def derive_style_tags(creative_variables: Dict[str, Any] | None, metadata: RenderMetadata) -> List[str]:
    """Lowercased, de-duplicated tags from the script style guide and the render plan."""
    candidates: list[Any] = []
    for key in ("tone", "style", "structure"):
        candidates.append((creative_variables or {}).get(key))
    candidates += [metadata.soundtrack, metadata.transitions]

    tags: list[str] = []
    for value in candidates:
        if isinstance(value, str) and value.strip():
            tag = value.strip().lower()
            if tag not in tags:
                tags.append(tag)
    return tags


class EditorInput(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    script_id: str = Field(..., min_length=1, validation_alias=AliasChoices("script_id", "scriptId"))
    override_storage_path: str | None = Field(
        default=None,
        min_length=1,
        validation_alias=AliasChoices("override_storage_path", "overrideStoragePath"),
    )


class EditorResult(BaseModel):
    asset_id: str
    asset: VideoAsset
    metadata: RenderMetadata


class EditorAgent(BaseAgent):
    name = "EditorAgent"

    def __init__(
        self,
        *args: Any,
        provider: ModelProvider | None = None,
        storage: StorageBackend | None = None,
        upload_max_attempts: int | None = None,
        upload_base_delay: float | None = None,
        sleep=None,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        settings = get_settings()
        self.chain = ModelFallbackChain(
            provider or create_model_provider(MOCK_RENDER_RESPONSE),
            ModelTier(settings.EDITOR_MODEL, settings.EDITOR_MAX_TOKENS, 0.35),
            ModelTier(settings.EDITOR_FALLBACK_MODEL, settings.EDITOR_FALLBACK_MAX_TOKENS, 0.35)
            if settings.EDITOR_FALLBACK_MODEL else None,
        )
        self.storage = storage or create_storage_backend()
        self.upload_max_attempts = upload_max_attempts or settings.UPLOAD_MAX_ATTEMPTS
        self.upload_base_delay = (
            upload_base_delay if upload_base_delay is not None else settings.UPLOAD_BASE_DELAY_S
        )
        self._sleep = sleep

    async def _upload(self, data: bytes, key: str, ctx: RunContext) -> str:
        async def on_retry(attempt: int, error: BaseException) -> None:
            self.metrics.record_upload_retry(self.storage.name)
            await self._safe_log_event(
                "system.retry",
                {
                    "operation": "video.assets.upload",
                    "storage_path": key,
                    "attempt": attempt,
                    "max_attempts": self.upload_max_attempts,
                    "message": str(error),
                },
                ctx,
                severity="warning",
            )

        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        return await retry_with_backoff(
            lambda: self.storage.upload(data, key, VIDEO_CONTENT_TYPE),
            max_attempts=self.upload_max_attempts,
            base_delay=self.upload_base_delay,
            on_retry=on_retry,
            **kwargs,
        )

    async def run(self, input: Any, ctx: RunContext) -> EditorResult:
        script_id = (input.get("script_id") or input.get("scriptId")) if isinstance(input, dict) else None
        try:
            params = parse_input(EditorInput, input, "editor input")
            script_id = params.script_id
            await self.log_event("video.render.start", {"script_id": params.script_id}, ctx)

            script = await self.records.get(SCRIPTS, params.script_id)
            if script is None:
                raise NotFoundError(f"Script {params.script_id} not found")
            await self.log_event(
                "context.script_loaded",
                {"script_id": params.script_id, "product_id": script.get("product_id")},
                ctx,
            )

            storage_hint = params.override_storage_path or default_storage_path(params.script_id)
            plan: RenderPlan = await self.chain.invoke(
                build_render_prompt(script, storage_hint),
                parse_render_plan,
                fallback_prompt=build_render_fallback_prompt(script, storage_hint),
                on_fallback=self.fallback_hook(ctx),
            )
            # An explicit override always wins over the model's refinement
            storage_path = params.override_storage_path or plan.storage_path

            await self.log_event(
                "video.assets.upload.start",
                {"script_id": params.script_id, "storage_path": storage_path, "backend": self.storage.name},
                ctx,
            )
            try:
                url = await self._upload(render_placeholder(plan), storage_path, ctx)
            except Exception as upload_error:
                await self._safe_log_event(
                    "video.assets.upload.error",
                    {"script_id": params.script_id, "storage_path": storage_path, "message": str(upload_error)},
                    ctx,
                )
                raise
            await self.log_event(
                "video.assets.upload.success",
                {"script_id": params.script_id, "storage_path": storage_path, "url": url},
                ctx,
            )

            row = await self.insert_record(VIDEO_ASSETS, {
                "script_id": params.script_id,
                "storage_path": storage_path,
                "url": url,
                "duration_seconds": plan.duration_seconds,
                "thumbnail_path": plan.thumbnail_path,
                "style_tags": derive_style_tags(script.get("creative_variables"), plan.metadata),
                "metadata": plan.metadata.model_dump(exclude_none=True),
            })
            asset = VideoAsset.model_validate(row)
            await self.log_event(
                "video.assets.created",
                {"asset_id": asset.id, "script_id": params.script_id, "storage_path": storage_path},
                ctx,
            )

            note = await self.store_note(
                "video_render",
                f"Rendered asset {asset.id} for script {params.script_id} "
                f"({len(plan.metadata.beats)} beats, {plan.duration_seconds or 'unknown'}s)",
            )
            await self.log_event("memory.note_stored", {"note_id": note.id, "asset_id": asset.id}, ctx)

            await self.log_event(
                "video.render.success", {"script_id": params.script_id, "asset_id": asset.id}, ctx
            )
            return EditorResult(asset_id=asset.id, asset=asset, metadata=plan.metadata)
        except Exception as e:
            await self._safe_log_event("video.render.error", {"script_id": script_id, "message": str(e)}, ctx)
            await self.handle_error(f"{self.name}.run", e, ctx)
