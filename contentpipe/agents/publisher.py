"""Publisher agent: fan an asset out to platforms and record each post.

A named experiment is updated once and shared by every platform's post;
otherwise each platform gets its own experiment row. Posts are written
sequentially and outcomes are reported per platform so completed writes are
never lost: in fail-fast mode they ride on the raised ``PersistenceError``,
otherwise the run returns with a ``partial`` status.
"""
from datetime import datetime
from typing import Any, List, Literal
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
import structlog
from .base import BaseAgent, RunContext, parse_input
from ..errors import NotFoundError, PersistenceError, ValidationError
from ..event_models import utcnow
from ..models import Experiment, Platform, PublishedPost, VideoAsset
from ..store.base import EXPERIMENTS, PUBLISHED_POSTS, VIDEO_ASSETS

log = structlog.get_logger()

DEFAULT_PLATFORM: Platform = "youtube"


class PublishPlatform(BaseModel):
    platform: Platform
    title: str | None = None
    description: str | None = None
    tags: List[str] = Field(default_factory=list)


class PublishRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    asset_id: str | None = Field(default=None, min_length=1, validation_alias=AliasChoices("asset_id", "assetId"))
    experiment_id: str | None = Field(
        default=None, min_length=1, validation_alias=AliasChoices("experiment_id", "experimentId")
    )
    script_id: str | None = Field(default=None, validation_alias=AliasChoices("script_id", "scriptId"))
    product_id: str | None = Field(default=None, validation_alias=AliasChoices("product_id", "productId"))
    video_url: str | None = Field(default=None, validation_alias=AliasChoices("video_url", "videoUrl"))
    platforms: List[PublishPlatform] = Field(default_factory=list)
    fail_fast: bool | None = Field(default=None, validation_alias=AliasChoices("fail_fast", "failFast"))

    @field_validator("platforms", mode="before")
    @classmethod
    def _platform_names(cls, value: Any) -> Any:
        # Bare platform names are shorthand for {"platform": name}
        if isinstance(value, list):
            return [{"platform": item} if isinstance(item, str) else item for item in value]
        return value

    @model_validator(mode="after")
    def _needs_target(self) -> "PublishRequest":
        if not self.asset_id and not self.experiment_id:
            raise ValueError("asset_id or experiment_id is required")
        return self


class PublishResult(BaseModel):
    platform: Platform
    status: Literal["published"] = "published"
    url: str
    external_id: str
    published_at: datetime
    notes: str | None = None


class PlatformOutcome(BaseModel):
    platform: Platform
    status: Literal["persisted", "failed", "skipped"]
    result: PublishResult | None = None
    experiment: Experiment | None = None
    post: PublishedPost | None = None
    error: str | None = None


class PublisherResult(BaseModel):
    status: Literal["published", "partial"]
    asset: VideoAsset
    experiment_id: str | None = None
    outcomes: List[PlatformOutcome]

    @property
    def experiments(self) -> List[Experiment]:
        seen: dict[str, Experiment] = {}
        for outcome in self.outcomes:
            if outcome.experiment is not None:
                seen.setdefault(outcome.experiment.id, outcome.experiment)
        return list(seen.values())

    @property
    def posts(self) -> List[PublishedPost]:
        return [o.post for o in self.outcomes if o.post is not None]


def simulate_publish(asset_id: str, platforms: List[PublishPlatform], video_url: str | None) -> List[PublishResult]:
    published_at = utcnow()
    results = []
    for index, target in enumerate(platforms):
        slug = f"{target.platform}-{asset_id[:8]}-{index + 1}"
        results.append(PublishResult(
            platform=target.platform,
            url=video_url or f"https://{target.platform}.example.com/watch/{slug}",
            external_id=f"mock-{slug}",
            published_at=published_at,
            notes=target.description or target.title or "Mock publish completed",
        ))
    return results


class PublisherAgent(BaseAgent):
    name = "PublisherAgent"

    def __init__(self, *args: Any, fail_fast: bool = True, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.fail_fast = fail_fast

    async def _resolve_asset(
        self, request: PublishRequest
    ) -> tuple[VideoAsset, str | None, str | None]:
        asset_id = request.asset_id
        script_id = request.script_id
        product_id = request.product_id

        if request.experiment_id:
            experiment = await self.records.get(EXPERIMENTS, request.experiment_id)
            if experiment is None:
                raise NotFoundError(f"Experiment {request.experiment_id} not found")
            asset_id = asset_id or experiment.get("asset_id")
            script_id = script_id or experiment.get("script_id")
            product_id = product_id or experiment.get("product_id")

        if not asset_id:
            raise ValidationError("asset_id is required when the experiment does not provide one")

        row = await self.records.get(VIDEO_ASSETS, asset_id)
        if row is None:
            raise NotFoundError(f"Video asset {asset_id} not found")
        asset = VideoAsset.model_validate(row)
        return asset, script_id or asset.script_id, product_id

    def _experiment_fields(
        self, platform: Platform, asset: VideoAsset, script_id: str | None, product_id: str | None
    ) -> dict[str, Any]:
        return {
            "asset_id": asset.id,
            "script_id": script_id,
            "product_id": product_id,
            "hypothesis": f"Mock publish to {platform}",
            "variation_label": platform,
        }

    async def _update_experiment(self, experiment_id: str, fields: dict[str, Any]) -> Experiment:
        try:
            row = await self.records.update(EXPERIMENTS, experiment_id, fields)
        except Exception as e:
            raise PersistenceError(
                f"Failed to update experiment {experiment_id}: {e}",
                details={"experiment_id": experiment_id},
            ) from e
        if row is None:
            raise NotFoundError(f"Experiment {experiment_id} not found")
        return Experiment.model_validate(row)

    async def _persist(
        self,
        result: PublishResult,
        asset: VideoAsset,
        script_id: str | None,
        product_id: str | None,
        experiment: Experiment | None,
    ) -> PlatformOutcome:
        if experiment is None:
            row = await self.records.insert(
                EXPERIMENTS, self._experiment_fields(result.platform, asset, script_id, product_id)
            )
            experiment = Experiment.model_validate(row)

        post_row = await self.records.insert(PUBLISHED_POSTS, {
            "experiment_id": experiment.id,
            "platform": result.platform,
            "external_id": result.external_id,
            "url": result.url,
            "posted_at": result.published_at,
        })
        return PlatformOutcome(
            platform=result.platform,
            status="persisted",
            result=result,
            experiment=experiment,
            post=PublishedPost.model_validate(post_row),
        )

    async def run(self, input: Any, ctx: RunContext) -> PublisherResult:
        asset_id = None
        try:
            await self.log_event("publish.start", {"input": input}, ctx)
            request = parse_input(PublishRequest, input, "publish request")
            fail_fast = self.fail_fast if request.fail_fast is None else request.fail_fast
            asset, script_id, product_id = await self._resolve_asset(request)
            asset_id = asset.id

            platforms = request.platforms or [PublishPlatform(platform=DEFAULT_PLATFORM)]
            video_url = request.video_url or asset.url or asset.storage_path
            results = simulate_publish(asset.id, platforms, video_url)

            experiment = None
            if request.experiment_id:
                # The named experiment takes the first platform and is shared by every post
                experiment = await self._update_experiment(
                    request.experiment_id,
                    self._experiment_fields(results[0].platform, asset, script_id, product_id),
                )

            outcomes: list[PlatformOutcome] = []
            for index, result in enumerate(results):
                try:
                    outcome = await self._persist(result, asset, script_id, product_id, experiment)
                except Exception as e:
                    log.warning("publish.platform_failed", platform=result.platform, error=str(e))
                    outcomes.append(PlatformOutcome(
                        platform=result.platform, status="failed", result=result, error=str(e)
                    ))
                    if fail_fast:
                        outcomes += [
                            PlatformOutcome(platform=skipped.platform, status="skipped", result=skipped)
                            for skipped in results[index + 1:]
                        ]
                        raise PersistenceError(
                            f"Failed to persist publish for {result.platform}: {e}",
                            details={"outcomes": [o.model_dump(mode="json") for o in outcomes]},
                        ) from e
                    continue
                outcomes.append(outcome)

            failed = [o.platform for o in outcomes if o.status == "failed"]
            response = PublisherResult(
                status="partial" if failed else "published",
                asset=asset,
                experiment_id=request.experiment_id,
                outcomes=outcomes,
            )
            await self.log_event(
                "publish.success",
                {
                    "asset_id": asset.id,
                    "script_id": script_id,
                    "product_id": product_id,
                    "experiment_id": request.experiment_id,
                    "status": response.status,
                    "platforms": [r.platform for r in results],
                    "failed_platforms": failed,
                },
                ctx,
                severity="warning" if failed else None,
            )
            return response
        except Exception as e:
            error_payload = {"asset_id": asset_id, "message": str(e)}
            if isinstance(e, PersistenceError):
                error_payload["outcomes"] = e.details.get("outcomes", [])
            await self._safe_log_event("publish.error", error_payload, ctx)
            await self.handle_error(f"{self.name}.run", e, ctx)
