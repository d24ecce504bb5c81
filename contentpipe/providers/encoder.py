"""Placeholder video encoder used when no real renderer is configured."""
import orjson
from ..agents.generation import RenderPlan

PLACEHOLDER_MAGIC = b"CPVIDEO1\n"


def render_placeholder(plan: RenderPlan) -> bytes:
    """Encode the render plan as a deterministic stand-in for video bytes."""
    manifest = {
        "storage_path": plan.storage_path,
        "duration_seconds": plan.duration_seconds,
        "title": plan.metadata.title,
        "beats": [beat.model_dump() for beat in plan.metadata.beats],
    }
    return PLACEHOLDER_MAGIC + orjson.dumps(manifest, option=orjson.OPT_SORT_KEYS)
