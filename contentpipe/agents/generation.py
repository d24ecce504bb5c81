"""Prompts and structured-output parsers for the generation agents.

Parsers raise ``ProviderError(MALFORMED_OUTPUT)`` for text that is not JSON and
let ``pydantic.ValidationError`` through for JSON that misses the schema; the
fallback chain treats both as retryable.
"""
from typing import Any, Dict, List
from pydantic import BaseModel, ConfigDict, Field, field_validator
import orjson
from ..errors import ProviderError, ProviderErrorKind


class CreativeVariables(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tone: str | None = Field(default=None, min_length=1)
    structure: str | None = Field(default=None, min_length=1)
    style: str | None = Field(default=None, min_length=1)
    pattern_id: str | None = None
    trend_tags: List[str] | None = None


class ScriptDraft(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    title: str = Field(..., min_length=1)
    hook: str = Field(..., min_length=5, max_length=100)
    outline: List[str] = Field(..., min_length=3, max_length=7)
    script_text: str = Field(..., min_length=50)
    cta: str = Field(..., min_length=1)
    creative_variables: CreativeVariables | None = None

    @field_validator("outline")
    @classmethod
    def _clean_outline(cls, value: List[str]) -> List[str]:
        cleaned = [line.strip() for line in value if line and line.strip()]
        if len(cleaned) < 3:
            raise ValueError("outline needs at least 3 non-empty items")
        return cleaned


class Beat(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    timestamp: str = Field(..., min_length=1)
    visual: str = Field(..., min_length=1)
    narration: str = Field(..., min_length=1)


class RenderMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    title: str = Field(..., min_length=1)
    summary: str = Field(..., min_length=1)
    beats: List[Beat] = Field(..., min_length=1)
    soundtrack: str | None = Field(default=None, min_length=1)
    transitions: str | None = Field(default=None, min_length=1)


class RenderPlan(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    storage_path: str = Field(..., min_length=1)
    thumbnail_path: str | None = Field(default=None, min_length=1)
    duration_seconds: int | None = Field(default=None, gt=0)
    metadata: RenderMetadata


def strip_code_fences(raw: str) -> str:
    text = raw.strip()
    if not text.startswith("```"):
        return text
    text = text[3:]
    if text[:4].lower() == "json":
        text = text[4:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def extract_json_object(raw: str) -> Dict[str, Any]:
    """
    Pull the JSON object out of a model reply.

    Tolerates markdown fences and prose around the object.

    Raises:
        ProviderError: MALFORMED_OUTPUT when no JSON object can be decoded
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ProviderError(ProviderErrorKind.MALFORMED_OUTPUT, "Model output is empty.")

    text = strip_code_fences(raw)
    if not (text.startswith("{") and text.endswith("}")):
        first, last = text.find("{"), text.rfind("}")
        if first != -1 and last > first:
            text = text[first:last + 1]

    try:
        parsed = orjson.loads(text)
    except orjson.JSONDecodeError as e:
        raise ProviderError(ProviderErrorKind.MALFORMED_OUTPUT, f"Model output is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ProviderError(ProviderErrorKind.MALFORMED_OUTPUT, "Model output is not a JSON object.")
    return parsed


def parse_script_output(raw: str) -> ScriptDraft:
    return ScriptDraft.model_validate(extract_json_object(raw))


def parse_render_plan(raw: str) -> RenderPlan:
    data = extract_json_object(raw)
    # Accept camelCase keys as well
    for camel, snake in (
        ("storagePath", "storage_path"),
        ("thumbnailPath", "thumbnail_path"),
        ("durationSeconds", "duration_seconds"),
    ):
        if camel in data and snake not in data:
            data[snake] = data.pop(camel)
    return RenderPlan.model_validate(data)


SCRIPT_FORMAT = """Respond with a single JSON object and nothing else:
{
  "title": string,
  "hook": string (5-100 characters),
  "outline": [3-7 short strings],
  "script_text": string (at least 50 characters),
  "cta": string,
  "creative_variables": {"tone": string, "structure": string, "style": string, "trend_tags": [string]}
}"""

RENDER_FORMAT = """Respond with a single JSON object and nothing else:
{
  "storage_path": string,
  "thumbnail_path": string,
  "duration_seconds": integer,
  "metadata": {
    "title": string,
    "summary": string,
    "beats": [{"timestamp": string, "visual": string, "narration": string}],
    "soundtrack": string,
    "transitions": string
  }
}"""


def _bullets(items: List[str], empty: str) -> List[str]:
    cleaned = [item.strip() for item in items if item and item.strip()]
    return [f"- {item}" for item in cleaned] or [f"- {empty}"]


def build_script_prompt(
    product: Dict[str, Any],
    pattern: Dict[str, Any] | None,
    trends: List[Dict[str, Any]],
    notes: List[Dict[str, Any]],
    warmup_notes: List[str] | None = None,
) -> str:
    sections = [
        "You are the scriptwriter for short-form vertical product videos.",
        "",
        "# Product Context",
        f"Product: {product.get('name')}",
        f"Description: {product.get('description') or 'N/A'}",
        f"Category: {product.get('category') or 'N/A'}",
        "",
        "# Creative Pattern",
    ]
    if pattern:
        sections += [
            f"Pattern: {pattern.get('name')}",
            f"Hook style: {pattern.get('hook_style') or 'N/A'}",
            f"Structure: {pattern.get('structure') or 'N/A'}",
            f"Tone: {pattern.get('tone') or 'N/A'}",
        ]
    else:
        sections.append("- No pattern selected.")

    sections += ["", "# Trend Signals"]
    sections += _bullets(
        [f"{t.get('topic')} (score {t.get('score', 0)}): {', '.join(t.get('tags') or [])}" for t in trends],
        "No trend data available.",
    )
    sections += ["", "# Memory Notes"]
    sections += _bullets([f"{n.get('topic')}: {n.get('content')}" for n in notes], "No prior notes.")
    if warmup_notes:
        sections += ["", "# Warmup Notes"]
        sections += _bullets(warmup_notes, "None.")

    sections += ["", SCRIPT_FORMAT]
    return "\n".join(sections)


def build_script_fallback_prompt(product: Dict[str, Any], pattern: Dict[str, Any] | None) -> str:
    """Shorter prompt for the fallback model's smaller budget."""
    pattern_line = f" using the '{pattern.get('name')}' pattern" if pattern else ""
    return "\n".join([
        f"Write a short-form video script for {product.get('name')}{pattern_line}.",
        f"Product description: {product.get('description') or 'N/A'}",
        "",
        SCRIPT_FORMAT,
    ])


def _format_creative_variables(creative_variables: Any) -> str:
    if not creative_variables:
        return "No creative variables provided."
    if isinstance(creative_variables, str):
        return creative_variables
    if not isinstance(creative_variables, dict):
        return str(creative_variables)
    return "\n".join(f"{key}: {value}" for key, value in creative_variables.items())


def build_render_prompt(script: Dict[str, Any], storage_path_hint: str) -> str:
    return "\n".join([
        "Convert the script into a concise render plan for a short-form vertical video.",
        "",
        "Constraints:",
        "- Keep duration between 20-60 seconds.",
        "- Each beat should map to a clear visual and narration moment.",
        "- Assume a vertically oriented canvas.",
        "",
        "Script Hook:",
        script.get("hook") or "No hook provided.",
        "",
        "Script Body:",
        script.get("script_text") or "",
        "",
        "Creative Variables / Style Guide:",
        _format_creative_variables(script.get("creative_variables")),
        "",
        "Preferred storage path (you may refine the filename but keep folder structure):",
        storage_path_hint,
        "",
        RENDER_FORMAT,
    ])


def build_render_fallback_prompt(script: Dict[str, Any], storage_path_hint: str) -> str:
    return "\n".join([
        "Summarize this script as a render plan with 3-5 beats.",
        f"Hook: {script.get('hook') or 'No hook provided.'}",
        f"Storage path: {storage_path_hint}",
        "",
        RENDER_FORMAT,
    ])


MOCK_SCRIPT_RESPONSE = orjson.dumps({
    "title": "Mock Product Launch",
    "hook": "Stop scrolling: this changes your morning routine",
    "outline": ["Hook the viewer", "Show the problem", "Reveal the product", "Call to action"],
    "script_text": (
        "Stop scrolling. Every morning starts with the same scramble. "
        "Meet the product that turns ten minutes of chaos into one calm tap. "
        "Watch it work, then try it yourself."
    ),
    "cta": "Tap the link to learn more",
    "creative_variables": {"tone": "energetic", "structure": "problem-solution", "style": "ugc"},
}).decode()

MOCK_RENDER_RESPONSE = orjson.dumps({
    "storage_path": "videos/rendered/mock-video.mp4",
    "thumbnail_path": "videos/rendered/mock-video.jpg",
    "duration_seconds": 30,
    "metadata": {
        "title": "Mock Render",
        "summary": "Placeholder render plan for local runs.",
        "beats": [
            {"timestamp": "00:00", "visual": "Close-up of the product", "narration": "Stop scrolling."},
            {"timestamp": "00:10", "visual": "Product in use", "narration": "Watch it work."},
            {"timestamp": "00:25", "visual": "Logo and link", "narration": "Tap to learn more."},
        ],
        "soundtrack": "upbeat",
        "transitions": "quick cuts",
    },
}).decode()
