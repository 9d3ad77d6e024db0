"""Storyboard models — structured output schema for Gemini and the request value.

``VideoAnalysisResult.model_json_schema()`` is sent to Gemini as the
response schema (camelCase keys, every field required), and the same model
validates what comes back. There are no field defaults: a response missing
any field is rejected, never partially accepted.
"""

from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from ..intake import VideoFile
from ..types import AnalysisMode

_WIRE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    frozen=True,
)


def parse_timecode(value: str) -> float:
    """Convert ``MM:SS`` or ``HH:MM:SS`` (fractional seconds allowed) to seconds.

    Returns 0.0 for blank or unparseable input.
    """
    if not value or not value.strip():
        return 0.0
    try:
        parts = [float(p) for p in value.strip().split(":")]
    except ValueError:
        return 0.0
    if len(parts) == 2:
        return parts[0] * 60 + parts[1]
    if len(parts) == 3:
        return parts[0] * 3600 + parts[1] * 60 + parts[2]
    return 0.0


class Scene(BaseModel):
    """One time-bounded storyboard segment."""

    model_config = _WIRE_CONFIG

    id: int = Field(strict=True, description="Scene number, unique within the storyboard")
    start_time: str = Field(description="Start time (MM:SS)")
    start_time_seconds: float = Field(
        ge=0, allow_inf_nan=False, description="Start time in seconds, used to seek the video",
    )
    end_time: str = Field(description="End time (MM:SS)")
    setting: str = Field(description="SETTING: space, lighting, environment")
    character_description: str = Field(
        description="CHARACTERS: gender, age, build, face, hair, wardrobe",
    )
    action: str = Field(description="ACTION & INTERACTION: who does what, expressions")
    camera_angle: str = Field(description="CAMERA (shot): framing, position, movement")
    image_prompt: str = Field(
        description="Pure English prompt for image generation (visual description only)",
    )
    dialogue: str = Field(description="DIALOGUE: spoken lines, empty string if none")
    voice_description: str = Field(description="VOICE: how the lines are delivered")
    sound: str = Field(description="SOUND: SFX and background music")

    @property
    def end_time_seconds(self) -> float:
        return parse_timecode(self.end_time)


class VideoAnalysisResult(BaseModel):
    """A complete storyboard as accepted from the model."""

    model_config = _WIRE_CONFIG

    title: str = Field(description="Short title for the video")
    summary: str = Field(description="Summary of the video content")
    style: str = Field(description="Visual style (e.g. 3D/Pixar, Anime, Cinematic Realistic, Footage)")
    scenes: list[Scene] = Field(description="Ordered list of scenes")

    @model_validator(mode="after")
    def _unique_scene_ids(self) -> VideoAnalysisResult:
        seen: set[int] = set()
        for scene in self.scenes:
            if scene.id in seen:
                raise ValueError(f"Duplicate scene id {scene.id}")
            seen.add(scene.id)
        return self

    def scene(self, scene_id: int) -> Scene:
        """Return the scene with *scene_id*, or raise KeyError."""
        for scene in self.scenes:
            if scene.id == scene_id:
                return scene
        raise KeyError(f"Scene {scene_id} not found")


def timing_warnings(
    result: VideoAnalysisResult, *, min_seconds: float, max_seconds: float,
) -> list[str]:
    """List scenes whose bounds break the requested timing.

    These are reported, not enforced: the model is asked for 7–8 s scenes
    and an end after the start, and a storyboard that misses is still usable.
    """
    warnings: list[str] = []
    for scene in result.scenes:
        end = scene.end_time_seconds
        if not math.isfinite(end) or end <= scene.start_time_seconds:
            warnings.append(
                f"scene {scene.id}: end {scene.end_time!r} is not after start {scene.start_time_seconds:g}s"
            )
            continue
        span = end - scene.start_time_seconds
        if span < min_seconds or span > max_seconds:
            warnings.append(
                f"scene {scene.id}: {span:.1f}s outside {min_seconds:g}-{max_seconds:g}s"
            )
    return warnings


class AnalysisRequest(BaseModel):
    """One dispatch to the model, tagged with the generation that issued it."""

    model_config = ConfigDict(frozen=True)

    video: VideoFile
    mode: AnalysisMode
    instruction: str
    response_schema: dict
    generation: int = 0

    @property
    def mime_type(self) -> str:
        return self.video.mime_type
