"""Plain-text rendering of storyboard scenes for copy and download.

Output is deterministic: the same scene, style and mode always render to
the same text.
"""

from __future__ import annotations

import re
from collections.abc import Callable

from .models.storyboard import Scene, VideoAnalysisResult
from .types import AnalysisMode

COPY_SEPARATOR = "\n\n====================================\n\n"
DOWNLOAD_SEPARATOR = "\n\n___________________________________________________\n\n"


def _quoted_dialogue(scene: Scene) -> str:
    dialogue = scene.dialogue.strip()
    if dialogue and not dialogue.startswith('"'):
        dialogue = f'"{dialogue}"'
    return dialogue


def _combined_block(scene: Scene, style_line: str) -> str:
    return "\n".join([
        f"Video style: {style_line}",
        f"Detailed setting: {scene.setting}",
        f"Camera (Shot): {scene.camera_angle}",
        f"Characters: {scene.character_description}",
        f"Action (Movement): {scene.action}",
        f"Dialogue: {_quoted_dialogue(scene)}",
        f"Voice: {scene.voice_description}",
        f"Sound: {scene.sound}",
        "No subtitles, no on-screen text",
    ])


def _render_original(scene: Scene, style: str) -> str:
    return _combined_block(scene, style)


def _render_remix(scene: Scene, style: str) -> str:
    return _combined_block(scene, f"{style} (Remix Version)")


def _render_creative(scene: Scene, style: str) -> str:
    # Visuals are a generation prompt; audio is kept verbatim from the source.
    return "\n".join([
        f"(SCENE {scene.id} - CREATIVE VISUAL)",
        "=== VISUAL PROMPT (High Quality) ===",
        f"PROMPT: {scene.image_prompt}. {scene.setting}.",
        f"SUBJECT: {scene.character_description}.",
        f"ACTION: {scene.action}.",
        f"CAMERA: {scene.camera_angle}.",
        f"STYLE: {style}, cinematic, 8k, hyper-realistic.",
        "",
        "=== ORIGINAL AUDIO (KEPT VERBATIM) ===",
        f"Dialogue: {_quoted_dialogue(scene)}",
        f"Voice: {scene.voice_description}",
        f"Sound: {scene.sound}",
    ])


SCENE_RENDERERS: dict[AnalysisMode, Callable[[Scene, str], str]] = {
    AnalysisMode.ORIGINAL: _render_original,
    AnalysisMode.CREATIVE: _render_creative,
    AnalysisMode.REMIX: _render_remix,
}


def scene_text(scene: Scene, style: str, mode: AnalysisMode) -> str:
    """Render one scene with the storyboard's global *style* for *mode*."""
    return SCENE_RENDERERS[AnalysisMode(mode)](scene, style)


def copy_all_text(result: VideoAnalysisResult, mode: AnalysisMode) -> str:
    return COPY_SEPARATOR.join(scene_text(s, result.style, mode) for s in result.scenes)


def download_text(result: VideoAnalysisResult, mode: AnalysisMode) -> str:
    return DOWNLOAD_SEPARATOR.join(scene_text(s, result.style, mode) for s in result.scenes)


def export_filename(result: VideoAnalysisResult, mode: AnalysisMode) -> str:
    """``<title>_<mode>_analysis.txt`` with whitespace runs in the title as ``_``."""
    title = re.sub(r"\s+", "_", result.title)
    return f"{title}_{AnalysisMode(mode).value}_analysis.txt"
