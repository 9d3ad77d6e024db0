"""Shared enums and type aliases for tool parameters."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal

from pydantic import Field


class AnalysisMode(str, Enum):
    """How the model is instructed and how scene text is rendered.

    ``ORIGINAL``: verbatim technical breakdown.
    ``CREATIVE``: cinematically upgraded visuals, audio kept verbatim.
    ``REMIX``: factual visuals, rewritten dialogue.
    """

    ORIGINAL = "original"
    CREATIVE = "creative"
    REMIX = "remix"


# ── Literal enums ────────────────────────────────────────────────────────────

ExportFormat = Literal["copy", "download"]

# ── Annotated aliases ────────────────────────────────────────────────────────

VideoFilePath = Annotated[str, Field(
    min_length=1,
    description="Path to a local video file (mp4, webm, mov, avi, mkv, mpeg, wmv, 3gpp), max 200 MB",
)]
ModeParam = Annotated[AnalysisMode, Field(
    description="original = verbatim storyboard, creative = cinematic visuals with verbatim audio, "
    "remix = factual visuals with rewritten dialogue",
)]
SceneId = Annotated[int, Field(description="Scene id from the current storyboard")]
