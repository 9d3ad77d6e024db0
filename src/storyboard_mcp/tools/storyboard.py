"""Storyboard tools — 8 tools on a FastMCP sub-server, sharing one controller.

Analysis and thumbnail extraction run as background tasks on the server's
event loop; pass ``wait=True`` (or poll ``storyboard_status``) to see the
outcome.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated

from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field

from ..credentials import DotenvCredentialStore
from ..errors import AnalysisError, InvalidTransitionError, make_tool_error
from ..intake import load_video_file
from ..render import copy_all_text, download_text, export_filename, scene_text
from ..sessions import WorkflowState
from ..tracing import trace
from ..types import AnalysisMode, ExportFormat, ModeParam, SceneId, VideoFilePath
from ..workflow import WorkflowController

logger = logging.getLogger(__name__)
storyboard_server = FastMCP("storyboard")

WaitParam = Annotated[bool, Field(
    description="Wait for the analysis and thumbnail extraction to finish before returning",
)]

_controller: WorkflowController | None = None


def _credential_prompt(error: AnalysisError) -> None:
    logger.warning(
        "Gemini credential needed (%s) — call storyboard_set_credential", error.category.value,
    )


def get_controller() -> WorkflowController:
    """Return the process-wide controller, creating it on first access."""
    global _controller
    if _controller is None:
        _controller = WorkflowController(
            credentials=DotenvCredentialStore(),
            on_credential_prompt=_credential_prompt,
        )
    return _controller


async def close_controller() -> None:
    """Release the session's video and thumbnails (server shutdown)."""
    global _controller
    if _controller is not None:
        await _controller.aclose()
    _controller = None


async def _snapshot(controller: WorkflowController, wait: bool = False) -> dict:
    if wait:
        await controller.wait_idle()
    return controller.session.view().model_dump(mode="json", by_alias=True)


def _ready_controller() -> WorkflowController:
    controller = get_controller()
    s = controller.session
    if s.state != WorkflowState.READY or s.result is None or s.mode is None:
        raise InvalidTransitionError("No storyboard is ready; run storyboard_start first")
    return controller


@storyboard_server.tool(
    annotations=ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=True,
    )
)
@trace(name="storyboard_start", span_type="TOOL")
async def storyboard_start(
    file_path: VideoFilePath,
    mode: ModeParam = AnalysisMode.ORIGINAL,
    wait: WaitParam = False,
) -> dict:
    """Start a new storyboard session for a local video.

    Any previous session is reset first (its video and thumbnails are
    released).

    Args:
        file_path: Path to the video.
        mode: original, creative, or remix.
        wait: Block until analysis and thumbnails are done.

    Returns:
        Session snapshot: state, mode, generation, result, error, thumbnails.
    """
    try:
        video = load_video_file(file_path)
        controller = get_controller()
        if controller.session.state != WorkflowState.SELECTING_MODE or controller.session.file:
            controller.reset()
        controller.select_mode(mode)
        controller.select_file(video)
        return await _snapshot(controller, wait)
    except Exception as exc:
        return make_tool_error(exc)


@storyboard_server.tool(annotations=ToolAnnotations(readOnlyHint=True))
@trace(name="storyboard_status", span_type="TOOL")
async def storyboard_status(wait: WaitParam = False) -> dict:
    """Return the current session snapshot."""
    try:
        return await _snapshot(get_controller(), wait)
    except Exception as exc:
        return make_tool_error(exc)


@storyboard_server.tool(annotations=ToolAnnotations(readOnlyHint=False, openWorldHint=True))
@trace(name="storyboard_retry", span_type="TOOL")
async def storyboard_retry(wait: WaitParam = False) -> dict:
    """Re-run the analysis with the same file and mode."""
    try:
        controller = get_controller()
        controller.retry()
        return await _snapshot(controller, wait)
    except Exception as exc:
        return make_tool_error(exc)


@storyboard_server.tool(annotations=ToolAnnotations(readOnlyHint=False, openWorldHint=True))
@trace(name="storyboard_change_mode", span_type="TOOL")
async def storyboard_change_mode(mode: ModeParam, wait: WaitParam = False) -> dict:
    """Re-analyse the current video in another mode.

    Choosing the mode that is already showing a result changes nothing.
    """
    try:
        controller = get_controller()
        controller.change_mode(mode)
        return await _snapshot(controller, wait)
    except Exception as exc:
        return make_tool_error(exc)


@storyboard_server.tool(annotations=ToolAnnotations(readOnlyHint=False, openWorldHint=True))
@trace(name="storyboard_set_credential", span_type="TOOL")
async def storyboard_set_credential(
    api_key: Annotated[str, Field(min_length=1, description="Google AI (Gemini) API key")],
    retry: Annotated[bool, Field(description="Retry the current analysis with the new key")] = False,
    wait: WaitParam = False,
) -> dict:
    """Save the Gemini API key (persisted to the shared .env file)."""
    try:
        controller = get_controller()
        if retry:
            controller.update_credential_and_retry(api_key)
        else:
            controller.update_credential(api_key)
        return await _snapshot(controller, wait)
    except Exception as exc:
        return make_tool_error(exc)


@storyboard_server.tool(annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=True))
@trace(name="storyboard_reset", span_type="TOOL")
async def storyboard_reset() -> dict:
    """Discard the session: releases the video and all thumbnails."""
    try:
        controller = get_controller()
        controller.reset()
        return await _snapshot(controller)
    except Exception as exc:
        return make_tool_error(exc)


@storyboard_server.tool(annotations=ToolAnnotations(readOnlyHint=True))
@trace(name="storyboard_scene_text", span_type="TOOL")
async def storyboard_scene_text(scene_id: SceneId) -> dict:
    """Formatted prompt text for one scene, in the current mode."""
    try:
        s = _ready_controller().session
        scene = s.result.scene(scene_id)
        thumb = s.thumbnails.get(scene_id) if s.thumbnails else None
        return {
            "scene_id": scene_id,
            "mode": s.mode.value,
            "text": scene_text(scene, s.result.style, s.mode),
            "thumbnail": str(thumb.path) if thumb else "",
        }
    except Exception as exc:
        return make_tool_error(exc)


@storyboard_server.tool(annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False))
@trace(name="storyboard_export", span_type="TOOL")
async def storyboard_export(
    kind: ExportFormat = "copy",
    output_dir: Annotated[str | None, Field(
        description="Directory to write the download file into (kind='download' only)",
    )] = None,
) -> dict:
    """All scenes as one text block ("copy") or a downloadable text file ("download")."""
    try:
        s = _ready_controller().session
        filename = export_filename(s.result, s.mode)
        if kind == "copy":
            return {"filename": filename, "text": copy_all_text(s.result, s.mode)}

        text = download_text(s.result, s.mode)
        if not output_dir:
            return {"filename": filename, "text": text}
        target = Path(output_dir).expanduser() / filename
        await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(target.write_text, text)
        return {"filename": filename, "path": str(target)}
    except Exception as exc:
        return make_tool_error(exc)
