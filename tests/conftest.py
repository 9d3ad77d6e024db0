"""Shared test fixtures for video-storyboard-mcp."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import numpy as np
import pytest


def unwrap_tool(tool: Any) -> Any:
    """Extract the raw coroutine from a FastMCP FunctionTool, if wrapped.

    FastMCP 2.x wraps @server.tool functions in FunctionTool (not callable).
    FastMCP 3.x preserves the original function. This helper works with both.
    """
    return getattr(tool, "fn", tool)


@pytest.fixture(autouse=True, scope="session")
def _unwrap_fastmcp_tools():
    """Patch tool modules so FunctionTool objects become directly callable."""
    import importlib
    import pkgutil

    import storyboard_mcp.tools as tools_pkg

    modules = []
    for info in pkgutil.walk_packages(tools_pkg.__path__, tools_pkg.__name__ + "."):
        modules.append(importlib.import_module(info.name))

    for mod in modules:
        for name in list(vars(mod)):
            obj = getattr(mod, name, None)
            if obj is not None and hasattr(obj, "fn") and not callable(obj):
                setattr(mod, name, obj.fn)


@pytest.fixture(autouse=True)
def _set_dummy_api_key(monkeypatch):
    """Ensure tests never hit real Gemini API."""
    monkeypatch.setenv("GEMINI_API_KEY", "test-key-not-real")


@pytest.fixture(autouse=True)
def _disable_tracing(monkeypatch):
    monkeypatch.setenv("GEMINI_TRACING_ENABLED", "false")


@pytest.fixture(autouse=True)
def _isolate_dotenv(tmp_path, monkeypatch):
    """Prevent tests from loading or writing the user's real ~/.config/video-storyboard-mcp/.env."""
    monkeypatch.setattr(
        "storyboard_mcp.dotenv.DEFAULT_ENV_PATH",
        tmp_path / "config" / ".env",
    )


@pytest.fixture(autouse=True)
def clean_config(tmp_path, monkeypatch):
    """Reset the config singleton and point the cache at a temp directory."""
    import storyboard_mcp.config as cfg_mod

    monkeypatch.setenv("STORYBOARD_CACHE_DIR", str(tmp_path / "cache"))
    cfg_mod._config = None
    yield
    cfg_mod._config = None


@pytest.fixture()
def mock_gemini_client():
    """Patch GeminiClient.get() and .generate() for unit tests."""
    with (
        patch("storyboard_mcp.client.GeminiClient.get") as mock_get,
        patch(
            "storyboard_mcp.client.GeminiClient.generate", new_callable=AsyncMock
        ) as mock_gen,
    ):
        client = MagicMock()
        mock_get.return_value = client
        yield {
            "get": mock_get,
            "generate": mock_gen,
            "client": client,
        }


def scene_payload(scene_id: int = 1, start: float = 0.0, **overrides: Any) -> dict:
    """Wire-format (camelCase) scene dict with every required field."""
    end = start + 7.5
    data = {
        "id": scene_id,
        "startTime": f"{int(start // 60):02d}:{int(start % 60):02d}",
        "startTimeSeconds": start,
        "endTime": f"{int(end // 60):02d}:{end % 60:04.1f}",
        "setting": f"Kitchen at dawn, scene {scene_id}",
        "characterDescription": "Woman, 30s, short black hair, denim apron",
        "action": "She cracks an egg into a bowl",
        "cameraAngle": "Medium shot, slow push-in",
        "imagePrompt": "woman cracking egg in sunlit kitchen",
        "dialogue": "Good morning",
        "voiceDescription": "Warm, soft",
        "sound": "Birdsong, sizzling pan",
    }
    data.update(overrides)
    return data


def result_payload(starts: tuple[float, ...] = (0.0, 7.5, 15.0), **overrides: Any) -> dict:
    data = {
        "title": "Morning Routine",
        "summary": "A woman makes breakfast",
        "style": "Cinematic Realistic",
        "scenes": [scene_payload(i + 1, start) for i, start in enumerate(starts)],
    }
    data.update(overrides)
    return data


def result_json(**kwargs: Any) -> str:
    return json.dumps(result_payload(**kwargs))


@pytest.fixture()
def video_file(tmp_path):
    """A small fake .mp4 wrapped in a VideoFile."""
    from storyboard_mcp.intake import VideoFile

    path = tmp_path / "clip.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64)
    return VideoFile(path=path, mime_type="video/mp4", size=path.stat().st_size)


class FakeVideo:
    """In-memory VideoResource that logs every seek and capture."""

    def __init__(self, duration: float = 30.0, fail_at: set[float] | None = None, delay: float = 0.0):
        self.duration = duration
        self.fail_at = fail_at or set()
        self.delay = delay
        self.position: float | None = None
        self.events: list[tuple[str, float]] = []
        self.released = 0

    async def seek(self, seconds: float) -> None:
        self.events.append(("seek", seconds))
        self.position = None
        if self.delay:
            await asyncio.sleep(self.delay)
        if seconds in self.fail_at:
            raise RuntimeError(f"decode failed at {seconds}")
        self.position = seconds

    def capture(self) -> np.ndarray:
        assert self.position is not None
        self.events.append(("capture", self.position))
        frame = np.zeros((90, 120, 3), np.uint8)
        frame[:] = int(self.position) % 255
        return frame

    def release(self) -> None:
        self.released += 1
