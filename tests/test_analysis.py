"""Tests for request building and the analysis round trip."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from storyboard_mcp.analysis import (
    AnalysisClient,
    build_instruction,
    build_request,
    parse_result,
    response_schema,
)
from storyboard_mcp.errors import (
    AuthError,
    ConfigurationError,
    ResponseFormatError,
    TransportError,
)
from storyboard_mcp.intake import VideoFile
from storyboard_mcp.prompts.storyboard import MODE_INSTRUCTIONS
from storyboard_mcp.types import AnalysisMode
from tests.conftest import result_json, result_payload


class TestBuildInstruction:
    def test_every_mode_has_a_template(self):
        assert set(MODE_INSTRUCTIONS) == set(AnalysisMode)

    def test_modes_are_distinct(self):
        texts = {build_instruction(mode) for mode in AnalysisMode}
        assert len(texts) == 3

    def test_deterministic(self):
        assert build_instruction(AnalysisMode.REMIX) == build_instruction(AnalysisMode.REMIX)

    def test_mode_specific_wording(self):
        assert "verbatim" in build_instruction(AnalysisMode.ORIGINAL)
        assert "DO NOT CHANGE THE DIALOGUE" in build_instruction(AnalysisMode.CREATIVE)
        assert "REWRITE the dialogue" in build_instruction(AnalysisMode.REMIX)

    def test_timing_from_config(self, monkeypatch):
        monkeypatch.setenv("STORYBOARD_SCENE_MIN_SECONDS", "4")
        monkeypatch.setenv("STORYBOARD_SCENE_MAX_SECONDS", "6.5")
        text = build_instruction(AnalysisMode.ORIGINAL)
        assert "between 4 and 6.5 seconds" in text
        assert "{" not in text

    def test_explicit_timing_overrides_config(self):
        text = build_instruction(AnalysisMode.CREATIVE, min_seconds=3, max_seconds=5)
        assert "3-5 second rule" in text


class TestBuildRequest:
    def test_request_fields(self, video_file):
        request = build_request(video_file, AnalysisMode.CREATIVE, generation=4)
        assert request.mode is AnalysisMode.CREATIVE
        assert request.generation == 4
        assert request.mime_type == "video/mp4"
        assert request.instruction == build_instruction(AnalysisMode.CREATIVE)
        assert request.response_schema == response_schema()

    def test_schema_same_for_all_modes(self, video_file):
        schemas = [build_request(video_file, m).response_schema for m in AnalysisMode]
        assert schemas[0] == schemas[1] == schemas[2]


class TestParseResult:
    def test_valid(self):
        result = parse_result(result_json())
        assert len(result.scenes) == 3

    @pytest.mark.parametrize("raw", ["", "   "])
    def test_empty(self, raw):
        with pytest.raises(ResponseFormatError, match="No response"):
            parse_result(raw)

    def test_invalid_json(self):
        with pytest.raises(ResponseFormatError, match="Malformed storyboard"):
            parse_result("{not json")

    def test_missing_camera_angle(self):
        payload = result_payload()
        del payload["scenes"][0]["cameraAngle"]
        with pytest.raises(ResponseFormatError, match="cameraAngle"):
            parse_result(json.dumps(payload))

    def test_duplicate_ids(self):
        payload = result_payload()
        payload["scenes"][2]["id"] = 2
        with pytest.raises(ResponseFormatError, match="Duplicate scene id"):
            parse_result(json.dumps(payload))


class TestSubmit:
    async def test_no_credential_sends_nothing(self, mock_gemini_client, video_file):
        with pytest.raises(ConfigurationError):
            await AnalysisClient().submit(video_file, AnalysisMode.ORIGINAL, "  ")
        mock_gemini_client["generate"].assert_not_awaited()
        mock_gemini_client["get"].assert_not_called()

    async def test_success_inline_video(self, mock_gemini_client, video_file):
        mock_gemini_client["generate"].return_value = result_json()

        result = await AnalysisClient().submit(
            video_file, AnalysisMode.REMIX, "user-key", generation=2,
        )

        assert result.title == "Morning Routine"
        mock_gemini_client["get"].assert_called_once_with("user-key")
        call = mock_gemini_client["generate"].call_args
        assert call.kwargs["api_key"] == "user-key"
        assert call.kwargs["response_schema"] == response_schema()
        parts = call.args[0].parts
        assert parts[0].inline_data.mime_type == "video/mp4"
        assert parts[1].text == build_instruction(AnalysisMode.REMIX)

    async def test_large_video_uses_file_api(self, mock_gemini_client, tmp_path):
        path = tmp_path / "big.mp4"
        path.write_bytes(b"\x00" * 16)
        video = VideoFile(path=path, mime_type="video/mp4", size=50 * 1024 * 1024)
        client = mock_gemini_client["client"]
        uploaded = MagicMock()
        uploaded.name = "files/abc"
        uploaded.uri = "https://files.test/abc"
        client.aio.files.upload = AsyncMock(return_value=uploaded)
        client.aio.files.get = AsyncMock(return_value=MagicMock(state="ACTIVE"))
        client.aio.files.delete = AsyncMock()
        mock_gemini_client["generate"].return_value = result_json()

        await AnalysisClient().submit(video, AnalysisMode.ORIGINAL, "k")

        client.aio.files.upload.assert_awaited_once()
        part = mock_gemini_client["generate"].call_args.args[0].parts[0]
        assert part.file_data.file_uri == "https://files.test/abc"
        client.aio.files.delete.assert_awaited_once_with(name="files/abc")

    async def test_upload_deleted_when_generate_fails(self, mock_gemini_client, tmp_path):
        path = tmp_path / "big.mp4"
        path.write_bytes(b"\x00" * 16)
        video = VideoFile(path=path, mime_type="video/mp4", size=50 * 1024 * 1024)
        client = mock_gemini_client["client"]
        uploaded = MagicMock()
        uploaded.name = "files/def"
        uploaded.uri = "https://files.test/def"
        client.aio.files.upload = AsyncMock(return_value=uploaded)
        client.aio.files.get = AsyncMock(return_value=MagicMock(state="ACTIVE"))
        client.aio.files.delete = AsyncMock(side_effect=RuntimeError("already gone"))
        mock_gemini_client["generate"].side_effect = ConnectionError("connection reset")

        with pytest.raises(TransportError, match="connection reset"):
            await AnalysisClient().submit(video, AnalysisMode.ORIGINAL, "k")

        client.aio.files.delete.assert_awaited_once_with(name="files/def")

    async def test_inline_video_is_never_deleted(self, mock_gemini_client, video_file):
        client = mock_gemini_client["client"]
        client.aio.files.delete = AsyncMock()
        mock_gemini_client["generate"].return_value = result_json()

        await AnalysisClient().submit(video_file, AnalysisMode.ORIGINAL, "k")

        client.aio.files.delete.assert_not_awaited()

    async def test_permission_denied_is_auth_error(self, mock_gemini_client, video_file):
        mock_gemini_client["generate"].side_effect = Exception("403 PERMISSION_DENIED")
        with pytest.raises(AuthError):
            await AnalysisClient().submit(video_file, AnalysisMode.ORIGINAL, "bad-key")

    async def test_other_failure_is_transport_error(self, mock_gemini_client, video_file):
        mock_gemini_client["generate"].side_effect = ConnectionError("connection reset")
        with pytest.raises(TransportError, match="connection reset") as exc_info:
            await AnalysisClient().submit(video_file, AnalysisMode.ORIGINAL, "k")
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    async def test_unreadable_video_with_status_digits_is_transport_error(self, mock_gemini_client, tmp_path):
        video = VideoFile(path=tmp_path / "take_403.mp4", mime_type="video/mp4", size=1024)

        with pytest.raises(TransportError) as exc_info:
            await AnalysisClient().submit(video, AnalysisMode.ORIGINAL, "k")

        assert isinstance(exc_info.value.__cause__, FileNotFoundError)
        assert exc_info.value.prompts_for_credential is False
        mock_gemini_client["generate"].assert_not_called()

    async def test_malformed_reply(self, mock_gemini_client, video_file):
        mock_gemini_client["generate"].return_value = '{"title": "only"}'
        with pytest.raises(ResponseFormatError):
            await AnalysisClient().submit(video_file, AnalysisMode.ORIGINAL, "k")

    async def test_timeout_is_transport_error(self, mock_gemini_client, video_file, monkeypatch):
        monkeypatch.setenv("STORYBOARD_ANALYSIS_TIMEOUT", "0.01")

        async def _hang(*args, **kwargs):
            await asyncio.sleep(5)

        mock_gemini_client["generate"].side_effect = _hang
        with pytest.raises(TransportError):
            await AnalysisClient().submit(video_file, AnalysisMode.ORIGINAL, "k")

    async def test_out_of_range_timing_is_logged_not_rejected(
        self, mock_gemini_client, video_file, caplog,
    ):
        payload = result_payload(starts=(0.0,))
        payload["scenes"][0]["endTime"] = "00:02"
        mock_gemini_client["generate"].return_value = json.dumps(payload)

        with caplog.at_level("WARNING", logger="storyboard_mcp.analysis"):
            result = await AnalysisClient().submit(video_file, AnalysisMode.ORIGINAL, "k")

        assert len(result.scenes) == 1
        assert "outside 7-8s" in caplog.text

    async def test_model_override(self, mock_gemini_client, video_file):
        mock_gemini_client["generate"].return_value = result_json()
        await AnalysisClient(model="gemini-2.5-pro").submit(video_file, AnalysisMode.ORIGINAL, "k")
        assert mock_gemini_client["generate"].call_args.kwargs["model"] == "gemini-2.5-pro"
