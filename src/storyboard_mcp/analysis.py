"""Storyboard analysis — mode-specific request building and the Gemini round trip.

``build_request`` turns (video, mode, generation) into an immutable
:class:`AnalysisRequest`; :class:`AnalysisClient` sends it and accepts the
reply only when it validates against :class:`VideoAnalysisResult` in full.
Every failure leaves here as one of the :mod:`errors` taxonomy classes.
"""

from __future__ import annotations

import asyncio
import logging

from google.genai import types
from pydantic import ValidationError

from .client import GeminiClient
from .config import get_config
from .errors import AnalysisError, ConfigurationError, ResponseFormatError, classify_exception
from .intake import VideoFile
from .models.storyboard import AnalysisRequest, VideoAnalysisResult, timing_warnings
from .prompts.storyboard import MODE_INSTRUCTIONS, TIMING_RULES
from .tracing import tag_current_trace, trace
from .types import AnalysisMode

logger = logging.getLogger(__name__)


def build_instruction(
    mode: AnalysisMode,
    *,
    min_seconds: float | None = None,
    max_seconds: float | None = None,
) -> str:
    """Return the natural-language instruction for *mode*."""
    cfg = get_config()
    lo = min_seconds if min_seconds is not None else cfg.scene_min_seconds
    hi = max_seconds if max_seconds is not None else cfg.scene_max_seconds
    template = MODE_INSTRUCTIONS[AnalysisMode(mode)]
    timing = TIMING_RULES.format(min_seconds=lo, max_seconds=hi)
    return template.format(min_seconds=lo, max_seconds=hi, timing_rules=timing)


def response_schema() -> dict:
    """JSON schema the model must satisfy; identical for every mode."""
    return VideoAnalysisResult.model_json_schema(by_alias=True)


def build_request(video: VideoFile, mode: AnalysisMode, *, generation: int = 0) -> AnalysisRequest:
    """Assemble the immutable request for one dispatch."""
    return AnalysisRequest(
        video=video,
        mode=mode,
        instruction=build_instruction(mode),
        response_schema=response_schema(),
        generation=generation,
    )


def _summarize_validation(exc: ValidationError, limit: int = 5) -> str:
    """Compact 'loc: msg' list of the first few validation errors."""
    items = []
    for err in exc.errors()[:limit]:
        loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
        items.append(f"{loc}: {err.get('msg', '')}")
    more = exc.error_count() - len(items)
    suffix = f" (+{more} more)" if more > 0 else ""
    return "; ".join(items) + suffix


def parse_result(raw: str) -> VideoAnalysisResult:
    """Decode and validate the model's text into a storyboard.

    Raises:
        ResponseFormatError: On empty text, invalid JSON, a missing or
            mistyped field, or duplicate scene ids.
    """
    if not raw or not raw.strip():
        raise ResponseFormatError("No response received from the model")
    try:
        return VideoAnalysisResult.model_validate_json(raw)
    except ValidationError as exc:
        raise ResponseFormatError(f"Malformed storyboard: {_summarize_validation(exc)}") from exc


async def _wait_for_active(
    client, file_name: str, *, timeout: float = 120, interval: float = 2.0
) -> None:
    """Poll the Gemini Files API until the upload is ACTIVE.

    Raises:
        RuntimeError: If the file enters FAILED state.
        TimeoutError: If the file doesn't become ACTIVE within timeout.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        file_info = await client.aio.files.get(name=file_name)
        if file_info.state == "ACTIVE":
            return
        if file_info.state == "FAILED":
            raise RuntimeError(f"File processing failed: {file_name}")
        if loop.time() > deadline:
            raise TimeoutError(
                f"File {file_name} not active after {timeout}s (state: {file_info.state})"
            )
        await asyncio.sleep(interval)


async def _video_part(client, video: VideoFile) -> tuple[types.Part, str | None]:
    """Inline bytes for small files, a File API reference for large ones.

    Returns the part and, for an upload, the remote file name to delete
    once the request is done.
    """
    if video.size < get_config().inline_upload_limit_bytes:
        data = await asyncio.to_thread(video.path.read_bytes)
        return types.Part.from_bytes(data=data, mime_type=video.mime_type), None

    uploaded = await client.aio.files.upload(
        file=video.path,
        config=types.UploadFileConfig(mime_type=video.mime_type),
    )
    logger.info("Uploaded %s → %s", video.name, uploaded.uri)
    try:
        await _wait_for_active(client, uploaded.name)
    except BaseException:
        await _delete_upload(client, uploaded.name)
        raise
    part = types.Part(file_data=types.FileData(file_uri=uploaded.uri, mime_type=video.mime_type))
    return part, uploaded.name


async def _delete_upload(client, file_name: str) -> None:
    try:
        await client.aio.files.delete(name=file_name)
        logger.info("Deleted uploaded file %s", file_name)
    except Exception:
        logger.warning("Could not delete uploaded file %s", file_name, exc_info=True)


class AnalysisClient:
    """Sends one storyboard request to Gemini and validates the reply."""

    def __init__(self, *, model: str | None = None) -> None:
        self._model = model

    async def _call(self, request: AnalysisRequest, credential: str) -> str:
        client = GeminiClient.get(credential)
        video_part, uploaded_name = await _video_part(client, request.video)
        contents = types.Content(
            role="user",
            parts=[video_part, types.Part(text=request.instruction)],
        )
        try:
            return await GeminiClient.generate(
                contents,
                api_key=credential,
                model=self._model,
                response_schema=request.response_schema,
            )
        finally:
            if uploaded_name:
                await _delete_upload(client, uploaded_name)

    @trace(name="storyboard_analysis", span_type="CHAIN")
    async def submit(
        self,
        video: VideoFile,
        mode: AnalysisMode,
        credential: str | None,
        *,
        generation: int = 0,
    ) -> VideoAnalysisResult:
        """Analyse *video* in *mode* and return the validated storyboard.

        Raises:
            ConfigurationError: No credential; nothing is sent.
            AuthError: The credential was rejected.
            TransportError: Any other failure of the call, including timeout.
            ResponseFormatError: The reply does not validate.
        """
        if not credential or not credential.strip():
            raise ConfigurationError("No Gemini API key configured")

        request = build_request(video, mode, generation=generation)
        tag_current_trace(generation=generation, mode=request.mode.value, mime_type=video.mime_type)
        cfg = get_config()
        logger.info(
            "Dispatching generation %d: %s (%s, %d bytes) in %s mode",
            generation, video.name, video.mime_type, video.size, request.mode.value,
        )
        try:
            raw = await asyncio.wait_for(
                self._call(request, credential.strip()),
                timeout=cfg.analysis_timeout_seconds,
            )
        except AnalysisError:
            raise
        except Exception as exc:
            error = classify_exception(exc)
            logger.warning(
                "Generation %d failed (%s): %s", generation, error.category.value, exc,
            )
            raise error from exc

        result = parse_result(raw)
        for warning in timing_warnings(
            result, min_seconds=cfg.scene_min_seconds, max_seconds=cfg.scene_max_seconds,
        ):
            logger.warning("Generation %d timing: %s", generation, warning)
        logger.info("Generation %d returned %d scene(s)", generation, len(result.scenes))
        return result
