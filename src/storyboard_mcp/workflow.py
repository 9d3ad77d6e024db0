"""Storyboard workflow controller — the session state machine.

States: ``selecting_mode`` → ``analyzing`` → ``ready`` | ``failed``.
Retry and mode change re-enter ``analyzing`` from any state that has a file;
``reset()`` returns to ``selecting_mode`` from anywhere.

Each dispatch increments ``Session.generation`` before it starts and runs as
its own asyncio task. Dispatches are never cancelled; instead, both the
success and the failure path compare their generation with the session's
and drop themselves when a newer dispatch (or a reset) has happened since.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from .analysis import AnalysisClient
from .credentials import CredentialStore, MemoryCredentialStore
from .errors import AnalysisError, InvalidTransitionError
from .frames import CaptureVideoResource, FrameExtractor, ThumbnailCache, VideoResource
from .intake import VideoFile
from .models.storyboard import VideoAnalysisResult
from .sessions import Session, WorkflowState
from .types import AnalysisMode

logger = logging.getLogger(__name__)

CredentialPrompt = Callable[[AnalysisError], None]
VideoOpener = Callable[[VideoFile], VideoResource]


class WorkflowController:
    """Owns one :class:`Session` and drives it through analysis and extraction."""

    def __init__(
        self,
        *,
        client: AnalysisClient | None = None,
        credentials: CredentialStore | None = None,
        extractor: FrameExtractor | None = None,
        open_video: VideoOpener = CaptureVideoResource.open,
        on_credential_prompt: CredentialPrompt | None = None,
        session: Session | None = None,
    ) -> None:
        self._client = client or AnalysisClient()
        self._credentials = credentials or MemoryCredentialStore()
        self._extractor = extractor or FrameExtractor()
        self._open_video = open_video
        self._on_credential_prompt = on_credential_prompt
        self._tasks: set[asyncio.Task] = set()
        self.session = session or Session(credential=self._credentials.get() or "")

    # ── user actions ─────────────────────────────────────────────────────

    def select_mode(self, mode: AnalysisMode) -> None:
        """Choose the mode before a file is picked."""
        if self.session.state != WorkflowState.SELECTING_MODE:
            raise InvalidTransitionError(
                f"Cannot select a mode while {self.session.state.value}; use change_mode"
            )
        self.session.mode = AnalysisMode(mode)
        self._touch()

    def select_file(self, video: VideoFile) -> asyncio.Task:
        """Take the chosen file, open it for frame capture, and start analysis."""
        s = self.session
        if s.state != WorkflowState.SELECTING_MODE or s.file is not None:
            raise InvalidTransitionError("A file is already selected; reset the session first")
        if s.mode is None:
            raise InvalidTransitionError("Select an analysis mode before choosing a file")
        s.video = self._open_video(video)
        s.file = video
        return self._dispatch()

    def retry(self) -> asyncio.Task:
        """Re-dispatch with the current file and mode."""
        return self._dispatch()

    def change_mode(self, mode: AnalysisMode) -> asyncio.Task | None:
        """Switch mode and re-analyse. No-op when the mode already has a result."""
        self._require_file()
        mode = AnalysisMode(mode)
        if mode == self.session.mode and self.session.state == WorkflowState.READY:
            return None
        self.session.mode = mode
        return self._dispatch()

    def update_credential(self, value: str) -> None:
        """Persist the credential and use it for the next dispatch."""
        value = value.strip()
        if not value:
            raise ValueError("Credential must not be empty")
        self._credentials.set(value)
        self.session.credential = value
        self._touch()

    def update_credential_and_retry(self, value: str) -> asyncio.Task:
        self.update_credential(value)
        return self.retry()

    def reset(self) -> None:
        """Release the video and thumbnails and clear the session.

        The generation counter keeps increasing so anything still in flight
        for the old session is recognised as stale.
        """
        s = self.session
        s.generation += 1
        self._release_thumbnails()
        if s.video is not None:
            s.video.release()
        s.video = None
        s.file = None
        s.mode = None
        s.result = None
        s.error = None
        s.state = WorkflowState.SELECTING_MODE
        self._touch()
        logger.info("Session reset (generation now %d)", s.generation)

    async def wait_idle(self) -> None:
        """Wait for every outstanding analysis and extraction task."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        self.reset()
        await self.wait_idle()

    # ── internals ────────────────────────────────────────────────────────

    def _touch(self) -> None:
        self.session.last_active = datetime.now()

    def _require_file(self) -> None:
        if self.session.file is None or self.session.mode is None:
            raise InvalidTransitionError("No video selected; choose a mode and a file first")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _release_thumbnails(self) -> None:
        cache = self.session.thumbnails
        if cache is not None:
            released = cache.release_all()
            logger.debug("Released %d thumbnail(s) of generation %d", released, cache.generation)
        self.session.thumbnails = None

    def _dispatch(self) -> asyncio.Task:
        self._require_file()
        s = self.session
        s.generation += 1
        generation = s.generation
        self._release_thumbnails()
        s.state = WorkflowState.ANALYZING
        s.error = None
        self._touch()
        logger.info("Generation %d: analysing %s in %s mode", generation, s.file.name, s.mode.value)
        return self._spawn(self._run_analysis(generation, s.file, s.mode, s.credential))

    async def _run_analysis(
        self, generation: int, video: VideoFile, mode: AnalysisMode, credential: str,
    ) -> None:
        try:
            result = await self._client.submit(video, mode, credential, generation=generation)
        except AnalysisError as exc:
            self._apply_failure(generation, exc)
            return
        self._apply_success(generation, result)

    def _is_current(self, generation: int) -> bool:
        return generation == self.session.generation

    def _apply_success(self, generation: int, result: VideoAnalysisResult) -> None:
        if not self._is_current(generation):
            logger.info(
                "Discarding stale result of generation %d (current %d)",
                generation, self.session.generation,
            )
            return
        s = self.session
        s.result = result
        s.error = None
        s.state = WorkflowState.READY
        s.thumbnails = ThumbnailCache(generation)
        self._touch()
        logger.info("Generation %d ready: %r, %d scene(s)", generation, result.title, len(result.scenes))
        if s.video is not None and result.scenes:
            self._spawn(self._extractor.extract(s.video, result.scenes, s.thumbnails))

    def _apply_failure(self, generation: int, error: AnalysisError) -> None:
        if not self._is_current(generation):
            logger.info(
                "Discarding stale %s of generation %d (current %d): %s",
                type(error).__name__, generation, self.session.generation, error,
            )
            return
        s = self.session
        s.error = error
        s.state = WorkflowState.FAILED
        self._touch()
        logger.warning("Generation %d failed: %s", generation, error.display_message)
        if error.prompts_for_credential and self._on_credential_prompt is not None:
            self._on_credential_prompt(error)
