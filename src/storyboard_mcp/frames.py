"""Scene thumbnails — sequential seek-and-capture over one decoded video.

The video resource has a single playback position, so scenes are processed
strictly one at a time: seek to ``startTimeSeconds``, wait for the decoded
frame, downscale, JPEG-encode, and insert into the :class:`ThumbnailCache`
that belongs to the generation which started the run.

Thumbnails are best-effort: a scene whose seek or encode fails is skipped
and the run moves on.
"""

from __future__ import annotations

import asyncio
import logging
import math
import os
import tempfile
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

import cv2
import numpy as np

from .config import get_config
from .intake import VideoFile
from .models.storyboard import Scene

logger = logging.getLogger(__name__)


class VideoResource(Protocol):
    """Decoded video with one playback position."""

    duration: float

    async def seek(self, seconds: float) -> None:
        """Move the playback position and return once the frame there is decoded."""
        ...

    def capture(self) -> np.ndarray:
        """Return the frame at the settled position (BGR)."""
        ...

    def release(self) -> None: ...


def _measure_duration(cap: cv2.VideoCapture, fps: float) -> float:
    """Length in seconds from the frame count, or from the end position when
    the container does not report one (common for browser-recorded WebM).

    Returns ``math.inf`` when neither is available; scenes past the real end
    then fail to decode and are skipped.
    """
    frame_count = cap.get(cv2.CAP_PROP_FRAME_COUNT)
    if frame_count > 0:
        return frame_count / fps
    cap.set(cv2.CAP_PROP_POS_AVI_RATIO, 1)
    end_msec = cap.get(cv2.CAP_PROP_POS_MSEC)
    cap.set(cv2.CAP_PROP_POS_AVI_RATIO, 0)
    if end_msec > 0:
        return end_msec / 1000
    return math.inf


class CaptureVideoResource:
    """:class:`VideoResource` backed by ``cv2.VideoCapture``.

    Blocking OpenCV calls run in a worker thread under a thread lock, so a
    seek the awaiting caller gave up on still finishes before the next one
    starts. :meth:`release` never waits for that lock: if a seek is still
    decoding, the capture is closed by the seek thread when it is done.
    """

    def __init__(self, path: str | Path) -> None:
        self._cap = cv2.VideoCapture(str(path))
        if not self._cap.isOpened():
            raise ValueError(f"Cannot open video: {path}")

        fps = self._cap.get(cv2.CAP_PROP_FPS)
        if fps <= 0:
            self._cap.release()
            raise ValueError(f"Invalid video FPS: {fps}")

        self.duration: float = _measure_duration(self._cap, fps)
        self.width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self.height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self._frame: np.ndarray | None = None
        self._lock = threading.Lock()
        self._released = False
        self._closed = False
        logger.info(
            "Opened %s: %.1fs, %.1ffps, %dx%d", path, self.duration, fps, self.width, self.height,
        )

    @classmethod
    def open(cls, video: VideoFile) -> CaptureVideoResource:
        return cls(video.path)

    @property
    def closed(self) -> bool:
        """True once the underlying capture has actually been released."""
        return self._closed

    def _close_capture(self) -> None:
        if not self._lock.acquire(blocking=False):
            return
        try:
            if not self._closed:
                self._cap.release()
                self._closed = True
                logger.debug("Video capture closed")
        finally:
            self._lock.release()

    def _seek_blocking(self, seconds: float) -> None:
        try:
            with self._lock:
                if self._released:
                    raise RuntimeError("Video resource already released")
                self._frame = None
                self._cap.set(cv2.CAP_PROP_POS_MSEC, seconds * 1000)
                ok, frame = self._cap.read()
                if not ok or frame is None:
                    raise RuntimeError(f"No frame decoded at {seconds:.2f}s")
                self._frame = frame
        finally:
            # release() was called while this seek held the lock
            if self._released:
                self._frame = None
                self._close_capture()

    async def seek(self, seconds: float) -> None:
        await asyncio.to_thread(self._seek_blocking, seconds)

    def capture(self) -> np.ndarray:
        if self._frame is None:
            raise RuntimeError("No settled frame to capture")
        return self._frame

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._frame = None
        self._close_capture()


def rasterize(frame: np.ndarray, *, divisor: int, quality: int) -> bytes:
    """Downscale *frame* by *divisor* in each dimension and encode it as JPEG."""
    height, width = frame.shape[:2]
    size = (max(1, width // divisor), max(1, height // divisor))
    small = cv2.resize(frame, size, interpolation=cv2.INTER_AREA)
    ok, buf = cv2.imencode(".jpg", small, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise RuntimeError("JPEG encoding failed")
    return buf.tobytes()


class ThumbnailHandle:
    """A scene thumbnail written to disk; ``release()`` deletes it exactly once."""

    def __init__(self, scene_id: int, path: Path) -> None:
        self.scene_id = scene_id
        self.path = path
        self._released = False

    @classmethod
    def write(cls, scene_id: int, data: bytes, directory: Path) -> ThumbnailHandle:
        directory.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(prefix=f"scene-{scene_id}-", suffix=".jpg", dir=directory)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        return cls(scene_id, Path(name))

    @property
    def released(self) -> bool:
        return self._released

    def read_bytes(self) -> bytes:
        if self._released:
            raise ValueError(f"Thumbnail for scene {self.scene_id} was released")
        return self.path.read_bytes()

    def release(self) -> bool:
        """Delete the backing file. Returns False if already released."""
        if self._released:
            return False
        self._released = True
        self.path.unlink(missing_ok=True)
        return True


class ThumbnailCache:
    """Thumbnails for one accepted result, keyed by scene id.

    Once closed by :meth:`release_all`, late inserts are released on arrival
    instead of stored.
    """

    def __init__(self, generation: int) -> None:
        self.generation = generation
        self._entries: dict[int, ThumbnailHandle] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, scene_id: object) -> bool:
        return scene_id in self._entries

    def get(self, scene_id: int) -> ThumbnailHandle | None:
        return self._entries.get(scene_id)

    def scene_ids(self) -> list[int]:
        """Scene ids in insertion order."""
        return list(self._entries)

    def paths(self) -> dict[int, str]:
        return {sid: str(h.path) for sid, h in self._entries.items()}

    def insert(self, handle: ThumbnailHandle) -> bool:
        if self._closed:
            handle.release()
            return False
        previous = self._entries.pop(handle.scene_id, None)
        if previous is not None:
            previous.release()
        self._entries[handle.scene_id] = handle
        return True

    def release_all(self) -> int:
        """Release every stored handle, close the cache, return count released."""
        self._closed = True
        released = sum(1 for h in self._entries.values() if h.release())
        self._entries.clear()
        return released


class FrameExtractor:
    """Fills a :class:`ThumbnailCache` from a :class:`VideoResource`, one scene at a time."""

    def __init__(
        self,
        *,
        divisor: int | None = None,
        quality: int | None = None,
        seek_timeout: float | None = None,
        output_dir: Path | None = None,
    ) -> None:
        cfg = get_config()
        self.divisor = divisor or cfg.thumbnail_divisor
        self.quality = quality or cfg.thumbnail_quality
        self.seek_timeout = seek_timeout or cfg.seek_timeout_seconds
        self.output_dir = output_dir or cfg.thumbnail_dir
        # One playback position: runs for different generations must not interleave.
        self._position_lock = asyncio.Lock()

    async def _capture_scene(self, resource: VideoResource, scene: Scene) -> ThumbnailHandle:
        async with self._position_lock:
            await asyncio.wait_for(resource.seek(scene.start_time_seconds), timeout=self.seek_timeout)
            frame = resource.capture()
        data = await asyncio.to_thread(rasterize, frame, divisor=self.divisor, quality=self.quality)
        return await asyncio.to_thread(ThumbnailHandle.write, scene.id, data, self.output_dir)

    async def extract(
        self,
        resource: VideoResource,
        scenes: Iterable[Scene],
        cache: ThumbnailCache,
    ) -> int:
        """Produce one thumbnail per scene, ordered by start offset.

        Returns:
            Number of thumbnails inserted into *cache*.
        """
        ordered = sorted(scenes, key=lambda s: s.start_time_seconds)
        produced = 0
        for scene in ordered:
            if cache.closed:
                logger.info(
                    "Generation %d superseded, stopping after %d thumbnail(s)",
                    cache.generation, produced,
                )
                break
            if not 0 <= scene.start_time_seconds < resource.duration:
                logger.warning(
                    "Scene %d starts at %.2fs, outside video duration %.2fs; no thumbnail",
                    scene.id, scene.start_time_seconds, resource.duration,
                )
                continue
            try:
                handle = await self._capture_scene(resource, scene)
            except Exception as exc:
                logger.warning("Thumbnail for scene %d failed: %r", scene.id, exc)
                continue
            if cache.insert(handle):
                produced += 1
            else:
                logger.debug("Dropped late thumbnail for scene %d (generation %d)", scene.id, cache.generation)

        logger.info(
            "Generation %d: %d/%d thumbnail(s) extracted", cache.generation, produced, len(ordered),
        )
        return produced
