"""Local video intake — MIME detection and size checks for a selected file.

Produces the already-validated :class:`VideoFile` handle the rest of the
package consumes; nothing downstream re-checks type or size.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict

from .config import get_config

SUPPORTED_VIDEO_EXTENSIONS: dict[str, str] = {
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".mpeg": "video/mpeg",
    ".wmv": "video/x-ms-wmv",
    ".3gpp": "video/3gpp",
}


class VideoFile(BaseModel):
    """A selected video: path, declared MIME type and size in bytes."""

    model_config = ConfigDict(frozen=True)

    path: Path
    mime_type: str
    size: int

    @property
    def name(self) -> str:
        return self.path.name


def _video_mime_type(path: Path) -> str:
    """Return MIME type for a video file, or raise ValueError if unsupported."""
    ext = path.suffix.lower()
    mime = SUPPORTED_VIDEO_EXTENSIONS.get(ext)
    if not mime:
        allowed = ", ".join(sorted(SUPPORTED_VIDEO_EXTENSIONS))
        raise ValueError(f"Unsupported video extension '{ext}'. Supported: {allowed}")
    return mime


def load_video_file(file_path: str | Path) -> VideoFile:
    """Validate a local path and return its :class:`VideoFile` handle.

    Raises:
        FileNotFoundError: If the path does not exist.
        ValueError: If it is not a file, not a supported video, or too large.
    """
    p = Path(file_path).expanduser().resolve()
    if not p.exists():
        raise FileNotFoundError(f"Video file not found: {file_path}")
    if not p.is_file():
        raise ValueError(f"Not a file: {file_path}")
    mime = _video_mime_type(p)
    size = p.stat().st_size
    limit = get_config().max_file_bytes
    if size > limit:
        raise ValueError(
            f"Video is {size / 1024 / 1024:.1f} MB, exceeds the {limit // (1024 * 1024)} MB limit"
        )
    return VideoFile(path=p, mime_type=mime, size=size)
