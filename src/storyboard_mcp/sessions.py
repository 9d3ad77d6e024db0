"""Analysis session state — the single struct owned by the workflow controller."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from .errors import AnalysisError
from .frames import ThumbnailCache, VideoResource
from .intake import VideoFile
from .models.storyboard import VideoAnalysisResult
from .types import AnalysisMode


class WorkflowState(str, Enum):
    SELECTING_MODE = "selecting_mode"
    ANALYZING = "analyzing"
    READY = "ready"
    FAILED = "failed"


@dataclass
class Session:
    """Everything one storyboard session holds.

    ``generation`` only ever increases; a response is applied only when it
    carries the current value.
    """

    state: WorkflowState = WorkflowState.SELECTING_MODE
    mode: AnalysisMode | None = None
    file: VideoFile | None = None
    video: VideoResource | None = None
    credential: str = ""
    result: VideoAnalysisResult | None = None
    error: AnalysisError | None = None
    thumbnails: ThumbnailCache | None = None
    generation: int = 0
    last_active: datetime = field(default_factory=datetime.now)

    def view(self) -> SessionView:
        error = None
        if self.error is not None:
            error = ErrorInfo(
                category=self.error.category.value,
                message=self.error.display_message,
                prompt_for_credential=self.error.prompts_for_credential,
            )
        return SessionView(
            state=self.state,
            mode=self.mode,
            generation=self.generation,
            file_path=str(self.file.path) if self.file else "",
            has_credential=bool(self.credential),
            result=self.result if self.state == WorkflowState.READY else None,
            error=error,
            thumbnails=self.thumbnails.paths() if self.thumbnails else {},
        )


class ErrorInfo(BaseModel):
    category: str
    message: str
    prompt_for_credential: bool = False


class SessionView(BaseModel):
    """Serializable snapshot of a session for presenters and tools.

    The result is shown only in ``ready``; a result kept from an earlier
    generation while a newer attempt runs or has failed is not exposed.
    """

    state: WorkflowState
    mode: AnalysisMode | None = None
    generation: int = 0
    file_path: str = ""
    has_credential: bool = False
    result: VideoAnalysisResult | None = None
    error: ErrorInfo | None = None
    thumbnails: dict[int, str] = {}
