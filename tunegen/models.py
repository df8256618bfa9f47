"""Data models for API keys and generation jobs."""

import time
from dataclasses import dataclass, field
from typing import ClassVar, Dict, List, Mapping, Optional, Tuple, Union

DEFAULT_TRACK_TITLE = "Generated Track"
DEFAULT_TRACK_DURATION = 180.0


@dataclass
class Credential:
    """Represents a single API key with usage tracking."""

    id: str
    key: str
    max_requests: int = 20
    usage: int = 0
    reset_at: float = 0.0
    last_used: Optional[float] = None

    @property
    def is_available(self) -> bool:
        return self.usage < self.max_requests

    @property
    def remaining(self) -> int:
        return max(self.max_requests - self.usage, 0)

    def key_prefix(self) -> str:
        if len(self.key) <= 11:
            return self.key
        return f"{self.key[:8]}...{self.key[-3:]}"


@dataclass
class GenerationParams:
    """Parameters of one music generation request."""

    prompt: str
    custom_mode: bool = False
    instrumental: bool = False
    model: Optional[str] = None
    style: str = ""
    title: str = ""
    negative_tags: str = ""
    callback_url: Optional[str] = None

    def to_payload(self, default_model: str, default_callback: str) -> Dict[str, object]:
        return {
            "prompt": self.prompt.strip(),
            "customMode": self.custom_mode,
            "instrumental": self.instrumental,
            "model": self.model or default_model,
            "style": self.style,
            "title": self.title,
            "negativeTags": self.negative_tags,
            "callBackUrl": self.callback_url or default_callback,
        }

    @classmethod
    def from_options(cls, prompt: str, options: Mapping[str, object]) -> "GenerationParams":
        """Build params from the camelCase ``options`` object used by clients."""
        model = options.get("model")
        return cls(
            prompt=prompt,
            custom_mode=bool(options.get("customMode", False)),
            instrumental=bool(options.get("instrumental", False)),
            model=str(model) if model else None,
            style=str(options.get("style") or ""),
            title=str(options.get("title") or ""),
            negative_tags=str(options.get("negativeTags") or ""),
        )


@dataclass(frozen=True)
class Track:
    """One audio track produced by a generation job."""

    id: str
    title: str
    audio_url: str
    duration: float = DEFAULT_TRACK_DURATION
    tags: str = ""
    image_url: Optional[str] = None

    @classmethod
    def from_payload(
        cls, item: Mapping[str, object], fallback_title: str = ""
    ) -> "Track":
        duration = item.get("duration")
        if not isinstance(duration, (int, float)) or duration <= 0:
            duration = DEFAULT_TRACK_DURATION
        return cls(
            id=str(item.get("id", "")),
            title=str(item.get("title") or fallback_title or DEFAULT_TRACK_TITLE),
            audio_url=str(item.get("audioUrl") or ""),
            duration=float(duration),
            tags=str(item.get("tags") or ""),
            image_url=str(item["imageUrl"]) if item.get("imageUrl") else None,
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "audioUrl": self.audio_url,
            "duration": self.duration,
            "tags": self.tags,
            "imageUrl": self.image_url,
        }


# Job states. Only the success variants carry tracks and only Failed carries
# an error message.


@dataclass(frozen=True)
class Submitted:
    name: ClassVar[str] = "SUBMITTED"
    terminal: ClassVar[bool] = False


@dataclass(frozen=True)
class Pending:
    remote_status: Optional[str] = None

    name: ClassVar[str] = "PENDING"
    terminal: ClassVar[bool] = False


@dataclass(frozen=True)
class TextReady:
    name: ClassVar[str] = "TEXT_READY"
    terminal: ClassVar[bool] = False


@dataclass(frozen=True)
class PartialSuccess:
    tracks: Tuple[Track, ...] = ()

    name: ClassVar[str] = "PARTIAL_SUCCESS"
    terminal: ClassVar[bool] = False


@dataclass(frozen=True)
class Success:
    tracks: Tuple[Track, ...]

    name: ClassVar[str] = "SUCCESS"
    terminal: ClassVar[bool] = True


@dataclass(frozen=True)
class Failed:
    error: str

    name: ClassVar[str] = "FAILED"
    terminal: ClassVar[bool] = True


@dataclass(frozen=True)
class TimedOut:
    elapsed: float

    name: ClassVar[str] = "TIMEOUT"
    terminal: ClassVar[bool] = True


JobState = Union[Submitted, Pending, TextReady, PartialSuccess, Success, Failed, TimedOut]


@dataclass
class GenerationJob:
    """A generation request tracked from submission to a terminal state."""

    task_id: str
    state: JobState = field(default_factory=Submitted)
    params: Optional[GenerationParams] = None
    submitted_at: float = field(default_factory=time.time)
    updated_at: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.terminal

    @property
    def tracks(self) -> List[Track]:
        if isinstance(self.state, (Success, PartialSuccess)):
            return list(self.state.tracks)
        return []

    @property
    def error(self) -> Optional[str]:
        if isinstance(self.state, Failed):
            return self.state.error
        if isinstance(self.state, TimedOut):
            return f"Generation timed out after {self.state.elapsed:.0f}s"
        return None

    def to_dict(self) -> Dict[str, object]:
        return {
            "taskId": self.task_id,
            "state": self.state.name,
            "terminal": self.is_terminal,
            "prompt": self.params.prompt if self.params else None,
            "tracks": [track.to_dict() for track in self.tracks],
            "error": self.error,
            "submittedAt": self.submitted_at,
            "updatedAt": self.updated_at,
        }
