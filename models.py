"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PipelineState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"


class ViewMode(str, Enum):
    MAIN = "MAIN"
    SETTINGS = "SETTINGS"


class DecodeKind(str, Enum):
    OK = "ok"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class ImagePayload:
    data: bytes
    mime_type: str


@dataclass(frozen=True)
class DecodeResult:
    kind: str
    text: str = ""

    @classmethod
    def ok(cls, text: str) -> "DecodeResult":
        return cls(kind=DecodeKind.OK.value, text=text)

    @classmethod
    def malformed(cls) -> "DecodeResult":
        return cls(kind=DecodeKind.MALFORMED.value)

    @property
    def is_ok(self) -> bool:
        return self.kind == DecodeKind.OK.value


@dataclass(frozen=True)
class PipelineSnapshot:
    """What the presentation layer renders for one pipeline run.

    Fields fill in pipeline order (image, recognized, translated) and a new
    run starts from an empty snapshot, so a RUNNING snapshot never carries
    text from an earlier run.
    """

    state: PipelineState = PipelineState.IDLE
    image: Optional[ImagePayload] = None
    recognized_text: str = ""
    translated_text: str = ""
    error_code: str = ""

    @property
    def is_error(self) -> bool:
        return bool(self.error_code)
