"""Protocol interfaces used by PipelineController."""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

from models import ImagePayload


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class ClipboardEntry(Protocol):
    @property
    def types(self) -> Sequence[str]: ...

    def get_type(self, mime_type: str) -> bytes: ...


class ClipboardImageSource(Protocol):
    def capture(self) -> Optional[ImagePayload]: ...


class Recognizer(Protocol):
    def recognize(self, image: ImagePayload, credential: str) -> str: ...


class Translator(Protocol):
    def translate(self, text: str) -> str: ...
