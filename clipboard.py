"""Clipboard image capture.

A capture is a single best-effort snapshot: the platform clipboard is read
once, its entries are scanned in the order the platform exposes them, and
the first ``image/*`` payload wins.  There is no polling and no change
listener.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from errors import ClipboardAccessError
from interfaces import ClipboardEntry
from models import ImagePayload

try:
    from PySide6.QtCore import QBuffer, QIODevice
    from PySide6.QtWidgets import QApplication
except Exception:  # pragma: no cover
    QBuffer = None  # type: ignore
    QIODevice = None  # type: ignore
    QApplication = None  # type: ignore

logger = logging.getLogger(__name__)

IMAGE_PREFIX = "image/"
FALLBACK_IMAGE_TYPE = "image/png"


@dataclass(frozen=True)
class SnapshotEntry:
    """Clipboard entry copied out of the platform clipboard."""

    types: Tuple[str, ...]
    payloads: Dict[str, bytes] = field(default_factory=dict)

    def get_type(self, mime_type: str) -> bytes:
        return self.payloads.get(mime_type, b"")


def first_image_payload(entries: Iterable[ClipboardEntry]) -> Optional[ImagePayload]:
    """Return the first image payload, scanning entries then their type tags."""
    for entry in entries:
        for mime_type in entry.types:
            if not mime_type.startswith(IMAGE_PREFIX):
                continue
            data = entry.get_type(mime_type)
            if data:
                return ImagePayload(data=bytes(data), mime_type=mime_type)
    return None


def snapshot_qt_clipboard() -> List[SnapshotEntry]:
    """Copy the current Qt clipboard contents. Must run on the GUI thread."""
    if QApplication is None:
        raise ClipboardAccessError("PySide6 is not installed")
    if QApplication.instance() is None:
        raise ClipboardAccessError("no running QApplication")
    clipboard = QApplication.clipboard()
    mime = clipboard.mimeData() if clipboard is not None else None
    if mime is None:
        raise ClipboardAccessError("clipboard is not available")

    types = [str(fmt) for fmt in mime.formats()]
    payloads: Dict[str, bytes] = {}
    for fmt in types:
        if fmt.startswith(IMAGE_PREFIX):
            payloads[fmt] = bytes(mime.data(fmt).data())

    # Some platforms only expose native image formats; re-encode as PNG.
    if not payloads and mime.hasImage():
        png = _encode_png(mime.imageData())
        if png:
            types.append(FALLBACK_IMAGE_TYPE)
            payloads[FALLBACK_IMAGE_TYPE] = png

    if not types:
        return []
    return [SnapshotEntry(types=tuple(types), payloads=payloads)]


def _encode_png(image: object) -> bytes:
    if image is None or QBuffer is None or QIODevice is None:
        return b""
    if getattr(image, "isNull", lambda: True)():
        return b""
    buf = QBuffer()
    buf.open(QIODevice.WriteOnly)
    ok = image.save(buf, "PNG")  # type: ignore[attr-defined]
    buf.close()
    return bytes(buf.data().data()) if ok else b""


class QtClipboardImageSource:
    def __init__(
        self,
        read_entries: Callable[[], Sequence[ClipboardEntry]] = snapshot_qt_clipboard,
    ) -> None:
        self._read_entries = read_entries

    def capture(self) -> Optional[ImagePayload]:
        try:
            entries = self._read_entries()
        except ClipboardAccessError:
            raise
        except Exception as exc:
            raise ClipboardAccessError(str(exc)) from exc

        payload = first_image_payload(entries)
        if payload is None:
            logger.info("clipboard holds no image (%d entries)", len(entries))
        else:
            logger.info("captured %s image, %d bytes", payload.mime_type, len(payload.data))
        return payload
