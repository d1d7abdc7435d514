from __future__ import annotations

import threading

import httpx

from config import CredentialStore
from errors import (
    CLIPBOARD_ACCESS_DENIED,
    CREDENTIAL_SAVED,
    ERROR_MESSAGES,
    MISSING_CREDENTIAL,
    NO_CLIPBOARD_IMAGE,
    NOT_RECOGNIZED_TEXT,
    NOTICE_MESSAGES,
    TRANSLATION_FAILED_TEXT,
    ClipboardAccessError,
)
from models import ImagePayload, PipelineSnapshot, PipelineState, ViewMode
from pipeline_controller import PipelineController
from recognizer import GeminiRecognizer
from translator import YoudaoTranslator

PNG = ImagePayload(data=b"\x89PNG-bytes", mime_type="image/png")
JPEG = ImagePayload(data=b"\xff\xd8JPEG-bytes", mime_type="image/jpeg")


class MemoryStore:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class FakeClipboard:
    def __init__(self, image: ImagePayload | None = None, denied: bool = False) -> None:
        self.image = image
        self.denied = denied
        self.calls = 0

    def capture(self) -> ImagePayload | None:
        self.calls += 1
        if self.denied:
            raise ClipboardAccessError("permission denied")
        return self.image


class FakeRecognizer:
    def __init__(self, text: str = "Hello") -> None:
        self.text = text
        self.calls: list[tuple[ImagePayload, str]] = []

    def recognize(self, image: ImagePayload, credential: str) -> str:
        self.calls.append((image, credential))
        return self.text


class FakeTranslator:
    def __init__(self, text: str = "你好") -> None:
        self.text = text
        self.calls: list[str] = []

    def translate(self, text: str) -> str:
        self.calls.append(text)
        return self.text


class BlockingRecognizer(FakeRecognizer):
    """Holds the first call until ``release`` is set."""

    def __init__(self, text: str = "Hello") -> None:
        super().__init__(text)
        self.entered = threading.Event()
        self.release = threading.Event()

    def recognize(self, image: ImagePayload, credential: str) -> str:
        self.calls.append((image, credential))
        self.entered.set()
        self.release.wait(timeout=2.0)
        return self.text


class Harness:
    def __init__(
        self,
        credential: str = "ABC123",
        clipboard: FakeClipboard | None = None,
        recognizer=None,  # noqa: ANN001
        translator=None,  # noqa: ANN001
    ) -> None:
        self.store = MemoryStore({"gemini_api_key": credential})
        self.clipboard = clipboard or FakeClipboard(PNG)
        self.recognizer = recognizer or FakeRecognizer()
        self.translator = translator or FakeTranslator()
        self.transitions: list[tuple[PipelineState, PipelineState]] = []
        self.snapshots: list[PipelineSnapshot] = []
        self.notices: list[tuple[str, str]] = []
        self.views: list[ViewMode] = []
        self.controller = PipelineController(
            credentials=CredentialStore(self.store),
            clipboard=self.clipboard,
            recognizer=self.recognizer,
            translator=self.translator,
            on_state_change=lambda f, t: self.transitions.append((f, t)),
            on_snapshot=self.snapshots.append,
            on_notice=lambda c, m: self.notices.append((c, m)),
            on_view_change=self.views.append,
        )


def test_missing_credential_redirects_to_settings_without_network() -> None:
    h = Harness(credential="")

    snapshot = h.controller.run()

    assert snapshot is not None
    assert snapshot.state == PipelineState.COMPLETED
    assert snapshot.error_code == MISSING_CREDENTIAL
    assert snapshot.recognized_text == ""
    assert snapshot.translated_text == ""
    assert h.notices == [(MISSING_CREDENTIAL, ERROR_MESSAGES[MISSING_CREDENTIAL])]
    assert h.controller.view == ViewMode.SETTINGS
    assert h.views == [ViewMode.SETTINGS]
    assert h.clipboard.calls == 0
    assert h.recognizer.calls == []
    assert h.translator.calls == []


def test_empty_clipboard_reports_no_image() -> None:
    h = Harness(clipboard=FakeClipboard(None))

    snapshot = h.controller.run()

    assert snapshot is not None
    assert snapshot.state == PipelineState.COMPLETED
    assert snapshot.error_code == NO_CLIPBOARD_IMAGE
    assert snapshot.image is None
    assert [code for code, _ in h.notices] == [NO_CLIPBOARD_IMAGE]
    assert h.recognizer.calls == []
    assert h.translator.calls == []
    assert h.controller.view == ViewMode.MAIN


def test_clipboard_denied_has_its_own_notice() -> None:
    h = Harness(clipboard=FakeClipboard(denied=True))

    snapshot = h.controller.run()

    assert snapshot is not None
    assert snapshot.error_code == CLIPBOARD_ACCESS_DENIED
    assert [code for code, _ in h.notices] == [CLIPBOARD_ACCESS_DENIED]
    assert h.notices[0][1] != ERROR_MESSAGES[NO_CLIPBOARD_IMAGE]
    assert h.recognizer.calls == []
    assert h.translator.calls == []


def test_unrecognized_text_is_still_translated() -> None:
    h = Harness(recognizer=FakeRecognizer(NOT_RECOGNIZED_TEXT), translator=FakeTranslator("未能识别"))

    snapshot = h.controller.run()

    assert snapshot is not None
    assert snapshot.state == PipelineState.COMPLETED
    assert snapshot.recognized_text == NOT_RECOGNIZED_TEXT
    assert h.translator.calls == [NOT_RECOGNIZED_TEXT]
    assert snapshot.translated_text == "未能识别"
    assert not snapshot.is_error


def test_happy_path_fills_fields_in_order() -> None:
    h = Harness(clipboard=FakeClipboard(JPEG))

    snapshot = h.controller.run()

    assert snapshot is not None
    assert snapshot.state == PipelineState.COMPLETED
    assert snapshot.image == JPEG
    assert snapshot.recognized_text == "Hello"
    assert snapshot.translated_text == "你好"
    assert h.recognizer.calls == [(JPEG, "ABC123")]
    assert h.translator.calls == ["Hello"]
    assert h.notices == []

    # Published snapshots fill in monotonically: image, recognized, translated.
    assert [s.state for s in h.snapshots] == [
        PipelineState.RUNNING,
        PipelineState.RUNNING,
        PipelineState.RUNNING,
        PipelineState.COMPLETED,
    ]
    assert h.snapshots[0] == PipelineSnapshot(state=PipelineState.RUNNING)
    assert h.snapshots[1].image == JPEG and h.snapshots[1].recognized_text == ""
    assert h.snapshots[2].recognized_text == "Hello" and h.snapshots[2].translated_text == ""
    assert h.transitions == [
        (PipelineState.IDLE, PipelineState.RUNNING),
        (PipelineState.RUNNING, PipelineState.COMPLETED),
    ]


def test_second_run_starts_from_empty_fields_and_repeats_output() -> None:
    h = Harness()

    first = h.controller.run()
    h.snapshots.clear()
    second = h.controller.run()

    assert first == second
    assert h.snapshots[0] == PipelineSnapshot(state=PipelineState.RUNNING)
    assert (PipelineState.COMPLETED, PipelineState.RUNNING) in h.transitions
    assert len(h.recognizer.calls) == 2
    assert len(h.translator.calls) == 2


def test_overlapping_trigger_is_rejected() -> None:
    recognizer = BlockingRecognizer("first")
    h = Harness(recognizer=recognizer)
    results: list[PipelineSnapshot | None] = []

    worker = threading.Thread(target=lambda: results.append(h.controller.run()))
    worker.start()
    assert recognizer.entered.wait(timeout=2.0)

    before = h.controller.snapshot
    assert h.controller.run() is None
    assert h.controller.snapshot is before

    recognizer.release.set()
    worker.join(timeout=2.0)

    assert len(recognizer.calls) == 1
    assert h.clipboard.calls == 1
    assert results[0] is not None
    assert results[0].recognized_text == "first"
    assert h.controller.snapshot.translated_text == "你好"


def test_cancelled_run_discards_late_results() -> None:
    recognizer = BlockingRecognizer("stale")
    h = Harness(recognizer=recognizer)
    results: list[PipelineSnapshot | None] = []

    worker = threading.Thread(target=lambda: results.append(h.controller.run()))
    worker.start()
    assert recognizer.entered.wait(timeout=2.0)

    h.controller.cancel_run("test cancel")
    assert h.controller.state == PipelineState.IDLE
    recognizer.release.set()
    worker.join(timeout=2.0)

    assert results == [None]
    assert h.controller.snapshot == PipelineSnapshot(state=PipelineState.IDLE)
    assert h.translator.calls == []


def test_cancel_when_not_running_is_noop() -> None:
    h = Harness()
    h.controller.run()
    completed = h.controller.snapshot

    h.controller.cancel_run("noop")

    assert h.controller.snapshot is completed


def test_open_settings_cancels_in_flight_run() -> None:
    recognizer = BlockingRecognizer()
    h = Harness(recognizer=recognizer)
    worker = threading.Thread(target=h.controller.run)
    worker.start()
    assert recognizer.entered.wait(timeout=2.0)

    stored = h.controller.open_settings()
    recognizer.release.set()
    worker.join(timeout=2.0)

    assert stored == "ABC123"
    assert h.controller.view == ViewMode.SETTINGS
    assert h.controller.snapshot.recognized_text == ""


def test_stage_exceptions_degrade_to_sentinels() -> None:
    class Exploding:
        def recognize(self, image: ImagePayload, credential: str) -> str:
            raise RuntimeError("boom")

        def translate(self, text: str) -> str:
            raise RuntimeError("boom")

    h = Harness(recognizer=Exploding(), translator=Exploding())

    snapshot = h.controller.run()

    assert snapshot is not None
    assert snapshot.state == PipelineState.COMPLETED
    assert snapshot.recognized_text == NOT_RECOGNIZED_TEXT
    assert snapshot.translated_text == TRANSLATION_FAILED_TEXT


def test_save_credential_trims_persists_and_returns_to_main() -> None:
    h = Harness(credential="")
    h.controller.run()
    assert h.controller.view == ViewMode.SETTINGS

    h.controller.save_credential("  NEWKEY  ")

    assert h.store.data["gemini_api_key"] == "NEWKEY"
    assert h.controller.credential == "NEWKEY"
    assert h.controller.view == ViewMode.MAIN
    assert h.notices[-1] == (CREDENTIAL_SAVED, NOTICE_MESSAGES[CREDENTIAL_SAVED])
    assert CREDENTIAL_SAVED not in ERROR_MESSAGES

    snapshot = h.controller.run()
    assert snapshot is not None
    assert snapshot.translated_text == "你好"
    assert h.recognizer.calls == [(PNG, "NEWKEY")]


def test_close_settings_returns_to_main() -> None:
    h = Harness()
    h.controller.open_settings()
    h.controller.close_settings()

    assert h.views == [ViewMode.SETTINGS, ViewMode.MAIN]


def test_end_to_end_with_http_clients() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.host == "generativelanguage.googleapis.com":
            return httpx.Response(
                200, json={"candidates": [{"content": {"parts": [{"text": "Hello"}]}}]}
            )
        return httpx.Response(200, json={"translateResult": [[{"src": "Hello", "tgt": "你好"}]]})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    h = Harness(
        clipboard=FakeClipboard(JPEG),
        recognizer=GeminiRecognizer(client=client),
        translator=YoudaoTranslator(client=client),
    )

    snapshot = h.controller.run()

    assert snapshot is not None
    assert snapshot.recognized_text == "Hello"
    assert snapshot.translated_text == "你好"
    assert [r.method for r in seen] == ["POST", "GET"]
    assert seen[1].url.params["i"] == "Hello"


def test_end_to_end_missing_credential_makes_no_requests() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    h = Harness(
        credential="",
        recognizer=GeminiRecognizer(client=client),
        translator=YoudaoTranslator(client=client),
    )

    h.controller.run()

    assert seen == []
    assert h.controller.view == ViewMode.SETTINGS


def test_unexpected_clipboard_error_is_reported_as_access_denied() -> None:
    class BrokenClipboard:
        def capture(self) -> ImagePayload | None:
            raise OSError("display connection lost")

    h = Harness(clipboard=BrokenClipboard())  # type: ignore[arg-type]

    snapshot = h.controller.run()

    assert snapshot is not None
    assert snapshot.state == PipelineState.COMPLETED
    assert snapshot.error_code == CLIPBOARD_ACCESS_DENIED
    assert h.recognizer.calls == []


def test_notice_callback_runs_without_lock_held() -> None:
    # on_notice blocks like a modal dialog until ``dialog_closed`` is set.
    dialog_open = threading.Event()
    dialog_closed = threading.Event()

    def modal_notice(code: str, message: str) -> None:
        dialog_open.set()
        dialog_closed.wait(timeout=3.0)

    h = Harness(credential="")
    h.controller = PipelineController(
        credentials=CredentialStore(h.store),
        clipboard=h.clipboard,
        recognizer=h.recognizer,
        translator=h.translator,
        on_notice=modal_notice,
    )

    saver = threading.Thread(target=lambda: h.controller.save_credential("NEW"))
    saver.start()
    assert dialog_open.wait(timeout=2.0)

    runner = threading.Thread(target=h.controller.run)
    runner.start()
    runner.join(timeout=1.5)
    blocked = runner.is_alive()

    dialog_closed.set()
    saver.join(timeout=2.0)
    runner.join(timeout=2.0)

    assert not blocked
    assert h.controller.snapshot.state == PipelineState.COMPLETED
    assert h.recognizer.calls == [(PNG, "NEW")]


def test_missing_credential_notice_does_not_block_settings() -> None:
    dialog_open = threading.Event()
    dialog_closed = threading.Event()

    def modal_notice(code: str, message: str) -> None:
        if code == MISSING_CREDENTIAL:
            dialog_open.set()
            dialog_closed.wait(timeout=3.0)

    h = Harness(credential="")
    h.controller = PipelineController(
        credentials=CredentialStore(h.store),
        clipboard=h.clipboard,
        recognizer=h.recognizer,
        translator=h.translator,
        on_notice=modal_notice,
    )

    runner = threading.Thread(target=h.controller.run)
    runner.start()
    assert dialog_open.wait(timeout=2.0)

    saver = threading.Thread(target=lambda: h.controller.save_credential("NEW"))
    saver.start()
    saver.join(timeout=1.5)
    blocked = saver.is_alive()

    dialog_closed.set()
    runner.join(timeout=2.0)
    saver.join(timeout=2.0)

    assert not blocked
    assert h.store.data["gemini_api_key"] == "NEW"


def test_missing_candidates_through_http_still_translates_sentinel() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.host == "generativelanguage.googleapis.com":
            return httpx.Response(200, json={"promptFeedback": {"blockReason": "OTHER"}})
        return httpx.Response(200, json={"translateResult": [[{"tgt": "无法识别"}]]})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    h = Harness(
        clipboard=FakeClipboard(PNG),
        recognizer=GeminiRecognizer(client=client),
        translator=YoudaoTranslator(client=client),
    )

    snapshot = h.controller.run()

    assert snapshot is not None
    assert snapshot.state == PipelineState.COMPLETED
    assert not snapshot.is_error
    assert snapshot.recognized_text == NOT_RECOGNIZED_TEXT
    assert [r.method for r in seen] == ["POST", "GET"]
    assert seen[1].url.params["i"] == NOT_RECOGNIZED_TEXT
    assert snapshot.translated_text == "无法识别"
