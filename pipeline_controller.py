"""State-machine based pipeline orchestration.

One run goes clipboard image -> recognition -> translation.  Each stage
waits for the previous one, and the controller publishes a fresh
``PipelineSnapshot`` after every stage.  Network stages are called without
holding the lock; their results are written back only if the run that
started them is still the current one.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Callable, Optional

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
from interfaces import ClipboardImageSource, Recognizer, Translator
from models import ImagePayload, PipelineSnapshot, PipelineState, ViewMode

logger = logging.getLogger(__name__)

StateCallback = Callable[[PipelineState, PipelineState], None]
SnapshotCallback = Callable[[PipelineSnapshot], None]
NoticeCallback = Callable[[str, str], None]
ViewCallback = Callable[[ViewMode], None]


class PipelineController:
    def __init__(
        self,
        credentials: CredentialStore,
        clipboard: ClipboardImageSource,
        recognizer: Recognizer,
        translator: Translator,
        on_state_change: Optional[StateCallback] = None,
        on_snapshot: Optional[SnapshotCallback] = None,
        on_notice: Optional[NoticeCallback] = None,
        on_view_change: Optional[ViewCallback] = None,
    ) -> None:
        self._credentials = credentials
        self._clipboard = clipboard
        self._recognizer = recognizer
        self._translator = translator
        self._on_state_change = on_state_change
        self._on_snapshot = on_snapshot
        self._on_notice = on_notice
        self._on_view_change = on_view_change

        self._lock = threading.RLock()
        self._run_id = 0
        self._snapshot = PipelineSnapshot()
        self._view = ViewMode.MAIN
        self._credential = credentials.load()

    @property
    def state(self) -> PipelineState:
        return self._snapshot.state

    @property
    def snapshot(self) -> PipelineSnapshot:
        return self._snapshot

    @property
    def view(self) -> ViewMode:
        return self._view

    @property
    def credential(self) -> str:
        return self._credential

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def run(self) -> Optional[PipelineSnapshot]:
        """Run the whole pipeline once.

        Returns the final snapshot, or ``None`` when another run is already
        in flight (the trigger is rejected without touching any state) or
        when this run was cancelled before it finished.
        """
        with self._lock:
            if self._snapshot.state == PipelineState.RUNNING:
                logger.info("run rejected: pipeline already running")
                return None
            self._run_id += 1
            run_id = self._run_id
            credential = self._credential
            self._publish(PipelineSnapshot(state=PipelineState.RUNNING))

            if not credential:
                self._finish_with_error(MISSING_CREDENTIAL)
                snapshot = self._snapshot
                view_changed = self._set_view(ViewMode.SETTINGS)

        if not credential:
            self._emit_notice(MISSING_CREDENTIAL, ERROR_MESSAGES[MISSING_CREDENTIAL])
            if view_changed:
                self._emit_view(ViewMode.SETTINGS)
            return snapshot

        logger.info("run %d started", run_id)

        try:
            image = self._clipboard.capture()
        except ClipboardAccessError as exc:
            logger.warning("run %d: clipboard access failed: %s", run_id, exc)
            return self._fail_if_current(run_id, CLIPBOARD_ACCESS_DENIED)
        except Exception:
            logger.exception("run %d: clipboard source raised", run_id)
            return self._fail_if_current(run_id, CLIPBOARD_ACCESS_DENIED)

        if image is None:
            return self._fail_if_current(run_id, NO_CLIPBOARD_IMAGE)

        if not self._update_if_current(run_id, image=image):
            return None

        recognized = self._run_recognition(image, credential)
        if not self._update_if_current(run_id, recognized_text=recognized):
            return None

        # Sentinel text from a failed recognition is translated as-is.
        translated = self._run_translation(recognized)
        with self._lock:
            if run_id != self._run_id:
                logger.info("run %d: discarding stale translation", run_id)
                return None
            self._publish(
                replace(self._snapshot, state=PipelineState.COMPLETED, translated_text=translated)
            )
            logger.info("run %d completed", run_id)
            return self._snapshot

    def cancel_run(self, reason: str = "") -> None:
        """Invalidate the in-flight run; late stage results are dropped."""
        with self._lock:
            if self._snapshot.state != PipelineState.RUNNING:
                return
            self._run_id += 1
            logger.info("run cancelled: %s", reason or "no reason given")
            self._publish(PipelineSnapshot(state=PipelineState.IDLE))

    def _run_recognition(self, image: ImagePayload, credential: str) -> str:
        try:
            return self._recognizer.recognize(image, credential)
        except Exception:
            logger.exception("recognizer raised; using fallback text")
            return NOT_RECOGNIZED_TEXT

    def _run_translation(self, text: str) -> str:
        try:
            return self._translator.translate(text)
        except Exception:
            logger.exception("translator raised; using fallback text")
            return TRANSLATION_FAILED_TEXT

    def _update_if_current(self, run_id: int, **fields: object) -> bool:
        with self._lock:
            if run_id != self._run_id:
                logger.info("run %d: discarding stale stage result", run_id)
                return False
            self._publish(replace(self._snapshot, **fields))
            return True

    def _fail_if_current(self, run_id: int, code: str) -> Optional[PipelineSnapshot]:
        with self._lock:
            if run_id != self._run_id:
                return None
            self._finish_with_error(code)
            snapshot = self._snapshot
        self._emit_notice(code, ERROR_MESSAGES[code])
        return snapshot

    def _finish_with_error(self, code: str) -> None:
        self._publish(PipelineSnapshot(state=PipelineState.COMPLETED, error_code=code))

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def open_settings(self) -> str:
        """Switch to the settings view and return the stored credential."""
        self.cancel_run("settings opened")
        with self._lock:
            changed = self._set_view(ViewMode.SETTINGS)
        if changed:
            self._emit_view(ViewMode.SETTINGS)
        return self._credentials.load()

    def close_settings(self) -> None:
        with self._lock:
            changed = self._set_view(ViewMode.MAIN)
        if changed:
            self._emit_view(ViewMode.MAIN)

    def save_credential(self, value: str) -> None:
        with self._lock:
            self._credentials.save(value)
            self._credential = value.strip()
            logger.info("credential saved (%s)", "set" if self._credential else "empty")
            changed = self._set_view(ViewMode.MAIN)
        # Callbacks may block (modal dialogs); they run without the lock held.
        self._emit_notice(CREDENTIAL_SAVED, NOTICE_MESSAGES[CREDENTIAL_SAVED])
        if changed:
            self._emit_view(ViewMode.MAIN)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _publish(self, snapshot: PipelineSnapshot) -> None:
        from_state = self._snapshot.state
        self._snapshot = snapshot
        if from_state != snapshot.state and self._on_state_change:
            self._on_state_change(from_state, snapshot.state)
        if self._on_snapshot:
            self._on_snapshot(snapshot)

    def _set_view(self, view: ViewMode) -> bool:
        if self._view == view:
            return False
        self._view = view
        return True

    def _emit_view(self, view: ViewMode) -> None:
        if self._on_view_change:
            self._on_view_change(view)

    def _emit_notice(self, code: str, message: str) -> None:
        if self._on_notice:
            self._on_notice(code, message)
