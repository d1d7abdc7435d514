"""Application entrypoint."""

from __future__ import annotations

import logging
import sys
import threading
from typing import List, Optional

from clipboard import QtClipboardImageSource, SnapshotEntry, snapshot_qt_clipboard
from config import CredentialStore, JsonConfigStore
from errors import CREDENTIAL_SAVED
from hotkey import GlobalHotkeyAdapter
from logging_utils import configure_logging
from models import PipelineSnapshot, PipelineState, ViewMode
from pipeline_controller import PipelineController
from recognizer import GeminiRecognizer
from translator import YoudaoTranslator

try:
    from PySide6.QtCore import QObject, QSize, Qt, QThread, Signal
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import (
        QApplication,
        QHBoxLayout,
        QInputDialog,
        QLabel,
        QLineEdit,
        QMenu,
        QMessageBox,
        QPlainTextEdit,
        QPushButton,
        QStackedWidget,
        QSystemTrayIcon,
        QVBoxLayout,
        QWidget,
    )
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))  # transparent background
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_IDLE = "#888888"     # grey
ICON_RUNNING = "#3388FF"  # blue
ICON_ERROR = "#FF8800"    # orange

RUN_LABEL = "Translate clipboard image"
RUNNING_LABEL = "Working..."
PREVIEW_MAX_WIDTH = 300


class UIBridge(QObject):
    snapshot_signal = Signal(object)
    notice_signal = Signal(str, str)  # code, message
    view_signal = Signal(str)


class GuiThreadClipboard(QObject):
    """Reads the Qt clipboard on the GUI thread for callers on worker threads."""

    _requested = Signal()

    def __init__(self) -> None:
        super().__init__()
        self._call_lock = threading.Lock()
        self._entries: List[SnapshotEntry] = []
        self._error: Optional[Exception] = None
        self._requested.connect(self._read, Qt.BlockingQueuedConnection)

    def read_entries(self) -> List[SnapshotEntry]:
        if QThread.currentThread() is self.thread():
            return snapshot_qt_clipboard()
        with self._call_lock:
            self._entries, self._error = [], None
            self._requested.emit()
            if self._error is not None:
                raise self._error
            return self._entries

    def _read(self) -> None:
        try:
            self._entries = snapshot_qt_clipboard()
        except Exception as exc:
            self._error = exc


class PopupWindow(QWidget):
    def __init__(self, controller: PipelineController) -> None:
        super().__init__()
        self._controller = controller
        self.setWindowTitle("Clipboard Translate")
        self.setMinimumWidth(350)

        self._pages = QStackedWidget()
        self._pages.addWidget(self._build_main_page())
        self._pages.addWidget(self._build_settings_page())

        layout = QVBoxLayout()
        layout.addWidget(self._pages)
        self.setLayout(layout)
        self.render_snapshot(controller.snapshot)

    def _build_main_page(self) -> QWidget:
        page = QWidget()
        self.run_button = QPushButton(RUN_LABEL)
        settings_button = QPushButton("Settings")
        settings_button.clicked.connect(self._open_settings)

        buttons = QHBoxLayout()
        buttons.addWidget(self.run_button)
        buttons.addWidget(settings_button)

        hint = QLabel(
            "Take a screenshot with <b>Win+Shift+S</b>, then press the button.<br>"
            "<span style='color:#f40'>Set your Gemini API key in Settings first.</span>"
        )
        hint.setWordWrap(True)

        self._preview_title = QLabel("Image preview:")
        self._preview = QLabel()
        self._recognized_title = QLabel("Recognized text:")
        self._recognized = QPlainTextEdit()
        self._recognized.setReadOnly(True)
        self._translated_title = QLabel("Translation:")
        self._translated = QPlainTextEdit()
        self._translated.setReadOnly(True)

        layout = QVBoxLayout()
        layout.addLayout(buttons)
        layout.addWidget(hint)
        for widget in (
            self._preview_title,
            self._preview,
            self._recognized_title,
            self._recognized,
            self._translated_title,
            self._translated,
        ):
            layout.addWidget(widget)
        layout.addStretch(1)
        page.setLayout(layout)
        return page

    def _build_settings_page(self) -> QWidget:
        page = QWidget()
        note = QLabel(
            "Your Gemini API key is stored only on this computer."
        )
        note.setWordWrap(True)
        self._key_input = QLineEdit()
        self._key_input.setPlaceholderText("Enter your Gemini API key")

        save_button = QPushButton("Save")
        save_button.clicked.connect(
            lambda: self._controller.save_credential(self._key_input.text())
        )
        back_button = QPushButton("Back")
        back_button.clicked.connect(self._controller.close_settings)

        buttons = QHBoxLayout()
        buttons.addWidget(save_button)
        buttons.addWidget(back_button)

        layout = QVBoxLayout()
        layout.addWidget(QLabel("<h3>Gemini API Key</h3>"))
        layout.addWidget(note)
        layout.addWidget(self._key_input)
        layout.addLayout(buttons)
        layout.addStretch(1)
        page.setLayout(layout)
        return page

    def _open_settings(self) -> None:
        self._key_input.setText(self._controller.open_settings())

    def show_view(self, view: ViewMode) -> None:
        if view == ViewMode.SETTINGS:
            self._key_input.setText(self._controller.credential)
            self._pages.setCurrentIndex(1)
        else:
            self._pages.setCurrentIndex(0)

    def render_snapshot(self, snapshot: PipelineSnapshot) -> None:
        running = snapshot.state == PipelineState.RUNNING
        self.run_button.setEnabled(not running)
        self.run_button.setText(RUNNING_LABEL if running else RUN_LABEL)

        pixmap = QPixmap()
        has_image = snapshot.image is not None and pixmap.loadFromData(snapshot.image.data)
        if has_image and pixmap.width() > PREVIEW_MAX_WIDTH:
            pixmap = pixmap.scaledToWidth(PREVIEW_MAX_WIDTH, Qt.SmoothTransformation)
        self._preview.setPixmap(pixmap if has_image else QPixmap())
        self._preview_title.setVisible(has_image)
        self._preview.setVisible(has_image)

        self._set_panel(self._recognized_title, self._recognized, snapshot.recognized_text)
        self._set_panel(self._translated_title, self._translated, snapshot.translated_text)

    def closeEvent(self, event) -> None:  # noqa: ANN001, N802
        # Hide to tray; an in-flight run is dropped.
        self._controller.cancel_run("window closed")
        self.hide()
        event.ignore()

    @staticmethod
    def _set_panel(title: QLabel, panel: QPlainTextEdit, text: str) -> None:
        panel.setPlainText(text)
        title.setVisible(bool(text))
        panel.setVisible(bool(text))


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = JsonConfigStore()
        self.ui = UIBridge()
        self.ui.snapshot_signal.connect(self._on_snapshot_ui)
        self.ui.notice_signal.connect(self._on_notice_ui)
        self.ui.view_signal.connect(self._on_view_ui)

        self.clipboard_reader = GuiThreadClipboard()
        self.controller = PipelineController(
            credentials=CredentialStore(self.config_store),
            clipboard=QtClipboardImageSource(read_entries=self.clipboard_reader.read_entries),
            recognizer=GeminiRecognizer(
                model=self.config_store.get_recognition_model(),
                request_timeout_s=self.config_store.get_recognition_timeout_s(),
            ),
            translator=YoudaoTranslator(
                request_timeout_s=self.config_store.get_translation_timeout_s(),
            ),
            on_snapshot=self._on_snapshot,
            on_notice=self._on_notice,
            on_view_change=self._on_view_change,
        )
        self.window = PopupWindow(self.controller)
        self.window.run_button.clicked.connect(self.trigger_run)
        self.hotkey = GlobalHotkeyAdapter(hotkey_name=self.config_store.get_hotkey())

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_IDLE))
        self.tray.setToolTip("Clipboard Translate — Ready")
        self._setup_menu()
        self.tray.show()

    def _setup_menu(self) -> None:
        menu = QMenu()

        show_action = QAction("Show Window", menu)
        show_action.triggered.connect(self._show_window)
        menu.addAction(show_action)

        run_action = QAction("Translate Clipboard Image", menu)
        run_action.triggered.connect(self.trigger_run)
        menu.addAction(run_action)

        hotkey_action = QAction("Set Hotkey", menu)
        hotkey_action.triggered.connect(self._set_hotkey)
        menu.addAction(hotkey_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    def _set_hotkey(self) -> None:
        value, ok = QInputDialog.getText(
            None, "Hotkey", "Use pynput key format, e.g. Key.f8"
        )
        if not ok or not value:
            return
        self.config_store.set_hotkey(value)
        QMessageBox.information(None, "Saved", "Hotkey saved. Restart app to apply.")

    def _show_window(self) -> None:
        self.window.show()
        self.window.raise_()
        self.window.activateWindow()

    def trigger_run(self) -> None:
        # Advisory only; the controller rejects overlapping runs itself.
        if self.controller.state == PipelineState.RUNNING:
            return
        threading.Thread(target=self.controller.run, daemon=True).start()

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_snapshot(self, snapshot: PipelineSnapshot) -> None:
        self.ui.snapshot_signal.emit(snapshot)

    def _on_notice(self, code: str, message: str) -> None:
        self.ui.notice_signal.emit(code, message)

    def _on_view_change(self, view: ViewMode) -> None:
        self.ui.view_signal.emit(view.value)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_snapshot_ui(self, snapshot: PipelineSnapshot) -> None:
        self.window.render_snapshot(snapshot)
        if snapshot.state == PipelineState.RUNNING:
            self.tray.setIcon(_create_icon(ICON_RUNNING))
            self.tray.setToolTip("Clipboard Translate — Working...")
        elif snapshot.is_error:
            self.tray.setIcon(_create_icon(ICON_ERROR))
            self.tray.setToolTip("Clipboard Translate — Ready")
        else:
            self.tray.setIcon(_create_icon(ICON_IDLE))
            self.tray.setToolTip("Clipboard Translate — Ready")

    def _on_notice_ui(self, code: str, message: str) -> None:
        self._show_window()
        if code == CREDENTIAL_SAVED:
            QMessageBox.information(self.window, "Saved", message)
        else:
            QMessageBox.warning(self.window, "Clipboard Translate", message)

    def _on_view_ui(self, view: str) -> None:
        self.window.show_view(ViewMode(view))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.hotkey.start(on_trigger=self.trigger_run)
        except Exception as exc:
            logger.warning("hotkey disabled: %s", exc)
            self.tray.showMessage("Clipboard Translate", f"Hotkey disabled: {exc}")
        self._show_window()
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.controller.cancel_run("app quit")
        self.app.quit()


def main() -> int:
    configure_logging()
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
