"""Global hotkey adapter based on pynput."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from config import DEFAULT_HOTKEY

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

logger = logging.getLogger(__name__)


class GlobalHotkeyAdapter:
    """Fires ``on_trigger`` once per press of the configured key.

    Key repeat while the key is held down does not fire again; the next
    trigger needs a release first.
    """

    def __init__(self, hotkey_name: str = DEFAULT_HOTKEY) -> None:
        self._hotkey_name = hotkey_name
        self._listener: Optional[object] = None
        self._pressed = False
        self._lock = threading.Lock()

    def start(self, on_trigger: Callable[[], None]) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")

        def _on_press(key: object) -> None:
            if str(key) != self._hotkey_name:
                return
            with self._lock:
                if self._pressed:
                    return
                self._pressed = True
            logger.debug("hotkey %s pressed", self._hotkey_name)
            on_trigger()

        def _on_release(key: object) -> None:
            if str(key) != self._hotkey_name:
                return
            with self._lock:
                self._pressed = False

        self._listener = keyboard.Listener(on_press=_on_press, on_release=_on_release)
        self._listener.start()
        logger.info("listening for hotkey %s", self._hotkey_name)

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None
