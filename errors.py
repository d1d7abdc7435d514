"""Shared error and notice codes, user-facing messages and result sentinels."""

from __future__ import annotations

MISSING_CREDENTIAL = "MISSING_CREDENTIAL"
NO_CLIPBOARD_IMAGE = "NO_CLIPBOARD_IMAGE"
CLIPBOARD_ACCESS_DENIED = "CLIPBOARD_ACCESS_DENIED"
CREDENTIAL_SAVED = "CREDENTIAL_SAVED"

ERROR_MESSAGES = {
    MISSING_CREDENTIAL: "Please enter your Gemini API key in Settings first.",
    NO_CLIPBOARD_IMAGE: (
        "No image found on the clipboard. Take a screenshot "
        "(e.g. Win+Shift+S) and try again."
    ),
    CLIPBOARD_ACCESS_DENIED: (
        "Could not read the clipboard. Check that clipboard access is "
        "allowed on this system."
    ),
}

NOTICE_MESSAGES = {
    CREDENTIAL_SAVED: "Gemini API key saved.",
}

# Sentinels shown inline in place of a stage result.
NO_CREDENTIAL_TEXT = "Gemini API key is not set"
NOT_RECOGNIZED_TEXT = "Could not recognize any text in the image"
TRANSLATION_FAILED_TEXT = "Translation failed"


class ClipboardAccessError(RuntimeError):
    """The system clipboard could not be read at all."""
