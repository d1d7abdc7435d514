"""Image text recognition through the Gemini ``generateContent`` endpoint.

The image goes out as inline base64 data together with a fixed instruction.
Only ``candidates[0].content.parts[0].text`` is read back; anything else,
including transport failures, degrades to ``NOT_RECOGNIZED_TEXT`` so the
caller never sees an exception from this stage.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Optional

import httpx

from config import DEFAULT_RECOGNITION_MODEL, DEFAULT_RECOGNITION_TIMEOUT_S
from errors import NO_CREDENTIAL_TEXT, NOT_RECOGNIZED_TEXT
from models import DecodeResult, ImagePayload

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
RECOGNITION_PROMPT = "Recognize all Chinese and English text in the image."


def _image_to_base64(image: ImagePayload) -> str:
    """Encode the payload as bare base64, without any ``data:...;base64,`` prefix."""
    return base64.b64encode(image.data).decode("ascii")


def build_request_body(image: ImagePayload, prompt: str = RECOGNITION_PROMPT) -> dict:
    return {
        "contents": [
            {
                "parts": [
                    {
                        "inline_data": {
                            "mime_type": image.mime_type,
                            "data": _image_to_base64(image),
                        }
                    },
                    {"text": prompt},
                ]
            }
        ]
    }


def decode_recognition(body: Any) -> DecodeResult:
    """Pull ``candidates[0].content.parts[0].text`` out of a response body."""
    if not isinstance(body, dict):
        return DecodeResult.malformed()
    candidates = body.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return DecodeResult.malformed()
    first = candidates[0]
    if not isinstance(first, dict):
        return DecodeResult.malformed()
    content = first.get("content")
    if not isinstance(content, dict):
        return DecodeResult.malformed()
    parts = content.get("parts")
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        return DecodeResult.malformed()
    text = parts[0].get("text")
    if not isinstance(text, str) or not text:
        return DecodeResult.malformed()
    return DecodeResult.ok(text)


class GeminiRecognizer:
    def __init__(
        self,
        model: str = DEFAULT_RECOGNITION_MODEL,
        request_timeout_s: float = DEFAULT_RECOGNITION_TIMEOUT_S,
        base_url: str = GEMINI_BASE_URL,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._model = model
        self._request_timeout_s = request_timeout_s
        self._base_url = base_url.rstrip("/")
        self._client = client

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/{self._model}:generateContent"

    def recognize(self, image: ImagePayload, credential: str) -> str:
        if not credential:
            return NO_CREDENTIAL_TEXT

        try:
            body = self._post(build_request_body(image), credential)
        except httpx.HTTPStatusError as exc:
            logger.warning("recognition request rejected: HTTP %s", exc.response.status_code)
            return NOT_RECOGNIZED_TEXT
        except httpx.HTTPError as exc:
            logger.warning("recognition request failed: %s", type(exc).__name__)
            return NOT_RECOGNIZED_TEXT
        except ValueError:
            logger.warning("recognition response is not valid JSON")
            return NOT_RECOGNIZED_TEXT

        result = decode_recognition(body)
        if not result.is_ok:
            logger.info("recognition response has no text candidate")
            return NOT_RECOGNIZED_TEXT
        return result.text

    def _post(self, payload: dict, credential: str) -> Any:
        # The key travels as a query parameter and is never logged.
        params = {"key": credential}
        if self._client is not None:
            response = self._client.post(
                self.endpoint, params=params, json=payload, timeout=self._request_timeout_s
            )
            response.raise_for_status()
            return response.json()
        with httpx.Client(timeout=self._request_timeout_s) as client:
            response = client.post(self.endpoint, params=params, json=payload)
            response.raise_for_status()
            return response.json()
