"""Text translation through the Youdao web endpoint."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from config import DEFAULT_TRANSLATION_TIMEOUT_S
from errors import TRANSLATION_FAILED_TEXT
from models import DecodeResult

logger = logging.getLogger(__name__)

YOUDAO_URL = "https://fanyi.youdao.com/translate"


def decode_translation(body: Any) -> DecodeResult:
    """Pull ``translateResult[0][0].tgt`` out of a response body."""
    if not isinstance(body, dict):
        return DecodeResult.malformed()
    groups = body.get("translateResult")
    if not isinstance(groups, list) or not groups:
        return DecodeResult.malformed()
    entries = groups[0]
    if not isinstance(entries, list) or not entries or not isinstance(entries[0], dict):
        return DecodeResult.malformed()
    target = entries[0].get("tgt")
    if not isinstance(target, str):
        return DecodeResult.malformed()
    return DecodeResult.ok(target)


class YoudaoTranslator:
    def __init__(
        self,
        url: str = YOUDAO_URL,
        request_timeout_s: float = DEFAULT_TRANSLATION_TIMEOUT_S,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._url = url
        self._request_timeout_s = request_timeout_s
        self._client = client

    def translate(self, text: str) -> str:
        params = {"doctype": "json", "type": "AUTO", "i": text}
        try:
            body = self._get(params)
        except httpx.TimeoutException:
            logger.warning("translation timed out after %.1fs", self._request_timeout_s)
            return TRANSLATION_FAILED_TEXT
        except httpx.HTTPStatusError as exc:
            logger.warning("translation request rejected: HTTP %s", exc.response.status_code)
            return TRANSLATION_FAILED_TEXT
        except httpx.HTTPError as exc:
            logger.warning("translation request failed: %s", type(exc).__name__)
            return TRANSLATION_FAILED_TEXT
        except ValueError:
            logger.warning("translation response is not valid JSON")
            return TRANSLATION_FAILED_TEXT

        result = decode_translation(body)
        if not result.is_ok:
            logger.info("translation response has unexpected shape")
            return TRANSLATION_FAILED_TEXT
        return result.text

    def _get(self, params: dict) -> Any:
        if self._client is not None:
            response = self._client.get(self._url, params=params, timeout=self._request_timeout_s)
            response.raise_for_status()
            return response.json()
        with httpx.Client(timeout=self._request_timeout_s) as client:
            response = client.get(self._url, params=params)
            response.raise_for_status()
            return response.json()
