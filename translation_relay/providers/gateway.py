"""
Translation provider gateway.

Uniform access to the metered primary provider (DeepL) and the unmetered
secondary provider (Google translate web app). Every call returns a
TranslationResult; nothing raises past this boundary and nothing retries.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from ..storage.models import ErrorKind, TranslationResult

log = logging.getLogger(__name__)

DEFAULT_PRIMARY_URL = "https://api-free.deepl.com/v2/translate"
DEFAULT_SECONDARY_URL = (
    "https://script.google.com/macros/s/"
    "AKfycbxFwiLBgah_9OUM3SJQmEkuQcLSjsmQUJ6NqVPVXX6M8BZ10LRTuBvpFcr0jTaulfbLLw/exec"
)
DEFAULT_TIMEOUT_SECONDS = 10.0


def usage_url_for(primary_url: str) -> str:
    """DeepL usage endpoint living next to the translate endpoint."""
    return primary_url.replace("/translate", "/usage")


def _preview(text: str, length: int = 50) -> str:
    return text if len(text) <= length else f"{text[:length]}..."


class ProviderGateway:
    """Calls both translation backends over a shared aiohttp session."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        primary_api_key: Optional[str] = None,
        primary_url: str = DEFAULT_PRIMARY_URL,
        secondary_url: str = DEFAULT_SECONDARY_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    ):
        """Initialize the gateway.

        Args:
            session: Open aiohttp session, owned by the caller
            primary_api_key: DeepL API key; primary calls are skipped without it
            primary_url: DeepL translate endpoint
            secondary_url: Secondary provider endpoint
            timeout_seconds: Upper bound for each provider call
        """
        self.session = session
        self.primary_api_key = primary_api_key or None
        self.primary_url = primary_url
        self.secondary_url = secondary_url
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    @property
    def primary_configured(self) -> bool:
        return self.primary_api_key is not None

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"DeepL-Auth-Key {self.primary_api_key}"}

    async def translate_primary(self, text: str, target_language: str) -> TranslationResult:
        """Translate with DeepL; the result carries the detected source language."""
        if not self.primary_configured:
            return TranslationResult.failure(ErrorKind.UNCONFIGURED, "DeepL API key is not configured")

        log.debug("DeepL request: target=%s text=%r", target_language, _preview(text))
        form = {"text": text, "target_lang": target_language.upper()}
        try:
            async with self.session.post(
                self.primary_url,
                data=form,
                headers=self._auth_headers(),
                timeout=self.timeout
            ) as response:
                if response.status >= 300:
                    body = await response.text()
                    log.warning("DeepL error: status=%s body=%r", response.status, body)
                    return TranslationResult.failure(
                        ErrorKind.UPSTREAM_ERROR, f"HTTP {response.status}: {body}"
                    )
                data = await response.json(content_type=None)
            translation = data["translations"][0]
            return TranslationResult.ok(
                text=translation["text"],
                detected_source_language=translation.get("detected_source_language")
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning("DeepL transport failure: %r", e)
            return TranslationResult.failure(ErrorKind.TRANSPORT_ERROR, str(e) or type(e).__name__)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            log.warning("DeepL returned an unreadable response: %r", e)
            return TranslationResult.failure(ErrorKind.TRANSPORT_ERROR, f"Malformed response: {e}")

    async def translate_secondary(self, text: str, target_language: str) -> TranslationResult:
        """Translate with the unmetered secondary provider."""
        log.debug("Secondary request: target=%s text=%r", target_language, _preview(text))
        params = {"text": text, "target": target_language.lower()}
        try:
            async with self.session.get(
                self.secondary_url,
                params=params,
                timeout=self.timeout
            ) as response:
                if response.status >= 300:
                    body = await response.text()
                    log.warning("Secondary provider error: status=%s body=%r", response.status, body)
                    return TranslationResult.failure(
                        ErrorKind.UPSTREAM_ERROR, f"HTTP {response.status}: {body}"
                    )
                raw = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning("Secondary provider transport failure: %r", e)
            return TranslationResult.failure(ErrorKind.TRANSPORT_ERROR, str(e) or type(e).__name__)

        try:
            data: Any = json.loads(raw)
        except ValueError as e:
            return TranslationResult.failure(ErrorKind.TRANSPORT_ERROR, f"Malformed response: {e}")

        if isinstance(data, dict) and isinstance(data.get("text"), str):
            return TranslationResult.ok(text=data["text"])
        if isinstance(data, str):
            return TranslationResult.ok(text=data)
        log.warning("Secondary provider returned an unexpected shape: %r", data)
        return TranslationResult.failure(ErrorKind.UPSTREAM_ERROR, "Unexpected response format")

    async def fetch_primary_usage(self) -> Optional[Dict[str, int]]:
        """Ask DeepL for its own character count.

        Returns:
            {"character_count": ..., "character_limit": ...} or None when
            the key is missing or the request failed
        """
        if not self.primary_configured:
            return None
        try:
            async with self.session.get(
                usage_url_for(self.primary_url),
                headers=self._auth_headers(),
                timeout=self.timeout
            ) as response:
                if response.status >= 300:
                    log.warning("DeepL usage request failed: status=%s", response.status)
                    return None
                data = await response.json(content_type=None)
            return {
                "character_count": int(data["character_count"]),
                "character_limit": int(data["character_limit"])
            }
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, KeyError, TypeError) as e:
            log.warning("DeepL usage request failed: %r", e)
            return None
