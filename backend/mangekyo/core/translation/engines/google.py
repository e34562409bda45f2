"""Google Cloud Translation (v2 REST) engine."""

import html
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..errors import EngineError, ErrorKind
from ..models import TranslateOptions
from .base import EngineConfig, EngineOutput, TranslationEngine, error_from_status, error_from_transport

logger = logging.getLogger(__name__)

API_URL = "https://translation.googleapis.com/language/translate/v2"
GOOGLE_CONFIDENCE = 0.95
SUPPORTED_LANGUAGES = [
    "af", "ar", "bg", "bn", "ca", "cs", "da", "de", "el", "en", "es", "et", "fa",
    "fi", "fil", "fr", "he", "hi", "hr", "hu", "id", "it", "ja", "ko", "lt", "lv",
    "ms", "nl", "no", "pl", "pt", "ro", "ru", "sk", "sl", "sr", "sv", "th", "tr",
    "uk", "vi", "zh",
]


class GoogleTranslateEngine(TranslationEngine):
    """Google Translate adapter using API-key authentication."""

    def __init__(self, config: EngineConfig, client: Optional[httpx.AsyncClient] = None):
        super().__init__(config)
        self.url = config.base_url or API_URL
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(config.timeout, connect=10.0))

    @property
    def engine_id(self) -> str:
        return "google"

    @property
    def name(self) -> str:
        return "Google"

    def supported_languages(self) -> List[str]:
        return SUPPORTED_LANGUAGES

    async def close(self) -> None:
        await self._client.aclose()

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            error = response.json().get("error", {})
            code = error.get("code", response.status_code)
            message = error.get("message", response.text)
        except ValueError:
            code, message = response.status_code, response.text or response.reason_phrase

        lowered = message.lower()
        if code == 403 and ("quota" in lowered or "limit exceeded" in lowered):
            raise EngineError(message, ErrorKind.QUOTA_EXCEEDED, engine=self.engine_id, status_code=code)
        if code == 400 and "api key" in lowered:
            raise EngineError(message, ErrorKind.AUTH_INVALID, engine=self.engine_id, status_code=code)
        raise error_from_status(code, message, self.engine_id)

    async def _translate_one(self, text: str, options: TranslateOptions) -> EngineOutput:
        outputs = await self._translate_many([text], options)
        return outputs[0]

    async def _translate_many(
        self, texts: List[str], options: TranslateOptions
    ) -> List[EngineOutput]:
        payload: Dict[str, Any] = {
            "q": texts,
            "target": options.target_lang,
            "format": "text",
        }
        if options.source_lang and options.source_lang != "auto":
            payload["source"] = options.source_lang

        try:
            response = await self._client.post(
                self.url, params={"key": self.config.api_key or ""}, json=payload
            )
        except httpx.HTTPError as e:
            raise error_from_transport(e, self.engine_id)
        self._raise_for_status(response)

        translations = response.json().get("data", {}).get("translations")
        if not translations or len(translations) != len(texts):
            raise EngineError(
                "Malformed Google Translate response", ErrorKind.SERVER_ERROR,
                engine=self.engine_id,
            )
        return [
            EngineOutput(
                text=html.unescape(item.get("translatedText", "")),
                detected_language=item.get("detectedSourceLanguage") or options.source_lang,
                confidence=GOOGLE_CONFIDENCE,
                characters_billed=len(source),
            )
            for source, item in zip(texts, translations)
        ]

    async def detect_language(self, text: str) -> Dict[str, Any]:
        """Detect the language of text."""
        await self.rate_limiter.acquire(len(text))
        try:
            response = await self._client.post(
                f"{self.url}/detect", params={"key": self.config.api_key or ""}, json={"q": text}
            )
        except httpx.HTTPError as e:
            raise error_from_transport(e, self.engine_id)
        self._raise_for_status(response)
        detections = response.json().get("data", {}).get("detections", [[{}]])
        best = detections[0][0] if detections and detections[0] else {}
        return {
            "language": best.get("language", "und"),
            "confidence": float(best.get("confidence", 0.0)),
        }
