"""DeepL translation engine over the v2 REST API."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..errors import EngineError, ErrorKind
from ..models import TranslateOptions
from .base import EngineConfig, EngineOutput, TranslationEngine, error_from_status, error_from_transport

logger = logging.getLogger(__name__)

FREE_API_URL = "https://api-free.deepl.com"
PRO_API_URL = "https://api.deepl.com"

FREE_MAX_TEXT_LENGTH = 5000
PRO_MAX_TEXT_LENGTH = 50000
FREE_MONTHLY_CHARACTERS = 500_000

# Target codes DeepL requires a regional variant for
TARGET_LANGUAGE_CODES = {"en": "EN-US", "pt": "PT-BR", "zh": "ZH-HANS"}
FORMALITY_LANGUAGES = frozenset({"de", "fr", "it", "es", "nl", "pl", "pt", "ru", "ja"})
SUPPORTED_LANGUAGES = [
    "bg", "cs", "da", "de", "el", "en", "es", "et", "fi", "fr", "hu", "id", "it",
    "ja", "ko", "lt", "lv", "nb", "nl", "pl", "pt", "ro", "ru", "sk", "sl", "sv",
    "tr", "uk", "zh",
]
DEEPL_CONFIDENCE = 0.98


class DeepLEngine(TranslationEngine):
    """DeepL adapter.

    Free keys (ending in ":fx") use the free endpoint and its smaller
    per-request limit.
    """

    def __init__(self, config: EngineConfig, client: Optional[httpx.AsyncClient] = None):
        self.is_free = bool(config.api_key and config.api_key.endswith(":fx"))
        if self.is_free and config.max_text_length > FREE_MAX_TEXT_LENGTH:
            config = config.model_copy(update={"max_text_length": FREE_MAX_TEXT_LENGTH})
        if self.is_free and config.monthly_quota is None:
            config = config.model_copy(update={"monthly_quota": FREE_MONTHLY_CHARACTERS})
        super().__init__(config)
        self.base_url = config.base_url or (FREE_API_URL if self.is_free else PRO_API_URL)
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(config.timeout, connect=10.0))

    @property
    def engine_id(self) -> str:
        return "deepl"

    @property
    def name(self) -> str:
        return "DeepL"

    def supported_languages(self) -> List[str]:
        return SUPPORTED_LANGUAGES

    async def close(self) -> None:
        await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"DeepL-Auth-Key {self.config.api_key or ''}",
            "Content-Type": "application/json",
        }

    def _payload(self, texts: List[str], options: TranslateOptions) -> Dict[str, Any]:
        target = options.target_lang.split("-")[0].lower()
        payload: Dict[str, Any] = {
            "text": texts,
            "target_lang": TARGET_LANGUAGE_CODES.get(target, target.upper()),
            "show_billed_characters": True,
            "preserve_formatting": True,
        }
        if options.source_lang and options.source_lang != "auto":
            payload["source_lang"] = options.source_lang.split("-")[0].upper()
        if options.formality and target in FORMALITY_LANGUAGES:
            payload["formality"] = options.formality
        return payload

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            message = response.json().get("message", response.text)
        except ValueError:
            message = response.text or response.reason_phrase
        retry_after = response.headers.get("Retry-After")

        if response.status_code == 456:
            raise EngineError(
                "DeepL character quota exceeded", ErrorKind.QUOTA_EXCEEDED,
                engine=self.engine_id, status_code=456,
            )
        if response.status_code == 400 and "language" in message.lower():
            raise EngineError(
                message, ErrorKind.UNSUPPORTED_LANGUAGE,
                engine=self.engine_id, status_code=400,
            )
        raise error_from_status(
            response.status_code, message, self.engine_id,
            retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
        )

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.post(
                f"{self.base_url}{path}", json=payload, headers=self._headers()
            )
        except httpx.HTTPError as e:
            raise error_from_transport(e, self.engine_id)
        self._raise_for_status(response)
        return response.json()

    async def _translate_one(self, text: str, options: TranslateOptions) -> EngineOutput:
        outputs = await self._translate_many([text], options)
        return outputs[0]

    async def _translate_many(
        self, texts: List[str], options: TranslateOptions
    ) -> List[EngineOutput]:
        data = await self._post("/v2/translate", self._payload(texts, options))
        translations = data.get("translations")
        if not translations or len(translations) != len(texts):
            raise EngineError(
                "Malformed DeepL response", ErrorKind.SERVER_ERROR, engine=self.engine_id
            )

        outputs = []
        for source, item in zip(texts, translations):
            billed = item.get("billed_characters", len(source))
            outputs.append(
                EngineOutput(
                    text=item.get("text", ""),
                    detected_language=(item.get("detected_source_language") or "").lower() or None,
                    confidence=DEEPL_CONFIDENCE,
                    characters_billed=billed,
                )
            )
        return outputs

    async def get_usage(self) -> Dict[str, Any]:
        """Provider-side usage for the current billing period."""
        try:
            response = await self._client.get(
                f"{self.base_url}/v2/usage", headers=self._headers()
            )
        except httpx.HTTPError as e:
            raise error_from_transport(e, self.engine_id)
        self._raise_for_status(response)
        data = response.json()
        count = data.get("character_count", 0)
        limit = data.get("character_limit", 0)
        return {
            "character_count": count,
            "character_limit": limit,
            "percent_used": round(count / limit * 100, 2) if limit else 0.0,
        }
