"""LLM translation engine using LiteLLM.

Works with any chat model LiteLLM can reach (OpenAI by default). The system
prompt carries the manga-specific instructions; narrative context from the
context tracker is added to the user message.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import litellm
from litellm import acompletion

from ..errors import EngineError, ErrorKind
from ..models import TranslateOptions
from .base import EngineConfig, EngineOutput, TranslationEngine

logger = logging.getLogger(__name__)

litellm.drop_params = True

# USD per 1K tokens (input, output), used when LiteLLM has no price for the model
PRICING_PER_1K = {
    "gpt-4o": (0.005, 0.015),
    "gpt-4o-mini": (0.00015, 0.0006),
    "gpt-4-turbo": (0.01, 0.03),
}

LANGUAGE_NAMES = {
    "ja": "Japanese", "en": "English", "ko": "Korean", "zh": "Chinese",
    "es": "Spanish", "fr": "French", "de": "German", "it": "Italian",
    "pt": "Portuguese", "ru": "Russian", "id": "Indonesian", "vi": "Vietnamese",
    "th": "Thai", "pl": "Polish", "tr": "Turkish", "ar": "Arabic",
}

MANGA_TRANSLATOR_PROMPT = """You are an expert manga translator with deep understanding of Japanese culture, anime/manga tropes, and natural dialogue. Translate manga text while:

1. PRESERVING CHARACTER VOICE: keep personality, speech patterns and emotional tone
2. KEEPING PLACEHOLDERS: tokens like __HON_0__ or __SFX_0__ must appear unchanged in your output, right after the word they follow
3. ADAPTING IDIOMS: use natural equivalents, not literal translations
4. MAINTAINING CONTEXT: respect story context, character relationships and scene mood
5. FORMATTING: use *asterisks* for emphasis

Output format: provide ONLY the translated text, without explanations, notes or the original text."""

PROVIDER_PREFIXES = {
    "openai": "",
    "anthropic": "anthropic/",
    "gemini": "gemini/",
    "deepseek": "deepseek/",
    "ollama": "ollama/",
    "openrouter": "openrouter/",
}

_QUOTED_RE = re.compile(r'^\s*["「『](.*)["」』]\s*$', re.DOTALL)


def estimate_tokens(text: str) -> int:
    """Rough token estimate for rate limiting (two characters per token)."""
    return max(1, len(text) // 2)


class LLMEngine(TranslationEngine):
    """Chat-model translation adapter."""

    def __init__(self, config: EngineConfig, provider: str = "openai"):
        super().__init__(config)
        self.provider = provider
        self.model = config.model or "gpt-4o-mini"
        prefix = PROVIDER_PREFIXES.get(provider, f"{provider}/")
        self._litellm_model = self.model if self.model.startswith(prefix) else f"{prefix}{self.model}"
        logger.info(
            f"[LLM Engine] Initialized: provider={provider}, model={self.model}, "
            f"litellm_model={self._litellm_model}, base_url={config.base_url}"
        )

    @property
    def engine_id(self) -> str:
        return "openai"

    @property
    def name(self) -> str:
        return f"LLM({self.provider}/{self.model})"

    def supported_languages(self) -> List[str]:
        return list(LANGUAGE_NAMES)

    def rate_units(self, text: str) -> int:
        return estimate_tokens(text)

    def build_messages(self, text: str, options: TranslateOptions) -> List[Dict[str, str]]:
        """Build chat messages with narrative context for one text."""
        source = LANGUAGE_NAMES.get(options.source_lang, options.source_lang)
        target = LANGUAGE_NAMES.get(options.target_lang, options.target_lang)

        context_lines: List[str] = []
        if options.genre:
            context_lines.append(f"Genre: {options.genre}")
        if options.scene:
            context_lines.append(f"Scene: {options.scene}")
        if options.tone:
            context_lines.append(f"Tone: {options.tone}")
        if options.character:
            voice = f" ({options.character_voice})" if options.character_voice else ""
            context_lines.append(f"Speaker: {options.character}{voice}")
        if options.glossary:
            terms = "; ".join(f"{k} = {v}" for k, v in options.glossary.items())
            context_lines.append(f"Glossary (use these renderings): {terms}")
        if options.recent_lines:
            context_lines.append("Previous lines:\n" + "\n".join(f"- {line}" for line in options.recent_lines))

        prompt = f'Translate from {source} to {target}:\n\n"{text}"'
        if context_lines:
            prompt = "Context:\n" + "\n".join(context_lines) + "\n\n" + prompt

        return [
            {"role": "system", "content": MANGA_TRANSLATOR_PROMPT},
            {"role": "user", "content": prompt},
        ]

    def _kwargs(self, messages: List[Dict[str, str]], max_tokens: int) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self._litellm_model,
            "messages": messages,
            "temperature": 0.3,
            "max_tokens": max_tokens,
            "api_key": self.config.api_key,
            "timeout": self.config.timeout,
        }
        if self.config.base_url:
            kwargs["api_base"] = self.config.base_url
        return kwargs

    def _cost(self, tokens_in: int, tokens_out: int) -> float:
        cost_info = litellm.model_cost.get(self.model, {})
        if cost_info.get("input_cost_per_token") is not None:
            return (
                tokens_in * cost_info.get("input_cost_per_token", 0.0)
                + tokens_out * cost_info.get("output_cost_per_token", 0.0)
            )
        price_in, price_out = PRICING_PER_1K.get(self.model, PRICING_PER_1K["gpt-4o-mini"])
        return tokens_in / 1000 * price_in + tokens_out / 1000 * price_out

    async def _translate_one(self, text: str, options: TranslateOptions) -> EngineOutput:
        messages = self.build_messages(text, options)
        max_tokens = max(256, estimate_tokens(text) * 4)

        try:
            response = await acompletion(**self._kwargs(messages, max_tokens))
        except Exception as e:
            raise map_litellm_error(e, self.engine_id)

        if not getattr(response, "choices", None):
            raise EngineError(
                "Completion returned no choices", ErrorKind.SERVER_ERROR, engine=self.engine_id
            )
        choice = response.choices[0]
        content = (choice.message.content or "").strip()
        quoted = _QUOTED_RE.match(content)
        if quoted and not _QUOTED_RE.match(text):
            content = quoted.group(1).strip()

        usage = getattr(response, "usage", None)
        tokens_in = usage.prompt_tokens if usage else estimate_tokens(messages[-1]["content"])
        tokens_out = usage.completion_tokens if usage else estimate_tokens(content)

        return EngineOutput(
            text=content,
            detected_language=options.source_lang,
            confidence=0.7 if getattr(choice, "finish_reason", None) == "length" else 0.9,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            cost_usd=self._cost(tokens_in, tokens_out),
        )


def map_litellm_error(exc: Exception, engine: str) -> EngineError:
    """Classify a LiteLLM exception into a typed engine error."""
    message = str(exc)
    lowered = message.lower()

    if isinstance(exc, litellm.ContextWindowExceededError):
        kind = ErrorKind.TEXT_TOO_LONG
    elif isinstance(exc, litellm.ContentPolicyViolationError):
        kind = ErrorKind.CONTENT_FILTERED
    elif isinstance(exc, litellm.RateLimitError):
        kind = (
            ErrorKind.QUOTA_EXCEEDED
            if "quota" in lowered or "insufficient_quota" in lowered
            else ErrorKind.RATE_LIMITED
        )
    elif isinstance(exc, (litellm.AuthenticationError, litellm.PermissionDeniedError)):
        kind = ErrorKind.AUTH_INVALID
    elif isinstance(exc, litellm.Timeout):
        kind = ErrorKind.TIMEOUT
    elif isinstance(
        exc,
        (litellm.ServiceUnavailableError, litellm.InternalServerError, litellm.APIConnectionError),
    ):
        kind = ErrorKind.SERVER_ERROR
    elif isinstance(exc, litellm.BadRequestError):
        kind = ErrorKind.UNSUPPORTED_LANGUAGE if "language" in lowered else ErrorKind.INVALID_REQUEST
    else:
        logger.error(f"[LLM Engine] Unclassified error: {exc}")
        kind = ErrorKind.SERVER_ERROR

    return EngineError(message, kind, engine=engine, status_code=getattr(exc, "status_code", None))
