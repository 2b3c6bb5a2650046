import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import jsonschema
import tiktoken
from openai import (
    APIConnectionError,
    APIStatusError,
    RateLimitError,
    APITimeoutError,
    OpenAIError
)
from openai import AsyncOpenAI
from openai.types.chat import (
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam
)

from src.logging_config import LOGGER_NAME
from src.string_analyzer import TranslationRequest
from src.translation_validator import check_key_coverage

logger = logging.getLogger(LOGGER_NAME)

# How many missing keys are spelled out in the diagnostics log line.
MISSING_KEYS_PREVIEW_LIMIT = 10

# Used to validate the parsed response; the per-language shape is enforced by the
# strict schema sent with the request.
BATCH_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "translations": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "key": {"type": "string"},
                    "translations": {
                        "type": "object",
                        "additionalProperties": {"type": "string"}
                    }
                },
                "required": ["key", "translations"]
            }
        }
    },
    "required": ["translations"]
}


class TranslationServiceError(Exception):
    """Raised when the provider call fails or returns an unusable response."""


def count_tokens(text: str, model_name: str = 'gpt-4o-mini') -> int:
    """Count the number of tokens in ``text`` for ``model_name``.

    ``tiktoken.encoding_for_model`` may try to download model data, which is not
    possible everywhere (e.g., in CI). On failure it falls back to ``gpt2``, which
    ships with ``tiktoken``, and finally to a whitespace split.
    """

    try:
        encoding = tiktoken.encoding_for_model(model_name)
    except Exception:
        try:
            encoding = tiktoken.get_encoding("gpt2")
        except Exception:
            return len(text.split())

    try:
        return len(encoding.encode(text))
    except Exception:
        return len(text.split())


def collect_target_languages(requests: Sequence[TranslationRequest]) -> List[str]:
    """All distinct target languages across ``requests``, in first-seen order."""
    return list(dict.fromkeys(lang for request in requests for lang in request.target_languages))


def build_translation_schema(target_languages: Sequence[str]) -> Dict[str, Any]:
    """Strict structured-output schema requiring a value for every target language."""
    return {
        "type": "object",
        "properties": {
            "translations": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "key": {
                            "type": "string",
                            "description": "The original key/identifier for the string"
                        },
                        "translations": {
                            "type": "object",
                            "properties": {
                                lang: {
                                    "type": "string",
                                    "description": f"Translation in {lang}"
                                }
                                for lang in target_languages
                            },
                            "required": list(target_languages),
                            "additionalProperties": False
                        }
                    },
                    "required": ["key", "translations"],
                    "additionalProperties": False
                }
            }
        },
        "required": ["translations"],
        "additionalProperties": False
    }


def build_system_prompt(source_language: str, target_languages: Sequence[str]) -> str:
    languages_text = ', '.join(target_languages)
    return f"""You are a professional translator. Translate the following strings from {source_language} to the specified target languages: {languages_text}.

For each string, provide accurate, natural translations that preserve the meaning and context. If a string contains placeholders (like %@, %d, {{0}}, etc.), keep them exactly as they are in the translation.

When a Context is provided, use it to inform your translation choices for better accuracy and appropriateness.

Return the translations in the exact JSON structure specified."""


def build_user_prompt(requests: Sequence[TranslationRequest]) -> str:
    entries = []
    for request in requests:
        entry = f'Key: "{request.key}"\nText: "{request.text}"'
        if request.comment:
            entry += f'\nContext: "{request.comment}"'
        entries.append(entry)
    return "Translate these strings:\n\n" + "\n\n".join(entries)


def _extract_rate_limit_headers(api_exc: Exception) -> Optional[List[str]]:
    """
    Collect ``x-ratelimit-*`` and ``retry-after`` headers from an API error.

    Returns None when the error carries no response headers at all.
    """
    response = getattr(api_exc, "response", None)
    headers = getattr(response, "headers", None) or getattr(api_exc, "headers", None)
    if not headers:
        return None
    rate_headers = []
    for name, value in headers.items():
        lowered = name.lower()
        if lowered.startswith('x-ratelimit') or lowered == 'retry-after':
            rate_headers.append(f"{name}={value}")
    return rate_headers


def _log_api_error(api_exc: OpenAIError) -> None:
    status = getattr(api_exc, "status_code", None)
    error_type = getattr(api_exc, "type", None)
    message = getattr(api_exc, "message", None) or str(api_exc)
    status_text = f" ({status})" if status else ""
    type_text = f" {error_type}" if error_type else ""
    logger.error(f"Error in batch translation{status_text}{type_text}: {api_exc.__class__.__name__} - {message}")

    rate_headers = _extract_rate_limit_headers(api_exc)
    if rate_headers is None:
        logger.error("Response headers unavailable")
    elif rate_headers:
        logger.error(f"Rate-limit headers: {', '.join(rate_headers)}")
    else:
        logger.error("Rate-limit headers: unavailable")


class OpenAITranslationService:
    """
    Sends a whole translation batch to OpenAI in a single structured-output request.

    The client is passed in so callers decide how it is configured and tests can
    substitute a double.
    """

    def __init__(self, client: Optional[AsyncOpenAI], model: str):
        if client is None:
            raise TranslationServiceError(
                "OpenAI client is not initialized. Please ensure OPENAI_API_KEY is set and dry_run is disabled."
            )
        self.client = client
        self.model = model

    async def get_batch_translations(
            self,
            requests: Sequence[TranslationRequest],
            source_language: str = "en",
            base_system_prompt: str = ""
    ) -> List[Dict[str, Any]]:
        """
        Translate every request to its target languages in one API call.

        Args:
            requests: The analyzer's translation requests.
            source_language: Language code of the texts being sent.
            base_system_prompt: Extra instructions placed before the translator prompt.

        Returns:
            List[Dict[str, Any]]: Response items ``{"key": ..., "translations": {...}}``
            in the order the provider returned them. Partial coverage is allowed.

        Raises:
            TranslationServiceError: On API failures, empty content, or a response
            that is not valid JSON in the expected shape.
        """
        if not requests:
            return []

        all_target_languages = collect_target_languages(requests)
        logger.info(
            f"Requesting batch translation for {len(requests)} strings from {source_language} "
            f"to languages: {', '.join(all_target_languages)} (temperature=0)"
        )

        system_prompt = build_system_prompt(source_language, all_target_languages)
        user_prompt = build_user_prompt(requests)

        messages = []
        if base_system_prompt.strip():
            messages.append(ChatCompletionSystemMessageParam(role="system", content=base_system_prompt.strip()))
        messages.append(ChatCompletionSystemMessageParam(role="system", content=system_prompt))
        messages.append(ChatCompletionUserMessageParam(role="user", content=user_prompt))

        estimated_tokens = sum(count_tokens(message["content"], self.model) for message in messages)
        logger.debug(f"Estimated prompt size: {estimated_tokens} tokens.")

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "batch_translation",
                        "schema": build_translation_schema(all_target_languages),
                        "strict": True
                    }
                }
            )
        except (RateLimitError, APITimeoutError, APIConnectionError, APIStatusError, OpenAIError) as api_exc:
            _log_api_error(api_exc)
            raise TranslationServiceError(f"Batch translation failed: {api_exc}") from api_exc

        choice = response.choices[0] if response.choices else None
        response_text = choice.message.content if choice and choice.message else None
        if not response_text:
            logger.error("Error in batch translation: No content in OpenAI response")
            raise TranslationServiceError("No content in OpenAI response")

        try:
            batch_response = json.loads(response_text)
            jsonschema.validate(instance=batch_response, schema=BATCH_RESPONSE_SCHEMA)
        except json.JSONDecodeError as json_exc:
            logger.error(f"Batch translation failed: AI did not return valid JSON. Error: {json_exc}")
            logger.debug(f"Invalid AI response (JSON Decode Error):\n---\n{response_text}\n---")
            raise TranslationServiceError(f"Invalid JSON in OpenAI response: {json_exc}") from json_exc
        except jsonschema.ValidationError as schema_exc:
            logger.error(f"Batch translation failed: AI response did not match the required JSON schema. Error: {schema_exc.message}")
            logger.debug(f"Invalid AI response (Schema Error):\n---\n{response_text}\n---")
            raise TranslationServiceError(f"Unexpected OpenAI response shape: {schema_exc.message}") from schema_exc

        finish_reason = getattr(choice, "finish_reason", None) or "unknown"
        usage = getattr(response, "usage", None)
        if usage:
            logger.info(
                f"OpenAI usage: prompt={usage.prompt_tokens}, completion={usage.completion_tokens}, "
                f"total={usage.total_tokens}; finish_reason={finish_reason}"
            )
        else:
            logger.info(f"OpenAI usage unavailable; finish_reason={finish_reason}")

        translations = batch_response["translations"]
        requested_keys = [request.key for request in requests]
        received_keys = [item["key"] for item in translations]
        missing_keys, _ = check_key_coverage(requested_keys, received_keys)
        logger.info(f"Requested: {len(requested_keys)}, Received: {len(set(received_keys))}")
        if missing_keys:
            preview = missing_keys[:MISSING_KEYS_PREVIEW_LIMIT]
            logger.info(f"Missing keys (first {len(preview)}): [{', '.join(preview)}]")

        logger.info(f"Received batch translations for {len(translations)} strings")
        return translations
