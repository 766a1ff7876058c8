from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Protocol
from urllib import error, request

from process_analyzer.config import Settings

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 120
ANTHROPIC_API_VERSION = "2023-06-01"


@dataclass(frozen=True)
class LlmJsonResult:
    status: str
    raw_response: str | None
    warnings: list[str]


@dataclass(frozen=True)
class GenerationOptions:
    temperature: float | None = None
    max_output_tokens: int = 4000


class GenerationProviderError(RuntimeError):
    def __init__(self, provider: str, message: str, warnings: list[str] | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.warnings = list(warnings or [])


def _post_json(url: str, payload: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
    body = json.dumps(payload).encode("utf-8")
    req = request.Request(url, data=body, headers=headers, method="POST")
    with request.urlopen(req, timeout=REQUEST_TIMEOUT_SECONDS) as response:
        response_body = response.read().decode("utf-8")
    return json.loads(response_body)


def _http_error_warning(provider_name: str, exc: error.HTTPError) -> str:
    response_excerpt = ""
    try:
        response_body = exc.read().decode("utf-8", errors="replace").strip()
    except Exception:  # noqa: BLE001
        response_body = ""

    if response_body:
        try:
            parsed = json.loads(response_body)
            if isinstance(parsed, dict):
                error_payload = parsed.get("error")
                if isinstance(error_payload, dict):
                    message = error_payload.get("message")
                    if isinstance(message, str) and message.strip():
                        response_excerpt = message.strip()
        except json.JSONDecodeError:
            response_excerpt = response_body[:200]

    if response_excerpt:
        return f"{provider_name} request failed with HTTP {exc.code}: {response_excerpt}"

    return f"{provider_name} request failed with HTTP {exc.code}."


def _extract_openai_text(response_payload: dict[str, Any]) -> str | None:
    output_text = response_payload.get("output_text")
    if isinstance(output_text, str) and output_text.strip():
        return output_text.strip()

    extracted: list[str] = []
    for item in response_payload.get("output") or []:
        if not isinstance(item, dict) or not isinstance(item.get("content"), list):
            continue
        for part in item["content"]:
            if not isinstance(part, dict):
                continue
            text = part.get("text") or part.get("value")
            if isinstance(text, str) and text.strip():
                extracted.append(text.strip())

    return "\n".join(extracted) if extracted else None


def _collect_gemini_text(response_payload: dict[str, Any]) -> str | None:
    candidates = response_payload.get("candidates") or []
    if not candidates:
        return None

    parts = (candidates[0].get("content") or {}).get("parts") or []
    extracted = [
        part["text"].strip()
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str) and part["text"].strip()
    ]
    return "\n".join(extracted) if extracted else None


def _collect_anthropic_text(response_payload: dict[str, Any]) -> str | None:
    extracted = [
        block["text"]
        for block in response_payload.get("content") or []
        if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
    ]
    text = "".join(extracted).strip()
    return text or None


def _request_text(
    provider_name: str,
    url: str,
    payload: dict[str, Any],
    headers: dict[str, str],
    extract: Callable[[dict[str, Any]], str | None],
) -> LlmJsonResult:
    try:
        response_payload = _post_json(url, payload, headers)
    except error.HTTPError as exc:
        return LlmJsonResult(status="error", raw_response=None, warnings=[_http_error_warning(provider_name, exc)])
    except Exception:  # noqa: BLE001
        logger.warning("%s request failed before receiving a response", provider_name, exc_info=True)
        return LlmJsonResult(
            status="error",
            raw_response=None,
            warnings=[f"{provider_name} request failed before receiving a response."],
        )

    extracted_text = extract(response_payload)
    if extracted_text:
        return LlmJsonResult(status="success", raw_response=extracted_text, warnings=[])

    return LlmJsonResult(
        status="error",
        raw_response=json.dumps(response_payload),
        warnings=[f"{provider_name} response did not contain extractable text content."],
    )


def generate_text_with_openai(
    api_key: str,
    model: str,
    prompt: str,
    system_instructions: str | None = None,
    temperature: float | None = None,
    max_output_tokens: int = 4000,
) -> LlmJsonResult:
    payload: dict[str, Any] = {
        "model": model,
        "input": prompt,
        "max_output_tokens": max_output_tokens,
    }
    if system_instructions:
        payload["instructions"] = system_instructions
    if temperature is not None:
        payload["temperature"] = temperature
    return _request_text(
        "OpenAI",
        "https://api.openai.com/v1/responses",
        payload,
        {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        },
        _extract_openai_text,
    )


def generate_text_with_anthropic(
    api_key: str,
    model: str,
    prompt: str,
    system_instructions: str | None = None,
    temperature: float | None = None,
    max_output_tokens: int = 4000,
) -> LlmJsonResult:
    payload: dict[str, Any] = {
        "model": model,
        "max_tokens": max_output_tokens,
        "messages": [{"role": "user", "content": prompt}],
    }
    if system_instructions:
        payload["system"] = system_instructions
    if temperature is not None:
        payload["temperature"] = temperature
    return _request_text(
        "Anthropic",
        "https://api.anthropic.com/v1/messages",
        payload,
        {
            "Content-Type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
        },
        _collect_anthropic_text,
    )


def generate_text_with_gemini(
    api_key: str,
    model: str,
    prompt: str,
    system_instructions: str | None = None,
    temperature: float | None = None,
    max_output_tokens: int = 4000,
) -> LlmJsonResult:
    endpoint = (
        "https://generativelanguage.googleapis.com/v1beta/models/"
        f"{model}:generateContent?key={api_key}"
    )
    generation_config: dict[str, Any] = {"maxOutputTokens": max_output_tokens}
    if temperature is not None:
        generation_config["temperature"] = temperature
    payload: dict[str, Any] = {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": generation_config,
    }
    if system_instructions:
        payload["systemInstruction"] = {"parts": [{"text": system_instructions}]}
    return _request_text("Gemini", endpoint, payload, {"Content-Type": "application/json"}, _collect_gemini_text)


PROVIDER_FUNCTIONS: dict[str, Callable[..., LlmJsonResult]] = {
    "anthropic": generate_text_with_anthropic,
    "openai": generate_text_with_openai,
    "gemini": generate_text_with_gemini,
}


class GenerationClient(Protocol):
    name: str

    def generate(
        self,
        prompt: str,
        system_instructions: str | None = None,
        options: GenerationOptions | None = None,
    ) -> str: ...


class ProviderGenerationClient:
    """Single provider; raises ``GenerationProviderError`` on any failed call."""

    def __init__(self, name: str, api_key: str | None, model: str) -> None:
        if name not in PROVIDER_FUNCTIONS:
            raise ValueError(f"Unsupported generation provider: {name}")
        self.name = name
        self.api_key = api_key
        self.model = model

    def generate(
        self,
        prompt: str,
        system_instructions: str | None = None,
        options: GenerationOptions | None = None,
    ) -> str:
        if not self.api_key:
            raise GenerationProviderError(self.name, f"{self.name} API key is not configured.")

        options = options or GenerationOptions()
        result = PROVIDER_FUNCTIONS[self.name](
            api_key=self.api_key,
            model=self.model,
            prompt=prompt,
            system_instructions=system_instructions,
            temperature=options.temperature,
            max_output_tokens=options.max_output_tokens,
        )
        if result.status != "success" or not result.raw_response:
            message = result.warnings[0] if result.warnings else f"{self.name} generation failed."
            raise GenerationProviderError(self.name, message, result.warnings)
        return result.raw_response


class FallbackGenerationClient:
    """Try ``primary``; on failure swap once to ``fallback``.

    When both fail the primary's error is raised. ``name`` reports the
    provider that served the most recent successful call.
    """

    def __init__(self, primary: GenerationClient, fallback: GenerationClient | None = None) -> None:
        self.primary = primary
        self.fallback = fallback if fallback is not None and fallback.name != primary.name else None
        self.name = primary.name

    def generate(
        self,
        prompt: str,
        system_instructions: str | None = None,
        options: GenerationOptions | None = None,
    ) -> str:
        try:
            text = self.primary.generate(prompt, system_instructions, options)
        except GenerationProviderError as primary_error:
            if self.fallback is None:
                raise
            logger.warning("%s generation failed, falling back to %s: %s", self.primary.name, self.fallback.name, primary_error)
            try:
                text = self.fallback.generate(prompt, system_instructions, options)
            except GenerationProviderError as fallback_error:
                logger.error("Fallback provider %s also failed: %s", self.fallback.name, fallback_error)
                raise primary_error from fallback_error
            self.name = self.fallback.name
            return text

        self.name = self.primary.name
        return text


def build_generation_client(settings: Settings) -> FallbackGenerationClient:
    primary_settings = settings.provider(settings.primary_provider)
    if primary_settings is None:
        raise ValueError(f"Unsupported generation provider: {settings.primary_provider}")
    primary = ProviderGenerationClient(primary_settings.name, primary_settings.api_key, primary_settings.model)

    fallback = None
    fallback_settings = settings.provider(settings.fallback_provider)
    if fallback_settings is not None:
        fallback = ProviderGenerationClient(fallback_settings.name, fallback_settings.api_key, fallback_settings.model)

    return FallbackGenerationClient(primary, fallback)
