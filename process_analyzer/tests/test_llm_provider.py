import io
import unittest
from unittest.mock import patch
from urllib import error

from process_analyzer import llm_provider
from process_analyzer.config import ProviderSettings, Settings
from process_analyzer.llm_provider import (
    FallbackGenerationClient,
    GenerationOptions,
    GenerationProviderError,
    ProviderGenerationClient,
    build_generation_client,
)


class StubClient:
    def __init__(self, name, reply=None, error_message=None):
        self.name = name
        self.reply = reply
        self.error_message = error_message
        self.calls = []

    def generate(self, prompt, system_instructions=None, options=None):
        self.calls.append((prompt, system_instructions, options))
        if self.error_message:
            raise GenerationProviderError(self.name, self.error_message)
        return self.reply


class TestResponseParsing(unittest.TestCase):
    def test_extracts_top_level_output_text(self):
        self.assertEqual(llm_provider._extract_openai_text({"output_text": " DONE "}), "DONE")

    def test_extracts_text_from_output_content(self):
        payload = {"output": [{"content": [{"type": "output_text", "text": "first"}, {"value": "second"}]}]}

        self.assertEqual(llm_provider._extract_openai_text(payload), "first\nsecond")

    def test_anthropic_joins_text_blocks(self):
        payload = {"content": [{"type": "text", "text": "graph TD\n"}, {"type": "tool_use"}, {"type": "text", "text": "A --> B"}]}

        with patch("process_analyzer.llm_provider._post_json", return_value=payload) as mock_post:
            result = llm_provider.generate_text_with_anthropic(
                api_key="test-key",
                model="claude-test",
                prompt="Draw it",
                system_instructions="Be brief",
                temperature=0.3,
                max_output_tokens=300,
            )

        self.assertEqual(result.status, "success")
        self.assertEqual(result.raw_response, "graph TD\nA --> B")
        url, sent, headers = mock_post.call_args.args
        self.assertEqual(url, "https://api.anthropic.com/v1/messages")
        self.assertEqual(sent["system"], "Be brief")
        self.assertEqual(sent["max_tokens"], 300)
        self.assertEqual(headers["x-api-key"], "test-key")

    def test_gemini_collects_all_parts(self):
        payload = {"candidates": [{"content": {"parts": [{"text": "Part 1"}, {"text": "Part 2"}]}}]}

        with patch("process_analyzer.llm_provider._post_json", return_value=payload):
            result = llm_provider.generate_text_with_gemini(api_key="k", model="gemini-test", prompt="hi")

        self.assertEqual(result.raw_response, "Part 1\nPart 2")

    def test_missing_text_is_an_error(self):
        with patch("process_analyzer.llm_provider._post_json", return_value={"output": []}):
            result = llm_provider.generate_text_with_openai(api_key="k", model="gpt-test", prompt="hi")

        self.assertEqual(result.status, "error")
        self.assertIn("extractable text content", result.warnings[0])

    def test_http_error_message_is_surfaced(self):
        http_error = error.HTTPError(
            "https://api.openai.com/v1/responses",
            401,
            "Unauthorized",
            hdrs=None,
            fp=io.BytesIO(b'{"error": {"message": "Invalid API key"}}'),
        )

        with patch("process_analyzer.llm_provider._post_json", side_effect=http_error):
            result = llm_provider.generate_text_with_openai(api_key="bad", model="gpt-test", prompt="hi")

        self.assertEqual(result.status, "error")
        self.assertEqual(result.warnings, ["OpenAI request failed with HTTP 401: Invalid API key"])

    def test_network_failure_is_an_error(self):
        with patch("process_analyzer.llm_provider._post_json", side_effect=TimeoutError("slow")):
            result = llm_provider.generate_text_with_anthropic(api_key="k", model="m", prompt="hi")

        self.assertEqual(result.warnings, ["Anthropic request failed before receiving a response."])


class TestProviderGenerationClient(unittest.TestCase):
    def test_unknown_provider_is_rejected(self):
        with self.assertRaises(ValueError):
            ProviderGenerationClient("mystery", "k", "m")

    def test_missing_key_raises_provider_error(self):
        client = ProviderGenerationClient("openai", None, "gpt-test")

        with self.assertRaises(GenerationProviderError) as ctx:
            client.generate("hi")

        self.assertEqual(ctx.exception.provider, "openai")

    def test_failed_call_raises_with_warnings(self):
        client = ProviderGenerationClient("openai", "k", "gpt-test")

        with patch("process_analyzer.llm_provider._post_json", return_value={"output": []}):
            with self.assertRaises(GenerationProviderError) as ctx:
                client.generate("hi")

        self.assertIn("extractable text content", str(ctx.exception))
        self.assertEqual(len(ctx.exception.warnings), 1)

    def test_options_are_forwarded(self):
        client = ProviderGenerationClient("openai", "k", "gpt-test")

        with patch("process_analyzer.llm_provider._post_json", return_value={"output_text": "ok"}) as mock_post:
            text = client.generate("hi", "system", GenerationOptions(temperature=0.2, max_output_tokens=123))

        self.assertEqual(text, "ok")
        sent = mock_post.call_args.args[1]
        self.assertEqual(sent["temperature"], 0.2)
        self.assertEqual(sent["max_output_tokens"], 123)
        self.assertEqual(sent["instructions"], "system")


class TestFallbackGenerationClient(unittest.TestCase):
    def test_primary_success_skips_fallback(self):
        primary = StubClient("anthropic", reply="primary text")
        fallback = StubClient("openai", reply="fallback text")
        client = FallbackGenerationClient(primary, fallback)

        self.assertEqual(client.generate("prompt"), "primary text")
        self.assertEqual(client.name, "anthropic")
        self.assertEqual(fallback.calls, [])

    def test_swaps_once_to_fallback(self):
        primary = StubClient("anthropic", error_message="overloaded")
        fallback = StubClient("openai", reply="fallback text")
        client = FallbackGenerationClient(primary, fallback)

        self.assertEqual(client.generate("prompt", "system"), "fallback text")
        self.assertEqual(client.name, "openai")
        self.assertEqual(len(primary.calls), 1)
        self.assertEqual(fallback.calls[0][:2], ("prompt", "system"))

    def test_both_failing_raises_primary_error(self):
        primary = StubClient("anthropic", error_message="primary down")
        fallback = StubClient("openai", error_message="fallback down")
        client = FallbackGenerationClient(primary, fallback)

        with self.assertRaises(GenerationProviderError) as ctx:
            client.generate("prompt")

        self.assertEqual(str(ctx.exception), "primary down")
        self.assertEqual(str(ctx.exception.__cause__), "fallback down")
        self.assertEqual(len(fallback.calls), 1)

    def test_same_provider_fallback_is_ignored(self):
        primary = StubClient("openai", error_message="down")
        duplicate = StubClient("openai", reply="never used")
        client = FallbackGenerationClient(primary, duplicate)

        self.assertIsNone(client.fallback)
        with self.assertRaises(GenerationProviderError):
            client.generate("prompt")
        self.assertEqual(duplicate.calls, [])


class TestBuildGenerationClient(unittest.TestCase):
    def _settings(self, primary, fallback):
        providers = {
            name: ProviderSettings(name=name, api_key=f"{name}-key", model=f"{name}-model")
            for name in ("anthropic", "openai", "gemini")
        }
        return Settings(primary_provider=primary, fallback_provider=fallback, providers=providers)

    def test_builds_primary_and_fallback(self):
        client = build_generation_client(self._settings("anthropic", "openai"))

        self.assertEqual(client.primary.name, "anthropic")
        self.assertEqual(client.fallback.name, "openai")
        self.assertEqual(client.fallback.model, "openai-model")

    def test_no_fallback_configured(self):
        client = build_generation_client(self._settings("gemini", None))

        self.assertIsNone(client.fallback)

    def test_unknown_primary_is_rejected(self):
        with self.assertRaises(ValueError):
            build_generation_client(self._settings("mystery", "openai"))


if __name__ == "__main__":
    unittest.main()
