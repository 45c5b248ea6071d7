"""
Tests for LLM routing, the Anthropic client's failure handling and
annotation generation, with every provider mocked.
"""

import unittest
from unittest.mock import MagicMock, patch

from llm.anthropic_client import AnthropicClient, AnthropicResponse
from llm.kobold_client import KoboldClient, KoboldResponse
from llm.router import LLMProvider, LLMResponse, LLMRouter, TaskType
from reading.annotations import AnnotationGenerator
from reading.books import Book, Chapter
from reading.segmenter import VerseSegmenter


def anthropic_reply(text="", success=True, error_type=None):
    return AnthropicResponse(
        text=text,
        input_tokens=10,
        output_tokens=5,
        success=success,
        error=None if success else "failed",
        error_type=error_type
    )


class TestLLMRouter(unittest.TestCase):

    def setUp(self):
        self.anthropic = MagicMock()
        self.kobold = MagicMock()

    def _router(self, fallback_enabled=False):
        router = LLMRouter(primary_provider=LLMProvider.ANTHROPIC, fallback_enabled=fallback_enabled)
        router._anthropic = self.anthropic
        router._kobold = self.kobold
        return router

    def test_primary_success(self):
        self.anthropic.generate.return_value = anthropic_reply("ok")

        response = self._router().generate("prompt", task_type=TaskType.SEGMENTATION, timeout=5)

        self.assertTrue(response.success)
        self.assertEqual(response.provider, LLMProvider.ANTHROPIC)
        self.assertEqual(response.tokens_in, 10)
        self.assertEqual(self.anthropic.generate.call_args.kwargs["timeout"], 5)
        self.kobold.generate.assert_not_called()

    def test_failure_without_fallback(self):
        self.anthropic.generate.return_value = anthropic_reply(success=False, error_type="timeout")

        response = self._router().generate("prompt")

        self.assertFalse(response.success)
        self.assertEqual(response.error_type, "timeout")
        self.kobold.generate.assert_not_called()

    def test_failure_with_fallback(self):
        self.anthropic.generate.return_value = anthropic_reply(success=False, error_type="server_error")
        self.kobold.generate.return_value = KoboldResponse(text="local", tokens_generated=1, success=True)

        response = self._router(fallback_enabled=True).generate("prompt", timeout=7)

        self.assertTrue(response.success)
        self.assertEqual(response.provider, LLMProvider.KOBOLD)
        self.assertEqual(response.text, "local")
        self.assertEqual(self.kobold.generate.call_args.kwargs["timeout"], 7)

    def test_check_providers(self):
        self.anthropic.is_available.return_value = False
        self.kobold.is_available.return_value = True
        self.kobold.get_model_name.return_value = "llama"

        status = self._router().check_providers()

        self.assertFalse(status[LLMProvider.ANTHROPIC][0])
        self.assertEqual(status[LLMProvider.KOBOLD], (True, "Available (llama)"))


class TestAnthropicClient(unittest.TestCase):

    def test_missing_key_is_auth_error(self):
        response = AnthropicClient(api_key="").generate("hello")
        self.assertFalse(response.success)
        self.assertEqual(response.error_type, "auth_error")
        self.assertFalse(AnthropicClient(api_key="").is_available())

    def test_response_text_and_usage(self):
        client = AnthropicClient(api_key="key")
        sdk = MagicMock()
        sdk.messages.create.return_value = MagicMock(
            content=[MagicMock(text='{"verses": ["a"]}')],
            usage=MagicMock(input_tokens=3, output_tokens=4),
            stop_reason="end_turn"
        )
        client._client = sdk

        response = client.generate("split this", system_prompt="sys", timeout=12)

        self.assertTrue(response.success)
        self.assertEqual(response.text, '{"verses": ["a"]}')
        self.assertEqual(response.output_tokens, 4)
        kwargs = sdk.messages.create.call_args.kwargs
        self.assertEqual(kwargs["timeout"], 12)
        self.assertEqual(kwargs["system"], "sys")

    def test_timeout_is_not_retried(self):
        import anthropic
        import httpx

        client = AnthropicClient(api_key="key")
        sdk = MagicMock()
        sdk.messages.create.side_effect = anthropic.APITimeoutError(
            request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        )
        client._client = sdk

        response = client.generate("split this", timeout=1)

        self.assertFalse(response.success)
        self.assertEqual(response.error_type, "timeout")
        self.assertEqual(sdk.messages.create.call_count, 1)


class TestKoboldClient(unittest.TestCase):

    def _reply(self, payload, status_code=200):
        response = MagicMock(status_code=status_code, text="")
        response.json.return_value = payload
        return response

    def test_generate_reads_first_result(self):
        with patch("llm.kobold_client.requests.post", return_value=self._reply({"results": [{"text": " hi "}]})):
            response = KoboldClient().generate("prompt")
        self.assertTrue(response.success)
        self.assertEqual(response.text, "hi")

    def test_malformed_replies_are_bad_response(self):
        for payload in (["not", "an", "object"], {"results": ["x"]}, {"results": [{"text": None}]}, {}):
            with self.subTest(payload=payload):
                with patch("llm.kobold_client.requests.post", return_value=self._reply(payload)):
                    response = KoboldClient().generate("prompt")
                self.assertFalse(response.success)
                self.assertEqual(response.error_type, "bad_response")

    def test_segmentation_falls_back_on_malformed_reply(self):
        router = LLMRouter(primary_provider=LLMProvider.KOBOLD, fallback_enabled=False)
        router._kobold = KoboldClient()
        segmenter = VerseSegmenter(router=router, ai_enabled=True)

        with patch("llm.kobold_client.requests.post", return_value=self._reply(["not", "an", "object"])):
            verses = segmenter.segment("First\nSecond")

        self.assertEqual(verses, ["First", "Second"])


class TestAnnotationGenerator(unittest.TestCase):

    def setUp(self):
        self.chapter = Chapter(
            id=4, book_id=1, title="One", subtitle=None, raw_content="",
            content=[f"Verse {i}." for i in range(1, 9)], order=0
        )
        self.book = Book(
            id=1, title="Psalms", description="", preface=None, cover_url="",
            author_id=1, author_name="David", chapters=[self.chapter]
        )
        self.router = MagicMock()

    def _reply(self, text, success=True):
        self.router.generate.return_value = LLMResponse(
            text=text, success=success, provider=LLMProvider.ANTHROPIC,
            error=None if success else "down", error_type=None if success else "connection_error"
        )

    def test_prompt_uses_five_previous_verses(self):
        self._reply('{"annotation": "It means this."}')
        generator = AnnotationGenerator(router=self.router, enabled=True)

        result = generator.annotate(self.book, 4, 8)

        self.assertTrue(result.success)
        self.assertEqual(result.annotation, "It means this.")
        prompt = self.router.generate.call_args.kwargs["prompt"]
        self.assertIn("Psalms", prompt)
        self.assertIn("David", prompt)
        self.assertIn("Verse 3.\nVerse 4.\nVerse 5.\nVerse 6.\nVerse 7.", prompt)
        self.assertNotIn("Verse 2.", prompt)
        self.assertEqual(self.router.generate.call_args.kwargs["task_type"], TaskType.ANNOTATION)

    def test_first_verse_has_no_context(self):
        self._reply('{"annotation": "Start."}')
        result = AnnotationGenerator(router=self.router, enabled=True).annotate(self.book, 4, 1)
        self.assertTrue(result.success)

    def test_service_failure_is_reported(self):
        self._reply("", success=False)
        result = AnnotationGenerator(router=self.router, enabled=True).annotate(self.book, 4, 2)
        self.assertFalse(result.success)
        self.assertIsNotNone(result.error)

    def test_bad_shape_is_reported(self):
        self._reply('{"explanation": "wrong key"}')
        result = AnnotationGenerator(router=self.router, enabled=True).annotate(self.book, 4, 2)
        self.assertFalse(result.success)

    def test_out_of_range_paragraph(self):
        result = AnnotationGenerator(router=self.router, enabled=True).annotate(self.book, 4, 99)
        self.assertFalse(result.success)
        self.router.generate.assert_not_called()

    def test_disabled(self):
        result = AnnotationGenerator(router=self.router, enabled=False).annotate(self.book, 4, 2)
        self.assertFalse(result.success)
        self.router.generate.assert_not_called()


if __name__ == '__main__':
    unittest.main()
