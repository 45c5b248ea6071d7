"""
Tests for verse segmentation: pre-split input, the LLM path and the
line-split fallback.
"""

import unittest
from unittest.mock import MagicMock

from llm.router import LLMProvider, LLMResponse, TaskType
from reading.segmenter import (
    VerseSegmenter,
    parse_json_object,
    split_lines,
    validate_verses_payload,
)


def make_router(text="", success=True, error=None, error_type=None):
    router = MagicMock()
    router.generate.return_value = LLMResponse(
        text=text,
        success=success,
        provider=LLMProvider.ANTHROPIC,
        error=error,
        error_type=error_type
    )
    return router


class TestLocalSplitting(unittest.TestCase):

    def setUp(self):
        self.segmenter = VerseSegmenter(ai_enabled=False)

    def test_presplit_chapter_keeps_client_segments(self):
        """Text the client already split on blank lines comes back as those parts."""
        verses = self.segmenter.segment("Line one.\n\nLine two.\n")
        self.assertEqual(verses, ["Line one.", "Line two."])

    def test_presplit_parts_are_trimmed(self):
        verses = self.segmenter.segment("  A first thought.\nstill first.  \n\n\n\n Second. ")
        self.assertEqual(verses, ["A first thought.\nstill first.", "Second."])

    def test_fallback_one_verse_per_non_blank_line(self):
        text = "  Alpha  \n   \nBeta\nGamma\t"
        verses = self.segmenter.segment(text)

        non_blank = [line for line in text.split("\n") if line.strip()]
        self.assertEqual(len(verses), len(non_blank))
        self.assertEqual(verses, ["Alpha", "Beta", "Gamma"])

    def test_blank_input_has_no_verses(self):
        self.assertEqual(self.segmenter.segment(""), [])
        self.assertEqual(self.segmenter.segment("   \n \t"), [])

    def test_split_lines_never_returns_empty_items(self):
        self.assertNotIn("", split_lines("a\n\r\n \nb"))


class TestServiceSegmentation(unittest.TestCase):

    def test_service_verses_are_used(self):
        router = make_router('{"verses": ["One sentence.", "  Another one. "]}')
        segmenter = VerseSegmenter(router=router, ai_enabled=True)

        verses = segmenter.segment("One sentence. Another one.")

        self.assertEqual(verses, ["One sentence.", "Another one."])
        kwargs = router.generate.call_args.kwargs
        self.assertEqual(kwargs["task_type"], TaskType.SEGMENTATION)
        self.assertIsNotNone(kwargs["timeout"])
        self.assertIn("One sentence. Another one.", kwargs["prompt"])

    def test_presplit_skips_the_service(self):
        router = make_router('{"verses": ["x"]}')
        segmenter = VerseSegmenter(router=router, ai_enabled=True)

        segmenter.segment("A.\n\nB.")
        router.generate.assert_not_called()

    def test_service_timeout_falls_back_to_lines(self):
        router = make_router(success=False, error="Request timed out", error_type="timeout")
        segmenter = VerseSegmenter(router=router, ai_enabled=True)

        self.assertEqual(segmenter.segment("First\nSecond"), ["First", "Second"])

    def test_malformed_reply_falls_back_to_lines(self):
        router = make_router("Sure! Here are your verses: First, Second")
        segmenter = VerseSegmenter(router=router, ai_enabled=True)

        self.assertEqual(segmenter.segment("First\nSecond"), ["First", "Second"])

    def test_wrong_shape_falls_back_to_lines(self):
        router = make_router('{"paragraphs": ["First", "Second"]}')
        segmenter = VerseSegmenter(router=router, ai_enabled=True)

        self.assertEqual(segmenter.segment("First\nSecond"), ["First", "Second"])

    def test_failure_result_carries_reason(self):
        router = make_router(success=False, error="boom", error_type="server_error")
        segmenter = VerseSegmenter(router=router, ai_enabled=True)

        result = segmenter.request_segmentation("Some text")

        self.assertFalse(result.success)
        self.assertIn("server_error", result.error)
        self.assertEqual(result.verses, [])

    def test_oversized_text_is_not_sent(self):
        router = make_router('{"verses": ["x"]}')
        segmenter = VerseSegmenter(router=router, ai_enabled=True, max_input_chars=10)

        verses = segmenter.segment("A line that is long\nand another")

        router.generate.assert_not_called()
        self.assertEqual(verses, ["A line that is long", "and another"])


class TestReplyParsing(unittest.TestCase):

    def test_fenced_json(self):
        reply = '```json\n{"verses": ["a", "b"]}\n```'
        self.assertEqual(parse_json_object(reply), {"verses": ["a", "b"]})

    def test_json_with_surrounding_prose(self):
        reply = 'Here you go: {"verses": ["a"]} Hope that helps.'
        self.assertEqual(parse_json_object(reply), {"verses": ["a"]})

    def test_non_object_json_is_rejected(self):
        self.assertIsNone(parse_json_object('["a", "b"]'))
        self.assertIsNone(parse_json_object(""))

    def test_payload_with_non_strings_fails(self):
        result = validate_verses_payload({"verses": ["a", 3]})
        self.assertFalse(result.success)

    def test_payload_empty_after_trim_fails(self):
        result = validate_verses_payload({"verses": ["  ", ""]})
        self.assertFalse(result.success)


if __name__ == '__main__':
    unittest.main()
