"""
LitBook - Verse Segmenter
Turns raw chapter text into the ordered verse list stored on a chapter.

Three paths, tried in order:
    1. Pre-split: the client already segmented the text and joined the
       verses with a blank line ("\\n\\n"). Split on that.
    2. Service: ask the LLM to segment the text into complete thoughts and
       return {"verses": [...]}.
    3. Fallback: one verse per non-blank line.

Every path trims each verse and drops empty ones. The service path never
raises: a failed, timed-out or malformed call comes back as a failed
SegmentationResult and the fallback runs.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional

import config
from core.logger import log_info, log_warning
from llm.router import LLMRouter, TaskType, get_llm_router

SEGMENTATION_SYSTEM_PROMPT = (
    "You format prose for a reading app. You never add, remove or change "
    "words. You answer with a single JSON object and nothing else."
)

SEGMENTATION_PROMPT = """Analyze the following text and divide it into paragraphs or short sentences, each forming a complete thought.
Avoid splitting sentences in the middle. Each element in the output array should be a full sentence or a self-contained idea.
The goal is to format the text for readability, like verses in a poem or scripture, but without breaking the grammatical structure.
Do not add, remove, or change any words from the original text.

Return the output as a single JSON object with a key "{key}" that contains an array of the verse strings.

Original text:
---
{text}
---"""

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


@dataclass
class SegmentationResult:
    """Outcome of a segmentation service call."""
    success: bool
    verses: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def failure(cls, reason: str) -> "SegmentationResult":
        return cls(success=False, error=reason)


def clean_verses(parts: List[str]) -> List[str]:
    """Trim every part and drop the ones that end up empty."""
    return [p.strip() for p in parts if p and p.strip()]


def split_lines(text: str) -> List[str]:
    """Fallback split: one verse per non-blank line."""
    return clean_verses(text.split("\n"))


def split_presegmented(text: str, delimiter: Optional[str] = None) -> List[str]:
    """Split text the client already segmented."""
    return clean_verses(text.split(delimiter or config.SEGMENTATION_PRESPLIT_DELIMITER))


def is_presegmented(text: str, delimiter: Optional[str] = None) -> bool:
    return (delimiter or config.SEGMENTATION_PRESPLIT_DELIMITER) in text


def parse_json_object(text: str) -> Optional[dict]:
    """
    Pull a JSON object out of an LLM reply.

    Accepts a bare object, an object wrapped in a ``` fence, or an object
    surrounded by stray prose. Returns None if nothing parses to a dict.
    """
    if not text:
        return None

    candidate = text.strip()
    fenced = _CODE_FENCE.match(candidate)
    if fenced:
        candidate = fenced.group(1)

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        start = candidate.find("{")
        end = candidate.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            parsed = json.loads(candidate[start:end + 1])
        except json.JSONDecodeError:
            return None

    return parsed if isinstance(parsed, dict) else None


def validate_verses_payload(payload: Any, key: Optional[str] = None) -> SegmentationResult:
    """Check a decoded service reply against the {"verses": [str, ...]} shape."""
    key = key or config.SEGMENTATION_RESPONSE_KEY

    if not isinstance(payload, dict):
        return SegmentationResult.failure("response is not a JSON object")

    verses = payload.get(key)
    if not isinstance(verses, list):
        return SegmentationResult.failure(f"'{key}' is missing or not an array")

    if not all(isinstance(v, str) for v in verses):
        return SegmentationResult.failure(f"'{key}' contains non-string items")

    cleaned = clean_verses(verses)
    if not cleaned:
        return SegmentationResult.failure(f"'{key}' is empty after trimming")

    return SegmentationResult(success=True, verses=cleaned)


class VerseSegmenter:
    """Splits chapter text into verses, using the LLM when it is available."""

    def __init__(
        self,
        router: Optional[LLMRouter] = None,
        ai_enabled: Optional[bool] = None,
        timeout: Optional[float] = None,
        max_input_chars: Optional[int] = None
    ):
        self._router = router
        self.ai_enabled = config.SEGMENTATION_AI_ENABLED if ai_enabled is None else ai_enabled
        self.timeout = timeout or config.SEGMENTATION_TIMEOUT_SECONDS
        self.max_input_chars = max_input_chars or config.SEGMENTATION_MAX_INPUT_CHARS

    @property
    def router(self) -> LLMRouter:
        if self._router is None:
            self._router = get_llm_router()
        return self._router

    def segment(self, raw_text: str) -> List[str]:
        """
        Segment raw chapter text into an ordered list of verses.

        Args:
            raw_text: Chapter text as submitted

        Returns:
            Trimmed, non-empty verses. Empty only for blank input.
        """
        if not raw_text or not raw_text.strip():
            return []

        if is_presegmented(raw_text):
            return split_presegmented(raw_text)

        if self.ai_enabled:
            result = self.request_segmentation(raw_text)
            if result.success:
                log_info(f"Segmented chapter into {len(result.verses)} verses", prefix="✂️")
                return result.verses
            log_warning(f"Verse segmentation fell back to line split: {result.error}")

        return split_lines(raw_text)

    def request_segmentation(self, raw_text: str) -> SegmentationResult:
        """
        Ask the segmentation service to split the text.

        Returns:
            SegmentationResult; success=False carries the reason
        """
        if len(raw_text) > self.max_input_chars:
            return SegmentationResult.failure(
                f"text too long for service ({len(raw_text)} > {self.max_input_chars} chars)"
            )

        prompt = SEGMENTATION_PROMPT.format(
            key=config.SEGMENTATION_RESPONSE_KEY,
            text=raw_text
        )
        response = self.router.generate(
            prompt=prompt,
            system_prompt=SEGMENTATION_SYSTEM_PROMPT,
            task_type=TaskType.SEGMENTATION,
            temperature=0.0,
            timeout=self.timeout
        )

        if not response.success:
            return SegmentationResult.failure(
                f"{response.provider.value} {response.error_type or 'error'}: {response.error}"
            )

        payload = parse_json_object(response.text)
        if payload is None:
            return SegmentationResult.failure("response is not valid JSON")

        return validate_verses_payload(payload)


# Global segmenter instance
_segmenter: Optional[VerseSegmenter] = None


def get_verse_segmenter() -> VerseSegmenter:
    """Get the global verse segmenter instance."""
    global _segmenter
    if _segmenter is None:
        _segmenter = VerseSegmenter()
    return _segmenter


def init_verse_segmenter(
    router: Optional[LLMRouter] = None,
    ai_enabled: Optional[bool] = None
) -> VerseSegmenter:
    """Initialize the global verse segmenter."""
    global _segmenter
    _segmenter = VerseSegmenter(router=router, ai_enabled=ai_enabled)
    return _segmenter
