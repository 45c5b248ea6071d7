"""
LitBook - Annotation Generator
Asks the LLM to explain a verse the reader selected, using the verses
just before it as context.
"""

from dataclasses import dataclass
from typing import List, Optional

import config
from core.logger import log_info, log_warning
from llm.router import LLMRouter, TaskType, get_llm_router
from reading.books import Book
from reading.segmenter import parse_json_object

ANNOTATION_SYSTEM_PROMPT = (
    "You are a theological assistant. You answer with a single JSON object "
    "and nothing else."
)

ANNOTATION_PROMPT = """Your task is to provide a clear and concise explanation for a selected verse from a book.
Use the provided context to inform your explanation.

Book Title: {book_title}
Author: {author_name}

Previous Verses (context):
---
{context}
---

Verse to Explain:
---
{selected_verse}
---

Please provide your explanation for the selected verse as a JSON object with a single key "annotation". The explanation should be in the same language as the selected verse."""


@dataclass
class AnnotationResult:
    success: bool
    annotation: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {"success": self.success, "annotation": self.annotation, "error": self.error}


class AnnotationGenerator:
    """Generates verse annotations. Never raises for service failures."""

    def __init__(
        self,
        router: Optional[LLMRouter] = None,
        enabled: Optional[bool] = None,
        context_verses: Optional[int] = None,
        timeout: Optional[float] = None
    ):
        self._router = router
        self.enabled = config.ANNOTATIONS_ENABLED if enabled is None else enabled
        self.context_verses = (
            config.ANNOTATION_CONTEXT_VERSES if context_verses is None else context_verses
        )
        self.timeout = timeout or config.ANNOTATION_TIMEOUT_SECONDS

    @property
    def router(self) -> LLMRouter:
        if self._router is None:
            self._router = get_llm_router()
        return self._router

    def annotate(self, book: Book, chapter_id: int, paragraph_index: int) -> AnnotationResult:
        """
        Annotate the verse at (chapter, paragraph) in a loaded book.

        Args:
            book: Book with chapters loaded
            chapter_id: Chapter holding the verse
            paragraph_index: 1-based verse index
        """
        chapter = book.get_chapter(chapter_id)
        if chapter is None:
            return AnnotationResult(success=False, error=f"Chapter {chapter_id} not in book {book.id}")

        selected = chapter.verse(paragraph_index)
        if selected is None:
            return AnnotationResult(success=False, error=f"Paragraph {paragraph_index} out of range")

        start = max(0, paragraph_index - 1 - self.context_verses)
        previous = chapter.content[start:paragraph_index - 1]

        return self.generate(selected, previous, book.title, book.author_name)

    def generate(
        self,
        selected_verse: str,
        previous_verses: List[str],
        book_title: str,
        author_name: str
    ) -> AnnotationResult:
        if not self.enabled:
            return AnnotationResult(success=False, error="Annotations are disabled")

        prompt = ANNOTATION_PROMPT.format(
            book_title=book_title,
            author_name=author_name,
            context="\n".join(previous_verses),
            selected_verse=selected_verse
        )
        response = self.router.generate(
            prompt=prompt,
            system_prompt=ANNOTATION_SYSTEM_PROMPT,
            task_type=TaskType.ANNOTATION,
            temperature=0.3,
            timeout=self.timeout
        )

        if not response.success:
            log_warning(f"Annotation failed ({response.error_type}): {response.error}")
            return AnnotationResult(success=False, error=response.error or "service error")

        payload = parse_json_object(response.text)
        annotation = payload.get("annotation") if payload else None
        if not isinstance(annotation, str) or not annotation.strip():
            log_warning("Annotation response did not match the expected shape")
            return AnnotationResult(success=False, error="response missing 'annotation'")

        log_info(f"Annotation generated for '{book_title}'", prefix="💡")
        return AnnotationResult(success=True, annotation=annotation.strip())


# Global generator instance
_generator: Optional[AnnotationGenerator] = None


def get_annotation_generator() -> AnnotationGenerator:
    """Get the global annotation generator."""
    global _generator
    if _generator is None:
        _generator = AnnotationGenerator()
    return _generator
