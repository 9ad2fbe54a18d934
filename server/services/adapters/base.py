"""Provider capability contract and a prompt-driven base implementation."""

from typing import List, Optional, Protocol, runtime_checkable

from core.logging import get_logger
from models.generation import Flashcard, QuizQuestion
from services.caching.tiered import TieredCache, hash_key
from .parsing import clean_line, extract_json, to_flashcards, to_quiz_questions, to_string_list

logger = get_logger(__name__)

FLASHCARD_SYSTEM_PROMPT = "You are a helpful study assistant that creates flashcards."

FLASHCARD_PROMPT = """Create exactly {count} flashcards about "{topic}".

IMPORTANT: Return ONLY a valid JSON array. Each object must have these exact fields:
- "question": the front of the flashcard (a question or term)
- "answer": the back of the flashcard (the answer or definition)

Return ONLY the JSON array, no markdown, no explanation, no code blocks."""

FROM_TEXT_SYSTEM_PROMPT = "You are a helpful study assistant. Create {count} flashcards from the provided text about: {topic}."

FROM_TEXT_PROMPT = """Text: {text}

Return ONLY a valid JSON array of objects with "question" and "answer" fields. No markdown."""

QUIZ_SYSTEM_PROMPT = "You are a teacher creating a multiple-choice quiz."

QUIZ_PROMPT = """Create {count} multiple-choice questions about "{topic}".
{source}
Requirements:
1. Mix easy recall, application and synthesis questions.
2. "correctAnswer" MUST be one of "options".
3. Return ONLY a JSON array of objects with "id", "question", "options" (array of 4),
   "correctAnswer" and "explanation"."""

SUMMARY_PROMPT = "Summarize what you know about \"{topic}\" in one concise paragraph for a student."

SEARCH_QUERY_PROMPT = """Write one concise web search query to research "{topic}"{parent}.
Return ONLY the query text."""

SUBTOPICS_PROMPT = """List {limit} advanced sub-topics a student should study to master "{topic}".
Return ONLY a JSON array of strings."""

MAX_CONTEXT_CHARS = 10000
SUBTOPIC_LIMIT = 5


@runtime_checkable
class LLMAdapter(Protocol):
    """Capability set every text-generation provider offers."""

    name: str

    async def is_available(self) -> bool:
        ...

    async def generate_flashcards(self, topic: str, count: int) -> List[Flashcard]:
        ...

    async def generate_flashcards_from_text(self, text: str, topic: str, count: int) -> List[Flashcard]:
        ...

    async def generate_quiz(self, topic: str, count: int,
                            flashcards: Optional[List[Flashcard]] = None) -> List[QuizQuestion]:
        ...

    async def generate_summary(self, topic: str) -> str:
        ...

    async def generate_search_query(self, topic: str, parent_topic: Optional[str] = None) -> str:
        ...

    async def generate_subtopics(self, topic: str) -> List[str]:
        ...


class PromptAdapter:
    """Implements the capability set on top of a single text completion call.

    Subclasses provide ``name``, ``model``, ``is_available`` and ``_complete``.
    Identical prompts are answered from ``response_cache`` when one is set.
    """

    name: str = "base"
    model: str = ""
    response_cache: Optional[TieredCache] = None

    async def is_available(self) -> bool:
        raise NotImplementedError

    async def _complete(self, prompt: str, system: str) -> str:
        raise NotImplementedError

    async def complete(self, prompt: str, system: str = "") -> str:
        if self.response_cache is None:
            return await self._complete(prompt, system)

        key = hash_key(self.name, self.model, system, prompt)
        cached = await self.response_cache.get(key)
        if cached is not None:
            return cached
        text = await self._complete(prompt, system)
        if text:
            await self.response_cache.set(key, text)
        return text

    async def generate_flashcards(self, topic: str, count: int) -> List[Flashcard]:
        text = await self.complete(FLASHCARD_PROMPT.format(count=count, topic=topic),
                                   FLASHCARD_SYSTEM_PROMPT)
        return to_flashcards(extract_json(text), topic)

    async def generate_flashcards_from_text(self, text: str, topic: str, count: int) -> List[Flashcard]:
        response = await self.complete(
            FROM_TEXT_PROMPT.format(text=text[:MAX_CONTEXT_CHARS]),
            FROM_TEXT_SYSTEM_PROMPT.format(count=count, topic=topic),
        )
        return to_flashcards(extract_json(response), topic)

    async def generate_quiz(self, topic: str, count: int,
                            flashcards: Optional[List[Flashcard]] = None) -> List[QuizQuestion]:
        source = ""
        if flashcards:
            cards_text = "\n\n".join(f"Q: {c.front}\nA: {c.back}" for c in flashcards)
            source = f"Base the questions ONLY on these flashcards:\n{cards_text}\n"
        response = await self.complete(QUIZ_PROMPT.format(count=count, topic=topic, source=source),
                                       QUIZ_SYSTEM_PROMPT)
        return to_quiz_questions(extract_json(response))[:count]

    async def generate_summary(self, topic: str) -> str:
        return (await self.complete(SUMMARY_PROMPT.format(topic=topic))).strip()

    async def generate_search_query(self, topic: str, parent_topic: Optional[str] = None) -> str:
        parent = f" in the context of {parent_topic}" if parent_topic else ""
        query = clean_line(await self.complete(SEARCH_QUERY_PROMPT.format(topic=topic, parent=parent)))
        return query or topic

    async def generate_subtopics(self, topic: str) -> List[str]:
        response = await self.complete(SUBTOPICS_PROMPT.format(topic=topic, limit=SUBTOPIC_LIMIT))
        return to_string_list(extract_json(response), limit=SUBTOPIC_LIMIT)
