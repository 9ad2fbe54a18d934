"""Deterministic provider for development and tests."""

from typing import List, Optional

from models.generation import Flashcard, QuizQuestion


class MockAdapter:
    name = "mock"

    async def is_available(self) -> bool:
        return True

    async def generate_flashcards(self, topic: str, count: int) -> List[Flashcard]:
        return [
            Flashcard(id=f"mock-{i}", front=f"Mock Question {i + 1} about {topic}",
                      back=f"Mock Answer {i + 1} for {topic}", topic=topic)
            for i in range(count)
        ]

    async def generate_flashcards_from_text(self, text: str, topic: str, count: int) -> List[Flashcard]:
        return [
            Flashcard(id=f"mock-text-{i}", front=f"Mock Question {i + 1} from text",
                      back=f"Mock Answer {i + 1} from text", topic=topic)
            for i in range(count)
        ]

    async def generate_quiz(self, topic: str, count: int,
                            flashcards: Optional[List[Flashcard]] = None) -> List[QuizQuestion]:
        if flashcards:
            return [
                QuizQuestion(id=f"mock-quiz-card-{i}", question=card.front,
                             options=[card.back, "Wrong 1", "Wrong 2", "Wrong 3"],
                             correct_answer=card.back, explanation="Based on the flashcard.")
                for i, card in enumerate(flashcards[:count])
            ]
        return [
            QuizQuestion(id=f"mock-quiz-{i}", question=f"Mock quiz question {i + 1} about {topic}?",
                         options=["A", "B", "C", "D"], correct_answer="A")
            for i in range(count)
        ]

    async def generate_summary(self, topic: str) -> str:
        return f"Mock summary for {topic}. This topic is very interesting."

    async def generate_search_query(self, topic: str, parent_topic: Optional[str] = None) -> str:
        return f"Mock search query for {topic}"

    async def generate_subtopics(self, topic: str) -> List[str]:
        return [f"{topic} Basics", f"{topic} Advanced", f"{topic} History"]
