"""Helpers for turning free-form LLM output into structured data."""

import json
import re
import uuid
from typing import Any, List, Optional

from core.logging import get_logger
from models.generation import Flashcard, QuizQuestion

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
_QUESTION_RE = re.compile(r'"(?:question|front)"\s*:\s*"([^"]*)"')
_ANSWER_RE = re.compile(r'"(?:answer|back)"\s*:\s*"([^"]*)"')


def extract_json(text: str) -> Any:
    """Best-effort JSON extraction from model output.

    Tries, in order: the first bracketed array, the whole (fence-stripped)
    text, the text with a missing closing bracket repaired, and finally a
    regex scrape of question/answer pairs. Returns [] when nothing parses.
    """
    cleaned = _FENCE_RE.sub("", text or "").strip()

    match = _ARRAY_RE.search(cleaned)
    if match:
        try:
            return json.loads(match.group(0))
        except ValueError:
            logger.debug("Matched array did not parse, trying whole text")

    try:
        return json.loads(cleaned)
    except ValueError:
        pass

    if cleaned and not cleaned.endswith("]"):
        repaired = cleaned + ("]" if cleaned.endswith("}") else "}]" if cleaned.endswith('"') else "")
        try:
            return json.loads(repaired)
        except ValueError:
            pass

    questions = _QUESTION_RE.findall(text or "")
    answers = _ANSWER_RE.findall(text or "")
    pairs = [{"question": q, "answer": a} for q, a in zip(questions, answers)]
    if pairs:
        logger.info("Recovered flashcards via regex fallback", count=len(pairs))
    else:
        logger.warning("Could not extract JSON from model output", preview=(text or "")[:120])
    return pairs


def _unwrap_list(data: Any, *keys: str) -> List[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in keys:
            if isinstance(data.get(key), list):
                return data[key]
    return []


def to_flashcards(data: Any, topic: str) -> List[Flashcard]:
    """Normalize parsed output into flashcards, dropping unusable items.

    Accepts question/answer or front/back objects and bare strings.
    """
    cards = []
    for index, item in enumerate(_unwrap_list(data, "flashcards", "cards")):
        if isinstance(item, str):
            front, back, card_id = f"What is: {topic}? (Card {index + 1})", item, None
        elif isinstance(item, dict):
            front = item.get("question") or item.get("front")
            back = item.get("answer") or item.get("back")
            card_id = item.get("id")
        else:
            continue
        if not front or not back or not str(front).strip() or not str(back).strip():
            continue
        cards.append(Flashcard(
            id=str(card_id) if card_id else str(uuid.uuid4()),
            front=str(front).strip(),
            back=str(back).strip(),
            topic=topic,
        ))
    return cards


def to_quiz_questions(data: Any) -> List[QuizQuestion]:
    questions = []
    for index, item in enumerate(_unwrap_list(data, "questions", "quiz")):
        if not isinstance(item, dict):
            continue
        options = [str(o) for o in item.get("options") or []]
        correct = item.get("correctAnswer") or item.get("correct_answer")
        if not item.get("question") or not options or correct not in options:
            continue
        questions.append(QuizQuestion(
            id=str(item.get("id") or f"q{index + 1}"),
            question=str(item["question"]),
            options=options,
            correct_answer=str(correct),
            explanation=str(item.get("explanation") or ""),
        ))
    return questions


def to_string_list(data: Any, limit: Optional[int] = None) -> List[str]:
    items = _unwrap_list(data, "subtopics", "topics", "subTopics")
    result = [str(item).strip() for item in items if isinstance(item, str) and item.strip()]
    return result[:limit] if limit else result


def clean_line(text: str) -> str:
    """First non-empty line without surrounding quotes."""
    for line in (text or "").splitlines():
        line = line.strip().strip('"').strip("'").strip()
        if line:
            return line
    return ""
