"""Pydantic models for generation requests and results.

Field names are snake_case internally and camelCase on the wire; both spellings
are accepted on input.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from constants import DEFAULT_FLASHCARD_COUNT, MAX_FLASHCARD_COUNT


class GenerationMode(str, Enum):
    STANDARD = "standard"
    DEEP_DIVE = "deep-dive"


class KnowledgeSource(str, Enum):
    AI_ONLY = "ai-only"
    WEB_ONLY = "web-only"
    AI_WEB = "ai-web"


class CamelModel(BaseModel):
    """Base model serialising with camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerationRequest(CamelModel):
    """A request for a deck of flashcards on one topic."""
    topic: str = Field(..., min_length=1, max_length=500)
    count: int = DEFAULT_FLASHCARD_COUNT
    mode: GenerationMode = GenerationMode.STANDARD
    knowledge_source: KnowledgeSource = KnowledgeSource.AI_WEB
    runtime: str = "ollama"
    parent_topic: Optional[str] = None
    user_id: Optional[str] = None

    @field_validator("topic")
    @classmethod
    def strip_topic(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("topic must not be blank")
        return v

    @field_validator("count", mode="before")
    @classmethod
    def clamp_count(cls, v: Any) -> int:
        """Missing or zero count means the default; otherwise clamp into range."""
        if v is None or v == "" or v == 0:
            return DEFAULT_FLASHCARD_COUNT
        return max(1, min(int(v), MAX_FLASHCARD_COUNT))

    @field_validator("runtime", mode="before")
    @classmethod
    def normalize_runtime(cls, v: Any) -> str:
        return (v or "ollama").strip().lower()

    def to_payload(self) -> Dict[str, Any]:
        """Job payload, JSON-ready with wire field names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Flashcard(CamelModel):
    id: str
    front: str
    back: str
    topic: str


class QuizQuestion(CamelModel):
    id: str
    question: str
    options: List[str]
    correct_answer: str
    explanation: str = ""


class GenerationResult(CamelModel):
    cards: List[Flashcard] = Field(default_factory=list)
    recommended_topics: List[str] = Field(default_factory=list)

    def to_cache(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_cache(cls, data: Dict[str, Any]) -> "GenerationResult":
        return cls.model_validate(data)


class SearchResult(BaseModel):
    title: str = ""
    link: str
    snippet: str = ""
