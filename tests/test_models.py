"""Request validation and job record transitions."""

import pytest
from pydantic import ValidationError

from constants import (
    CHILD_JOB_COUNT,
    DEEP_DIVE_CHILD_LIMIT,
    DEFAULT_FLASHCARD_COUNT,
    MAX_FLASHCARD_COUNT,
    job_channel,
)
from core.config import Settings
from models.generation import GenerationMode, GenerationRequest, KnowledgeSource
from models.jobs import JobRecord, JobStatus, RetryPolicy


class TestGenerationRequest:

    def test_defaults(self):
        request = GenerationRequest(topic="  React  ")

        assert request.topic == "React"
        assert request.count == DEFAULT_FLASHCARD_COUNT
        assert request.mode == GenerationMode.STANDARD
        assert request.knowledge_source == KnowledgeSource.AI_WEB
        assert request.runtime == "ollama"

    @pytest.mark.parametrize("raw, expected", [
        (None, DEFAULT_FLASHCARD_COUNT),
        (0, DEFAULT_FLASHCARD_COUNT),
        (-4, 1),
        (7, 7),
        (500, MAX_FLASHCARD_COUNT),
    ])
    def test_count_clamped(self, raw, expected):
        assert GenerationRequest(topic="t", count=raw).count == expected

    def test_camel_case_input_and_payload(self):
        request = GenerationRequest.model_validate({
            "topic": "Hooks", "knowledgeSource": "web-only", "parentTopic": "React",
            "mode": "deep-dive", "runtime": "OpenAI",
        })

        assert request.runtime == "openai"
        assert request.to_payload() == {
            "topic": "Hooks", "count": DEFAULT_FLASHCARD_COUNT, "mode": "deep-dive",
            "knowledgeSource": "web-only", "runtime": "openai", "parentTopic": "React",
        }

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValidationError):
            GenerationRequest(topic="t", mode="shallow")

    def test_topic_length_limit(self):
        with pytest.raises(ValidationError):
            GenerationRequest(topic="x" * 501)


class TestJobRecord:

    def test_lifecycle(self):
        job = JobRecord.create({"topic": "t"})
        assert job.status == JobStatus.QUEUED

        job.mark_active()
        job.set_progress(150)
        assert job.progress == 100
        assert not job.status.is_terminal

        job.mark_failed("boom")
        assert job.status.is_terminal
        assert job.progress == 0
        assert job.finished_at is not None

    def test_dict_round_trip_keeps_status(self):
        job = JobRecord.create({"topic": "t"})
        job.mark_completed({"cards": []})

        restored = JobRecord.from_dict(job.to_dict())

        assert restored.status == JobStatus.COMPLETED
        assert restored.to_event() == job.to_event()

    def test_channel_name(self):
        assert job_channel("abc") == "JOB_UPDATED_abc"

    def test_retry_and_release_keep_attempt_count_honest(self):
        job = JobRecord.create({"topic": "t"}, max_attempts=3)

        job.mark_active()
        job.mark_retrying("rate limited")
        assert job.status == JobStatus.QUEUED
        assert job.attempts_left == 2
        assert job.last_error == "rate limited"

        job.mark_active()
        job.release()
        assert job.attempts_made == 1
        assert job.started_at is None

        restored = JobRecord.from_dict(job.to_dict())
        assert restored.max_attempts == 3
        assert restored.attempts_made == 1


class TestRetryPolicy:

    def test_exponential_delay_is_capped(self):
        policy = RetryPolicy(max_attempts=5, initial_delay=2.0, max_delay=5.0)

        assert [policy.calculate_delay(n) for n in range(3)] == [2.0, 4.0, 5.0]


def test_deep_dive_settings_default_to_constants():
    fields = Settings.model_fields

    assert fields["deep_dive_child_limit"].default == DEEP_DIVE_CHILD_LIMIT
    assert fields["child_job_count"].default == CHILD_JOB_COUNT
