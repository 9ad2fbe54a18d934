"""Shared constants for generation, caching and job events."""

# =============================================================================
# GENERATION
# =============================================================================

DEFAULT_FLASHCARD_COUNT = 10
MAX_FLASHCARD_COUNT = 50

# Deep-dive fan-out defaults for Settings
DEEP_DIVE_CHILD_LIMIT = 3
CHILD_JOB_COUNT = 5

# Worker progress checkpoints
PROGRESS_STARTED = 5
PROGRESS_GENERATED = 70
PROGRESS_DONE = 100

# =============================================================================
# CIRCUIT BREAKERS
# =============================================================================

BREAKER_GROUP_LLM = "llm"
BREAKER_GROUP_SEARCH = "search"

# =============================================================================
# CACHE NAMESPACES
# =============================================================================

FLASHCARD_CACHE_NAME = "flashcard"
SEARCH_CACHE_NAME = "serper"
LLM_CACHE_NAME = "llm"
WEB_CONTEXT_PREFIX = "web-context"

# =============================================================================
# JOB EVENTS
# =============================================================================

JOB_UPDATED_PREFIX = "JOB_UPDATED_"


def job_channel(job_id: str) -> str:
    """Pub/sub channel carrying status updates for one job."""
    return f"{JOB_UPDATED_PREFIX}{job_id}"
