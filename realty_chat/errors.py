"""
Typed failures raised by collaborator adapters and the lead flow.

Adapters translate library errors (openai, httpx, Supabase/PostgREST) into
these so the orchestrator can degrade per failure kind. Each carries a
short `category` label, the only detail ever exposed to API callers.
"""


class RealtyChatError(Exception):
    """Base class for every failure the conversation engine recognises."""

    category = "internal_error"


class EmbeddingUnavailable(RealtyChatError):
    """The embedding provider failed, timed out or returned a malformed batch."""

    category = "embedding_unavailable"


class IndexUnavailable(RealtyChatError):
    """The vector index query (or upsert/delete) failed."""

    category = "index_unavailable"


class GenerationUnavailable(RealtyChatError):
    """The chat completion call failed or returned no text."""

    category = "generation_unavailable"


class StoreUnavailable(RealtyChatError):
    """The lead store, history store or property directory failed."""

    category = "store_unavailable"


class ValidationFailure(RealtyChatError):
    """A lead field did not pass validation."""

    category = "validation_failure"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message
