"""
Shared test fixtures for the Realty Chat test suite.
"""

import re
from collections.abc import Sequence
from datetime import UTC, datetime

import pytest
import structlog
from fastapi.testclient import TestClient

from realty_chat.errors import EmbeddingUnavailable, GenerationUnavailable
from realty_chat.models.intent import IntentDefinition
from realty_chat.models.retrieval import PropertyItem

# Bag-of-words vocabulary for the fake embedder. Words outside it are ignored.
VOCAB = [
    "agent",
    "call",
    "contact",
    "viewing",
    "visit",
    "interested",
    "apartment",
    "villa",
    "bedroom",
    "deposit",
    "policy",
    "maintenance",
    "hello",
]

# Small intent set whose examples embed to distinct directions under VOCAB
TEST_INTENTS = [
    IntentDefinition(intent="contact", examples=["call agent contact"]),
    IntentDefinition(intent="viewing", examples=["viewing visit"]),
    IntentDefinition(intent="interested", examples=["interested"]),
    IntentDefinition(intent="property_search", examples=["apartment bedroom", "villa"]),
    IntentDefinition(intent="general", examples=["deposit policy maintenance"]),
    IntentDefinition(intent="greeting", examples=["hello"]),
]


class FakeEmbeddingProvider:
    """Deterministic embedder: token counts over VOCAB (trailing 's' dropped)."""

    def __init__(self, vocab: Sequence[str] = VOCAB, fail: bool = False) -> None:
        self.vocab = list(vocab)
        self.fail = fail
        self.calls: list[list[str]] = []

    def vector(self, text: str) -> list[float]:
        tokens = [token.rstrip("s") for token in re.findall(r"[a-z]+", text.lower())]
        return [float(tokens.count(word)) for word in self.vocab]

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        batch = list(texts)
        self.calls.append(batch)
        if self.fail:
            raise EmbeddingUnavailable("fake embedder down")
        return [self.vector(text) for text in batch]


class FakeGenerationProvider:
    """Returns a fixed answer and records every prompt it receives."""

    def __init__(self, answer: str = "Here is what I found.", fail: bool = False) -> None:
        self.answer = answer
        self.fail = fail
        self.calls: list[dict] = []

    async def generate(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_message": user_message,
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        if self.fail:
            raise GenerationUnavailable("fake generator down")
        return self.answer


class RecordingNotificationSink:
    """Notification sink that records leads; can report failure or raise."""

    def __init__(self, result: bool = True, raises: bool = False) -> None:
        self.result = result
        self.raises = raises
        self.leads = []

    async def notify(self, lead) -> bool:
        self.leads.append(lead)
        if self.raises:
            raise RuntimeError("mail server exploded")
        return self.result


class FixedClock:
    def __init__(self, now: datetime | None = None) -> None:
        self._now = now or datetime(2026, 3, 1, 9, 0, tzinfo=UTC)

    def now(self) -> datetime:
        return self._now


@pytest.fixture(autouse=True)
def _set_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set required environment variables for tests so Settings can be instantiated."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-fake-key-for-testing")
    # Keep tests on the in-memory stores and the logging notification sink
    monkeypatch.setenv("SUPABASE_URL", "")
    monkeypatch.setenv("RESEND_API_KEY", "")
    # Disable LangSmith tracing in tests
    monkeypatch.setenv("LANGCHAIN_TRACING_V2", "false")


@pytest.fixture(autouse=True)
def _configure_structlog_for_tests():
    """Configure structlog for tests using a simple, deterministic setup."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(0),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


@pytest.fixture
def client() -> TestClient:
    """FastAPI TestClient wrapping the main application (lifespan not run)."""
    # Clear the lru_cache so settings pick up test env vars
    from realty_chat.config import get_settings

    get_settings.cache_clear()

    from realty_chat.main import app

    return TestClient(app)


@pytest.fixture
def embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def generator() -> FakeGenerationProvider:
    return FakeGenerationProvider()


@pytest.fixture
def notifier() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def sample_properties() -> list[PropertyItem]:
    """Three listings in Doha-area locations."""
    return [
        PropertyItem(
            id="p1",
            title="Marina apartment",
            location="Lusail Marina",
            price=4500,
            bedrooms=2,
            bathrooms=2,
            area_sqm=110,
            description="Bright apartment with bedroom balconies.",
            listing_type="rent",
            category="Apartment",
        ),
        PropertyItem(
            id="p2",
            title="Pearl villa",
            location="The Pearl",
            price=3_200_000,
            bedrooms=5,
            bathrooms=6,
            area_sqm=480,
            description="Waterfront villa.",
            listing_type="sale",
            category="Villa",
            featured=True,
        ),
        PropertyItem(
            id="p3",
            title="Lusail family apartment",
            location="Lusail Fox Hills",
            price=7000,
            bedrooms=3,
            bathrooms=2,
            area_sqm=150,
            available=False,
            description="Large apartment near the tram.",
            listing_type="rent",
            category="Apartment",
        ),
    ]


@pytest.fixture
def intent_definitions() -> list[IntentDefinition]:
    return list(TEST_INTENTS)
