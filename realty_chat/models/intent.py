"""Intent classification models."""

from pydantic import BaseModel, ConfigDict, Field

UNKNOWN_INTENT = "unknown"


class IntentDefinition(BaseModel):
    """A labelled group of example phrasings for one intent."""

    intent: str = Field(description="Intent label, e.g. 'contact'")
    examples: list[str] = Field(default_factory=list, description="Example user messages")


class IntentExample(BaseModel):
    """One embedded example phrasing. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    intent: str
    example_text: str
    embedding: tuple[float, ...]


class IntentMatch(BaseModel):
    """Best-scoring intent for a message."""

    model_config = ConfigDict(frozen=True)

    intent: str = Field(description="Matched intent label or 'unknown'")
    score: float = Field(ge=-1.0, le=1.0, description="Cosine similarity of the best example")

    @classmethod
    def unknown(cls) -> "IntentMatch":
        """Sentinel match used when no examples are available."""
        return cls(intent=UNKNOWN_INTENT, score=-1.0)

    def qualifies(self, labels: list[str] | set[str], threshold: float) -> bool:
        """True when the intent is one of `labels` and scores above `threshold`."""
        return self.intent in labels and self.score > threshold
