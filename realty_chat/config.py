"""
Application configuration using pydantic-settings.
Loads environment variables from .env file.

Nested config groups are env-overridable via the double-underscore
delimiter, e.g.:
    OPENAI_CONFIG__CHAT_MODEL=gpt-4o
    INTENTS__LEAD_THRESHOLD=0.85
    RETRIEVAL__TOP_K=8
"""

from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OpenAIConfig(BaseModel):
    """OpenAI models and client limits."""

    embedding_model: str = "text-embedding-3-small"
    chat_model: str = "gpt-4o-mini"
    request_timeout_seconds: float = 30.0


class IntentConfig(BaseModel):
    """Intent routing thresholds.

    Env-overridable via INTENTS__KEY format, e.g.:
        INTENTS__LEAD_THRESHOLD=0.85
        INTENTS__HIGH_INTENT_LABELS='["contact", "viewing"]'
    """

    # Labels that open the lead capture flow
    high_intent_labels: list[str] = ["contact", "viewing", "interested"]
    lead_threshold: float = 0.8
    property_search_labels: list[str] = ["property_search"]
    property_search_threshold: float = 0.7


class RetrievalConfig(BaseModel):
    """Grounding selection parameters."""

    top_k: int = 5
    merge_cap: int = 10
    # Score given to exact directory matches (they carry no similarity)
    structured_score: float = 0.9
    # Semantic matches must score strictly above this to ground an answer
    min_similarity: float = 0.0
    merge_semantic_properties: bool = True


class ConversationConfig(BaseModel):
    """History windows and generation limits."""

    history_limit: int = 10
    prompt_history_turns: int = 6
    lead_context_turns: int = 5
    max_tokens: int = 500
    temperature: float = 0.0


class NotificationConfig(BaseModel):
    """Lead notification e-mail (Resend) settings."""

    resend_url: str = "https://api.resend.com/emails"
    request_timeout_seconds: float = 10.0


class SupabaseTablesConfig(BaseModel):
    """Table and RPC names in the Supabase project."""

    leads: str = "leads"
    chat_history: str = "chat_history"
    properties: str = "properties"
    documents: str = "documents"
    match_rpc: str = "match_documents"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # API Keys
    openai_api_key: str
    resend_api_key: str = ""

    # Supabase
    supabase_url: str = ""
    supabase_secret_key: str = ""

    # Lead notifications
    lead_notification_to: str = ""
    lead_notification_from: str = "onboarding@resend.dev"

    # LangSmith / Observability
    langsmith_api_key: str = ""
    langsmith_project: str = "realty-chat"
    langchain_tracing_v2: bool = False  # Explicit opt-in

    # App Settings
    debug: bool = False
    cors_origins: list[str] = ["*"]

    # Nested config groups (env-overridable via SECTION__KEY format)
    openai_config: OpenAIConfig = Field(default_factory=OpenAIConfig)
    intents: IntentConfig = Field(default_factory=IntentConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)
    notification: NotificationConfig = Field(default_factory=NotificationConfig)
    tables: SupabaseTablesConfig = Field(default_factory=SupabaseTablesConfig)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
