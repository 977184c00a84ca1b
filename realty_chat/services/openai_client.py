"""Centralized OpenAI client factory with LangSmith tracing."""

import os

from openai import AsyncOpenAI

from realty_chat.config import get_settings


def get_openai_client(api_key: str | None = None, timeout: float | None = None) -> AsyncOpenAI:
    """
    Create an AsyncOpenAI client, optionally wrapped with LangSmith tracing.

    Uses wrap_openai when LANGCHAIN_TRACING_V2 is enabled (checks env var
    directly since LangSmith itself reads it from the environment).

    Retries are disabled: a failed call surfaces immediately and the
    conversation degrades instead of waiting.

    Args:
        api_key: OpenAI API key. Defaults to settings.openai_api_key.
        timeout: Request timeout in seconds. Defaults to
            settings.openai_config.request_timeout_seconds.

    Returns:
        AsyncOpenAI client (wrapped if tracing is enabled).
    """
    settings = get_settings()
    key = api_key or settings.openai_api_key

    client = AsyncOpenAI(
        api_key=key,
        timeout=timeout if timeout is not None else settings.openai_config.request_timeout_seconds,
        max_retries=0,
    )

    if os.getenv("LANGCHAIN_TRACING_V2", "").lower() == "true":
        from langsmith.wrappers import wrap_openai

        client = wrap_openai(client)

    return client
