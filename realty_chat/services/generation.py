"""Generation provider contract and its OpenAI chat-completions implementation."""

from typing import Protocol

import structlog
from openai import AsyncOpenAI, OpenAIError

from realty_chat.errors import GenerationUnavailable

logger = structlog.get_logger(__name__)


class GenerationProvider(Protocol):
    """Maps a system prompt plus the user message to natural-language text."""

    async def generate(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Return the generated answer text."""


class OpenAIGenerationProvider:
    """Chat completions with a system + user message pair."""

    def __init__(self, client: AsyncOpenAI, model: str = "gpt-4o-mini") -> None:
        self.client = client
        self.model = model

    async def generate(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_message},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except OpenAIError as exc:
            logger.warning("generation_request_failed", model=self.model, error=str(exc))
            raise GenerationUnavailable(f"chat completion failed: {exc}") from exc

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise GenerationUnavailable("chat completion returned no text")

        logger.debug(
            "generation_completed",
            model=self.model,
            tokens=getattr(response.usage, "total_tokens", None),
        )
        return content
