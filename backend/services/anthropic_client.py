"""
Anthropic completion client.

Sends one system + user prompt pair to the Anthropic Messages API and
returns the text of the reply. Annotation generation needs the whole
answer before it can build a node, so there is no streaming here.
"""

from __future__ import annotations

import logging
from typing import Any

import anthropic

logger = logging.getLogger(__name__)


class AnthropicClient:
    """Single-shot completions from the Anthropic Messages API."""

    def __init__(self, api_key: str, model: str, max_tokens: int = 1024):
        """
        Initialize Anthropic client.

        Args:
            api_key: Anthropic API key
            model: Model identifier used when a call doesn't name one
            max_tokens: Default completion budget
        """
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens
        self._last_usage: dict[str, int] | None = None

    async def complete(
        self,
        system: str,
        prompt: str,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """
        Ask for one completion.

        Args:
            system: System prompt
            prompt: User message
            model: Model identifier (defaults to the client's model)
            max_tokens: Maximum tokens to generate
            temperature: Optional sampling temperature

        Returns:
            The concatenated text blocks of the reply.

        Raises:
            anthropic.APIError on transport or API failures.
        """
        kwargs: dict[str, Any] = {
            "model": model or self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "system": system,
            "messages": [{"role": "user", "content": prompt}],
        }
        if temperature is not None:
            kwargs["temperature"] = temperature

        message = await self.client.messages.create(**kwargs)

        usage = getattr(message, "usage", None)
        if usage is not None:
            self._last_usage = {
                "input_tokens": usage.input_tokens,
                "output_tokens": usage.output_tokens,
            }
            logger.debug("anthropic_client: usage %s", self._last_usage)

        return "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        )

    def get_usage_stats(self) -> dict[str, int] | None:
        """Token usage of the most recent call, if the API reported it."""
        return self._last_usage

    async def close(self) -> None:
        await self.client.close()
