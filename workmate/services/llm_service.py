"""
LLM Service - language model wrappers used by the response generator

Provides:
- A provider-neutral ``LanguageModel`` interface:
  ``complete(system_prompt, messages, max_tokens) -> str``
- OpenAI chat completions implementation (default)
- Anthropic messages implementation
- Mapping of provider errors onto GenerationError / RateLimitError

No retries here: single-shot paths surface the failure
to the caller, and bulk paths retry through the batch orchestrator.
"""

import logging
from typing import List, Dict, Optional

import anthropic
import openai
from openai import AsyncOpenAI

from workmate.config import Settings, settings as default_settings
from workmate.errors import GenerationError, RateLimitError

logger = logging.getLogger(__name__)

ChatMessages = List[Dict[str, str]]

# Roles accepted in the ordered message list
ALLOWED_ROLES = {"system", "user", "assistant"}


class LanguageModel:
    """Interface for the external language model collaborator."""

    async def complete(
        self,
        system_prompt: str,
        messages: ChatMessages,
        max_tokens: int,
    ) -> str:
        raise NotImplementedError


def _validate_messages(messages: ChatMessages) -> None:
    for message in messages:
        if message.get("role") not in ALLOWED_ROLES:
            raise GenerationError(f"Unsupported message role: {message.get('role')!r}")


class OpenAILanguageModel(LanguageModel):
    """
    OpenAI chat completions.

    The client is created on first use so that the service can start without
    an API key configured (e.g. in tests that inject a fake model).
    """

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings
        self.model = self.config.chat_model
        self.temperature = self.config.temperature
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.config.openai_api_key,
                base_url=self.config.openai_base_url,
            )
        return self._client

    async def complete(
        self,
        system_prompt: str,
        messages: ChatMessages,
        max_tokens: int,
    ) -> str:
        _validate_messages(messages)
        chat_messages = [{"role": "system", "content": system_prompt}, *messages]

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=chat_messages,
                temperature=self.temperature,
                max_tokens=max_tokens,
            )
        except openai.RateLimitError as e:
            logger.warning(f"OpenAI rate limited: {e}")
            raise RateLimitError(f"Rate limited by language model: {e}", status=429) from e
        except openai.APIStatusError as e:
            logger.error(f"OpenAI API error {e.status_code}: {e}")
            raise GenerationError(f"Language model error {e.status_code}: {e}", status=e.status_code) from e
        except openai.OpenAIError as e:
            logger.error(f"OpenAI error: {e}")
            raise GenerationError(f"Language model error: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise GenerationError("Language model returned an empty response")
        return content.strip()


class AnthropicLanguageModel(LanguageModel):
    """Anthropic messages API. The system prompt travels as the ``system`` field."""

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings
        self.model = self.config.anthropic_model
        self.temperature = self.config.temperature
        self._client: Optional[anthropic.AsyncAnthropic] = None

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            if not self.config.anthropic_api_key:
                logger.warning("ANTHROPIC_API_KEY not set, AnthropicLanguageModel calls will fail")
            self._client = anthropic.AsyncAnthropic(api_key=self.config.anthropic_api_key or "missing")
        return self._client

    async def complete(
        self,
        system_prompt: str,
        messages: ChatMessages,
        max_tokens: int,
    ) -> str:
        _validate_messages(messages)

        # Anthropic has no "system" turns inside the list; fold them into the system prompt
        system_parts = [system_prompt]
        turns = []
        for message in messages:
            if message["role"] == "system":
                system_parts.append(message["content"])
            else:
                turns.append({"role": message["role"], "content": message["content"]})

        try:
            response = await self.client.messages.create(
                model=self.model,
                system="\n\n".join(system_parts),
                messages=turns,
                temperature=self.temperature,
                max_tokens=max_tokens,
            )
        except anthropic.RateLimitError as e:
            logger.warning(f"Anthropic rate limited: {e}")
            raise RateLimitError(f"Rate limited by language model: {e}", status=429) from e
        except anthropic.APIStatusError as e:
            logger.error(f"Anthropic API error {e.status_code}: {e}")
            raise GenerationError(f"Language model error {e.status_code}: {e}", status=e.status_code) from e
        except anthropic.AnthropicError as e:
            logger.error(f"Anthropic error: {e}")
            raise GenerationError(f"Language model error: {e}") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        if not text.strip():
            raise GenerationError("Language model returned an empty response")
        return text.strip()


def build_language_model(config: Optional[Settings] = None) -> LanguageModel:
    """Construct the language model configured by ``llm_provider``."""
    config = config or default_settings
    provider = config.llm_provider.lower()
    if provider == "openai":
        return OpenAILanguageModel(config)
    if provider == "anthropic":
        return AnthropicLanguageModel(config)
    raise ValueError(f"Unknown llm_provider: {config.llm_provider}")
