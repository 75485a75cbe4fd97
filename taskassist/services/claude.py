"""
Claude API wrapper for Anthropic's Claude models.
Provides the synchronous chat call used by the LLM fallback.
"""
import logging
import time
from enum import Enum
from typing import Optional

from anthropic import Anthropic

from taskassist.core.config import settings

logger = logging.getLogger(__name__)


class ClaudeModel(str, Enum):
    """Available Claude models."""
    HAIKU = "claude-haiku-4-5-20251001"
    SONNET = "claude-sonnet-4-5-20250929"


class ClaudeService:
    """
    Wrapper for Anthropic's Claude API.

    Only the synchronous chat interface is needed: the assistant engine is
    synchronous per call and consults the model as a last resort.
    """

    def __init__(self, api_key: Optional[str] = None, client: Optional[Anthropic] = None):
        """
        Initialize the Claude service.

        Args:
            api_key: Anthropic API key. Uses settings if not provided.
            client: Pre-built Anthropic client (tests inject a mock here).
        """
        self.api_key = api_key or settings.anthropic_api_key
        if client is None and not self.api_key:
            raise ValueError("Anthropic API key is required")

        self.client = client or Anthropic(api_key=self.api_key)
        logger.info("[CLAUDE] Service initialized")

    def chat(
        self,
        model: ClaudeModel | str,
        messages: list[dict],
        system: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.2,
        request_type: str = "chat",
    ) -> str:
        """
        Send a chat request and get a response (synchronous).

        Args:
            model: Claude model to use
            messages: List of message dicts with 'role' and 'content'
            system: Optional system prompt
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature (0-1)
            request_type: Label used in logs (answer, plan)

        Returns:
            The assistant's response text
        """
        model_id = model.value if isinstance(model, ClaudeModel) else model
        logger.info(f"[CLAUDE] Chat request - model={model_id}, messages={len(messages)}, type={request_type}")

        start_time = time.time()
        kwargs = {
            "model": model_id,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system

        try:
            response = self.client.messages.create(**kwargs)
        except Exception as e:
            logger.error(f"[CLAUDE] Chat error: {e}")
            raise

        content = response.content[0].text
        latency_ms = int((time.time() - start_time) * 1000)
        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.info(
                f"[CLAUDE] Response received - tokens: input={usage.input_tokens}, "
                f"output={usage.output_tokens}, latency={latency_ms}ms"
            )
        return content

