"""Reasoning-service transport.

Thin wrapper around the OpenAI-compatible chat completions endpoint.  The
loop only depends on ``chat(messages) -> ChatReply``; everything here is
about framing one request and turning every failure mode into a single
``ReasoningServiceError``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from openai import OpenAI

from agent.config import ClientConfig
from agent.sensitive_filter import mask_messages, unmask_text

logger = logging.getLogger(__name__)


class ReasoningServiceError(Exception):
    """The reasoning service could not produce a usable reply."""


@dataclass
class ChatReply:
    content: str
    raw: Dict[str, Any] = field(default_factory=dict)


class ReasoningClient:
    """Chat client bound to one role's key and model.

    Args:
        config: Connection settings (key, model, base URL, timeout).
        sensitive_filter: Mask outbound text / unmask replies.
        client: Pre-built OpenAI client (tests inject a MagicMock here).
    """

    def __init__(self, config: ClientConfig, *, sensitive_filter: bool = True, client: Any = None):
        self.config = config
        self.sensitive_filter = sensitive_filter
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.config.api_key:
                raise ReasoningServiceError("Missing ARK_API_KEY")
            self._client = OpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout,
            )
        return self._client

    def chat(self, messages: List[Dict[str, str]], model: Optional[str] = None) -> ChatReply:
        model = model or self.config.model
        if not model:
            raise ReasoningServiceError("Missing reasoning model id")

        outbound = mask_messages(messages, self.sensitive_filter)
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=outbound,
                response_format={"type": "json_object"},
                temperature=0.2,
                timeout=self.config.timeout,
            )
        except ReasoningServiceError:
            raise
        except Exception as e:
            logger.warning("Reasoning service call failed (%s): %s", model, e)
            raise ReasoningServiceError(str(e)) from e

        try:
            content = response.choices[0].message.content or ""
        except (AttributeError, IndexError, TypeError) as e:
            raise ReasoningServiceError(f"Malformed reasoning service response: {e}") from e

        content = unmask_text(content, self.sensitive_filter)
        raw: Dict[str, Any] = {}
        if hasattr(response, "model_dump"):
            try:
                dumped = response.model_dump()
                raw = dumped if isinstance(dumped, dict) else {}
            except Exception as e:
                logger.debug("Could not dump raw response: %s", e)
        return ChatReply(content=content, raw=raw)

    __call__ = chat


def client_for_role(role: str = "ARK", *, sensitive_filter: bool = True) -> ReasoningClient:
    """Build a client from ``<ROLE>_API_KEY`` / ``<ROLE>_MODEL_ID`` (ARK_* fallback)."""
    return ReasoningClient(ClientConfig.for_role(role), sensitive_filter=sensitive_filter)
