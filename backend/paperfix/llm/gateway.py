"""
LLM Gateway — single call site for the extraction service

  ┌───────────────────────────────────────────────┐
  │  LLMGateway.complete(messages, temperature)   │
  │       │                                       │
  │       ▼                                       │
  │  model_factory(temperature) → BaseChatModel   │
  │       │                                       │
  │       ▼                                       │
  │  asyncio.wait_for(llm.ainvoke(messages))      │
  │       │                                       │
  │       ▼                                       │
  │  GatewayResponse  (content, latency, sizes)   │
  └───────────────────────────────────────────────┘

Every provider, network, auth or timeout failure leaves this module as
ServiceTransportError. An empty completion is treated the same way: the
caller cannot repair output it never received.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from paperfix.core.config import settings
from paperfix.core.exceptions import ServiceTransportError

logger = logging.getLogger(__name__)

ModelFactory = Callable[[float], BaseChatModel]


# ---------------------------------------------------------------------------
# Token usage estimation (approximate)
# ---------------------------------------------------------------------------

def _estimate_tokens(messages: list[BaseMessage]) -> int:
    """Rough token count: 4 chars ≈ 1 token (OpenAI heuristic). Logging only."""
    total_chars = sum(len(m.content) for m in messages if isinstance(m.content, str))
    return max(1, total_chars // 4)


def build_openai_model(temperature: float) -> BaseChatModel:
    """Default factory: one ChatOpenAI client per call temperature."""
    from langchain_openai import ChatOpenAI

    if not settings.openai_api_key:
        raise ServiceTransportError("OPENAI_API_KEY is not configured")
    return ChatOpenAI(
        model=settings.llm_model,
        api_key=settings.openai_api_key,
        temperature=temperature,
        max_retries=0,   # no automatic retries; the pipeline decides
    )


# ---------------------------------------------------------------------------
# Response dataclass
# ---------------------------------------------------------------------------

@dataclass
class GatewayResponse:
    """The result of a single LLM gateway call."""
    content:       str
    model_used:    str
    input_tokens:  int
    output_tokens: int
    latency_ms:    float
    request_id:    str


# ---------------------------------------------------------------------------
# LLMGateway
# ---------------------------------------------------------------------------

class LLMGateway:
    """
    Thin async wrapper over a LangChain chat model.

    Instantiate once per worker. Tests inject a model_factory returning a
    fake BaseChatModel; production uses build_openai_model.
    """

    def __init__(
        self,
        model_factory: ModelFactory | None = None,
        timeout_seconds: float | None = None,
        model_name: str | None = None,
    ) -> None:
        self._model_factory = model_factory or build_openai_model
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.llm_timeout_seconds
        self._model_name = model_name or settings.llm_model

    async def complete(
        self,
        messages:    list[BaseMessage],
        temperature: float,
    ) -> GatewayResponse:
        """
        Send one chat request and return the raw completion text.

        Raises:
            ServiceTransportError: provider/network/auth failure, timeout,
                or an empty completion.
        """
        llm = self._model_factory(temperature)

        t0 = time.perf_counter()
        try:
            result = await asyncio.wait_for(llm.ainvoke(messages), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("LLMGateway | timed out after %.0fs", self._timeout)
            raise ServiceTransportError(
                f"LLM request timed out after {self._timeout:.0f}s"
            ) from exc
        except Exception as exc:
            logger.warning("LLMGateway | request failed: %s: %s", type(exc).__name__, exc)
            raise ServiceTransportError(
                f"LLM request failed: {type(exc).__name__}: {exc}"
            ) from exc
        latency = (time.perf_counter() - t0) * 1000

        content = result.content if isinstance(result.content, str) else ""
        if not content.strip():
            raise ServiceTransportError("Empty LLM output")

        response = GatewayResponse(
            content       = content,
            model_used    = self._model_name,
            input_tokens  = _estimate_tokens(messages),
            output_tokens = max(1, len(content) // 4),
            latency_ms    = latency,
            request_id    = str(uuid.uuid4()),
        )
        logger.info(
            "LLMGateway | model=%s temperature=%.1f tokens_in=%d tokens_out=%d latency_ms=%.1f",
            response.model_used, temperature,
            response.input_tokens, response.output_tokens, response.latency_ms,
        )
        return response

    # -----------------------------------------------------------------------
    # Convenience: build message list
    # -----------------------------------------------------------------------

    @staticmethod
    def build_messages(system_prompt: str, user_content: str) -> list[BaseMessage]:
        return [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_content),
        ]
