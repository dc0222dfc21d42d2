"""
Summarizer Client — extracted text → structured bullet digest

  ┌─────────────────────────────────────────────────────┐
  │  SummarizerClient.summarize(text)                   │
  │       │                                             │
  │       ▼                                             │
  │  len(text) < 50 ?           → InsufficientInputError│
  │       │                                             │
  │       ▼                                             │
  │  truncate to SUMMARY_MAX_INPUT_CHARS (silent)       │
  │       │                                             │
  │       ▼                                             │
  │  [SystemMessage, HumanMessage]                      │
  │       │                                             │
  │       ▼                                             │
  │  ChatOpenAI.ainvoke  (OpenAI-compatible endpoint,   │
  │                       OpenRouter by default)        │
  │       │  bounded by SUMMARY_TIMEOUT_SECONDS         │
  │       ▼                                             │
  │  summary text   |   UpstreamError                   │
  └─────────────────────────────────────────────────────┘

The client is built once per process. Construction fails with
SummarizerNotConfiguredError when AI_API_KEY is missing, so a
misconfigured deployment is caught before any document is touched.
"""

from __future__ import annotations

import asyncio
import logging
import time

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from docsummary.core.config import Settings
from docsummary.core.errors import (
    InsufficientInputError,
    SummarizerNotConfiguredError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

# Below this many characters there is nothing worth summarizing
MIN_SUMMARY_INPUT_CHARS = 50

SUMMARY_SYSTEM_PROMPT = """You are an AI document assistant.
Summarize the document clearly in bullet points.
Include:
• Purpose of the document
• Key points
• Important names, dates, or IDs
• Any actions or conclusions
Keep it concise and easy to understand."""


def build_messages(text: str) -> list[BaseMessage]:
    """Standard [SystemMessage, HumanMessage] pair for one document."""
    return [
        SystemMessage(content=SUMMARY_SYSTEM_PROMPT),
        HumanMessage(content=f"Document Content:\n\n{text}"),
    ]


class SummarizerClient:
    """
    Constructor args:
        settings : application Settings (credential, endpoint, model, limits)
        llm      : optional pre-built chat model (tests inject a mock)
    """

    def __init__(self, settings: Settings, llm: BaseChatModel | None = None) -> None:
        if llm is None and not settings.ai_api_key:
            raise SummarizerNotConfiguredError(
                "AI API Key is NOT configured. Set AI_API_KEY to enable summaries."
            )
        self._model     = settings.llm_model
        self._timeout   = settings.summary_timeout_seconds
        self._max_chars = settings.summary_max_input_chars
        self._llm       = llm or self._build_llm(settings)

    @staticmethod
    def _build_llm(settings: Settings) -> BaseChatModel:
        from langchain_openai import ChatOpenAI
        return ChatOpenAI(
            model=settings.llm_model,
            api_key=settings.ai_api_key,
            base_url=settings.llm_base_url,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            max_retries=0,
            default_headers={
                "HTTP-Referer": settings.site_url,
                "X-Title":      settings.app_name,
            },
        )

    async def summarize(self, text: str) -> str:
        """
        Return the generated summary.

        Raises:
            InsufficientInputError: fewer than 50 characters.
            UpstreamError:          transport/API failure, timeout or empty reply.
        """
        if len(text or "") < MIN_SUMMARY_INPUT_CHARS:
            raise InsufficientInputError("Insufficient text content for summary.")

        truncated = text[: self._max_chars]
        if len(text) > self._max_chars:
            logger.debug("Summarizer | input truncated %d → %d chars", len(text), self._max_chars)

        t0 = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                self._llm.ainvoke(build_messages(truncated)),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise UpstreamError(
                f"Summary request timed out after {self._timeout:.0f}s"
            ) from exc
        except Exception as exc:
            logger.warning("Summarizer | upstream error %s: %s", type(exc).__name__, exc)
            raise UpstreamError(f"Summary request failed: {exc}") from exc

        content = result.content if isinstance(result.content, str) else ""
        summary = content.strip()
        if not summary:
            raise UpstreamError("Summary request returned no content")

        logger.info(
            "Summarizer | model=%s chars_in=%d chars_out=%d latency_ms=%.1f",
            self._model, len(truncated), len(summary), (time.perf_counter() - t0) * 1000,
        )
        return summary
