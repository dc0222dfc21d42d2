"""
LLM Package

Summarization over an OpenAI-compatible chat endpoint (OpenRouter by
default) through langchain-openai.

Public API::

    from docsummary.llm import SummarizerClient

    client = SummarizerClient(settings)
    summary = await client.summarize(text)
"""

from docsummary.llm.summarizer import SUMMARY_SYSTEM_PROMPT, SummarizerClient

__all__ = [
    "SUMMARY_SYSTEM_PROMPT",
    "SummarizerClient",
]
