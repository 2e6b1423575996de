"""Text-completion providers used to condense oversized or multi-hit text."""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING, Protocol

import requests

from .config import CONFIG, Config
from .errors import ThirdPartyCallError
from .retry import DEFAULT_POLICY, RetryPolicy, with_retry

if TYPE_CHECKING:
    from google.genai import Client as GenAIClient

SUMMARIZATION_PROMPT = """You are an expert at creating concise, meaningful summaries for memory storage.

Summarize the given text while preserving all key information, context, and semantic meaning.
The summary should be suitable for vector embedding and semantic search.

Guidelines:
- Keep the summary under 1000 characters
- Preserve technical details, names, and important facts
- Maintain the original intent and context
- Use clear, concise language"""

DIGEST_PROMPT = "Summarize the following content concisely:"


class Summarizer(Protocol):
    """Completion capability: {system prompt, user text} -> generated text."""

    name: str

    async def complete(self, system_prompt: str, text: str) -> str: ...


class GoogleSummarizer:
    """Google GenAI `generate_content` with a system instruction."""

    name = "google"

    def __init__(self, config: Config = CONFIG, client: GenAIClient | None = None) -> None:
        if client is None:
            if not config.google_api_key:
                raise ValueError("GOOGLE_API_KEY not found. Set GOOGLE_API_KEY or GEMINI_API_KEY.")
            from google import genai

            client = genai.Client(api_key=config.google_api_key)
        self.client = client
        self.model = config.summarizer_model

    async def complete(self, system_prompt: str, text: str) -> str:
        from google.genai import types

        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=text,
            config=types.GenerateContentConfig(system_instruction=system_prompt, temperature=0.2),
        )
        summary = (response.text or "").strip()
        if not summary:
            raise ThirdPartyCallError("Empty response from Google GenAI")
        return summary


class OllamaSummarizer:
    """Local model server `/api/generate`."""

    name = "ollama"

    def __init__(self, config: Config = CONFIG) -> None:
        self.base_url = config.ollama_base_url.rstrip("/")
        self.model = config.summarizer_model
        self.timeout = config.request_timeout * 2

    def _generate(self, system_prompt: str, text: str) -> str:
        try:
            response = requests.post(
                f"{self.base_url}/api/generate",
                json={"model": self.model, "system": system_prompt, "prompt": text, "stream": False},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except (requests.Timeout, requests.ConnectionError) as e:
            raise ThirdPartyCallError(f"Ollama network timeout or connection failure: {e}") from e
        except requests.HTTPError as e:
            raise ThirdPartyCallError(f"Ollama request failed: {e}") from e
        summary = (response.json().get("response") or "").strip()
        if not summary:
            raise ThirdPartyCallError("Empty response from Ollama")
        return summary

    async def complete(self, system_prompt: str, text: str) -> str:
        return await asyncio.to_thread(self._generate, system_prompt, text)


def build_summarizer(config: Config = CONFIG) -> Summarizer | None:
    """Pick the configured completion provider; None disables summarization."""
    provider = config.summarizer_provider.lower()
    if provider in ("", "none"):
        return None
    if provider == "google":
        return GoogleSummarizer(config)
    if provider == "ollama":
        return OllamaSummarizer(config)
    raise ValueError(f"Unknown summarizer provider '{config.summarizer_provider}'. Valid: none, ollama, google")


async def summarize_text(
    summarizer: Summarizer | None,
    text: str,
    prompt: str = DIGEST_PROMPT,
    policy: RetryPolicy = DEFAULT_POLICY,
) -> str:
    """Summarize `text`, returning it unchanged when no summary can be produced."""
    if not text or summarizer is None:
        return text
    try:
        summary = await with_retry(
            lambda: summarizer.complete(prompt, text),
            policy,
            label=f"{summarizer.name} summarization",
        )
    except Exception as e:
        print(
            f"[memory-bank] {summarizer.name} summarization failed, keeping original text "
            f"({len(text)} chars): {e}",
            file=sys.stderr,
        )
        return text
    print(f"[memory-bank] Summarized {len(text)} -> {len(summary)} chars", file=sys.stderr)
    return summary
