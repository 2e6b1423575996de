"""Chunk-or-summarize preprocessing for text headed to an embedding call."""

from __future__ import annotations

from .config import CONFIG, Config
from .retry import DEFAULT_POLICY, RetryPolicy
from .summarizer import SUMMARIZATION_PROMPT, Summarizer, summarize_text

_TERMINAL_PUNCTUATION = frozenset(".!?")


class TextPreprocessor:
    """Keeps embedding inputs within the provider's input-size limit.

    Short text passes through. Long text is split into overlapping,
    sentence-aware chunks; if even `max_chunks` chunks cannot cover it, the
    whole text is summarized instead.
    """

    def __init__(
        self,
        summarizer: Summarizer | None = None,
        *,
        max_text_length: int = CONFIG.max_text_length,
        chunk_size: int = CONFIG.chunk_size,
        overlap: int = CONFIG.chunk_overlap,
        break_window: int = CONFIG.break_window,
        max_chunks: int = CONFIG.max_chunks,
        retry_policy: RetryPolicy = DEFAULT_POLICY,
    ) -> None:
        if not 0 <= overlap < chunk_size:
            raise ValueError(f"overlap must be in [0, chunk_size), got {overlap}")
        self.summarizer = summarizer
        self.max_text_length = max_text_length
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.break_window = break_window
        self.max_chunks = max_chunks
        self.retry_policy = retry_policy

    @classmethod
    def from_config(cls, config: Config, summarizer: Summarizer | None = None) -> TextPreprocessor:
        return cls(
            summarizer,
            max_text_length=config.max_text_length,
            chunk_size=config.chunk_size,
            overlap=config.chunk_overlap,
            break_window=config.break_window,
            max_chunks=config.max_chunks,
            retry_policy=RetryPolicy.from_config(config),
        )

    async def preprocess(self, text: str) -> str | list[str]:
        if len(text) <= self.max_text_length:
            return text
        chunks, exhausted = self._split(text)
        if exhausted and chunks:
            return chunks
        return await summarize_text(self.summarizer, text, SUMMARIZATION_PROMPT, self.retry_policy)

    def chunk_text(self, text: str) -> list[str]:
        """Split into at most `max_chunks` chunks (text past the cap is dropped)."""
        return self._split(text)[0]

    def _find_break(self, text: str, start: int, end: int) -> int:
        search_start = max(start, end - self.break_window)
        # Prefer the end of a sentence: terminal punctuation followed by whitespace.
        for i in range(end - 1, search_start - 1, -1):
            if text[i] in _TERMINAL_PUNCTUATION and (i + 1 >= len(text) or text[i + 1].isspace()):
                return i + 1
        for i in range(end - 1, search_start - 1, -1):
            if text[i].isspace():
                return i
        return end

    def _split(self, text: str) -> tuple[list[str], bool]:
        """Returns (chunks, exhausted); exhausted is False if the cap left text over."""
        chunks: list[str] = []
        start = 0
        end = 0
        while start < len(text) and len(chunks) < self.max_chunks:
            end = start + self.chunk_size
            if end < len(text):
                end = self._find_break(text, start, end)
            else:
                end = len(text)
            chunk = text[start:end]
            if chunk.strip():
                chunks.append(chunk)
            if end >= len(text):
                return chunks, True
            start = max(start + 1, end - self.overlap)
        return chunks, end >= len(text)
