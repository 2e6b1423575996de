"""Per-project semantic memory on LanceDB."""

from .batch import BatchCoordinator, BatchEntry, BatchQuery, ContextUpdate
from .cache import CacheRegistry, ResultCache
from .config import CONFIG, Config
from .embeddings import EmbeddingGateway, LocalEmbeddingBackend, build_embedding_gateway
from .errors import ErrorCategory, MemoryBankError, StoreUnavailableError, ThirdPartyCallError, ValidationError
from .links import KnowledgeLinkIndex
from .memory_store import MemoryStore
from .preprocess import TextPreprocessor
from .retry import RetryPolicy, categorize_error, with_retry
from .vector_store import VectorStore

__all__ = [
    "CONFIG",
    "BatchCoordinator",
    "BatchEntry",
    "BatchQuery",
    "CacheRegistry",
    "Config",
    "ContextUpdate",
    "EmbeddingGateway",
    "ErrorCategory",
    "KnowledgeLinkIndex",
    "LocalEmbeddingBackend",
    "MemoryBankError",
    "MemoryStore",
    "ResultCache",
    "RetryPolicy",
    "StoreUnavailableError",
    "TextPreprocessor",
    "ThirdPartyCallError",
    "ValidationError",
    "VectorStore",
    "build_embedding_gateway",
    "categorize_error",
    "with_retry",
]
