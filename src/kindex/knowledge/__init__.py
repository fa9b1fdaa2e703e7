"""kindex knowledge façade — embedding orchestration and background triggers."""

from kindex.knowledge.service import EmbedOptions, EmbedResult, KnowledgeService
from kindex.knowledge.trigger import EmbeddingTriggerService

__all__ = [
    "EmbedOptions",
    "EmbedResult",
    "EmbeddingTriggerService",
    "KnowledgeService",
]
