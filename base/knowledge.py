"""
Knowledge-base collaborator. The context builder lists its documents in the system prompt and the
search_documents tool queries it. No concrete RAG backend ships; plug one in by subclassing.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from base.base import KnowledgeDocument


class KnowledgeBase(ABC):

    @abstractmethod
    async def list_documents(self) -> List[KnowledgeDocument]:
        pass

    @abstractmethod
    async def search(self, query: str, limit: int = 5) -> List[Dict[str, Any]]:
        """Return up to limit chunks: [{document, text, score}]."""
        pass
