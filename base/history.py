"""
Conversation history provider. The agent only reads turns (get_turns) and appends the finished
exchange (add_turn); persistence beyond the process is left to other ConversationStore implementations.
"""

import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from base.base import ConversationTurn


class ConversationStore(ABC):

    @abstractmethod
    def create(self, conversation_id: str, title: str = "New Chat") -> None:
        pass

    @abstractmethod
    def exists(self, conversation_id: str) -> bool:
        pass

    @abstractmethod
    def get_turns(self, conversation_id: str) -> List[ConversationTurn]:
        pass

    @abstractmethod
    def add_turn(self, conversation_id: str, turn: ConversationTurn) -> None:
        pass

    @abstractmethod
    def set_title(self, conversation_id: str, title: str) -> None:
        pass

    @abstractmethod
    def get_title(self, conversation_id: str) -> Optional[str]:
        pass

    @abstractmethod
    def list_conversations(self) -> List[Dict[str, Any]]:
        """[{id, title, updated_at}], most recently updated first."""
        pass

    @abstractmethod
    def delete(self, conversation_id: str) -> bool:
        pass


class InMemoryConversationStore(ConversationStore):
    """Process-local store. Turns are copied on read so callers cannot mutate stored history."""

    def __init__(self):
        self._lock = threading.Lock()
        self._turns: Dict[str, List[ConversationTurn]] = {}
        self._titles: Dict[str, str] = {}
        self._updated_at: Dict[str, float] = {}

    def create(self, conversation_id: str, title: str = "New Chat") -> None:
        with self._lock:
            self._turns.setdefault(conversation_id, [])
            self._titles.setdefault(conversation_id, title)
            self._updated_at[conversation_id] = time.time()

    def exists(self, conversation_id: str) -> bool:
        with self._lock:
            return conversation_id in self._turns

    def get_turns(self, conversation_id: str) -> List[ConversationTurn]:
        with self._lock:
            return [t.model_copy(deep=True) for t in self._turns.get(conversation_id, [])]

    def add_turn(self, conversation_id: str, turn: ConversationTurn) -> None:
        with self._lock:
            self._turns.setdefault(conversation_id, []).append(turn.model_copy(deep=True))
            self._updated_at[conversation_id] = time.time()

    def set_title(self, conversation_id: str, title: str) -> None:
        with self._lock:
            self._titles[conversation_id] = title
            if conversation_id in self._turns:
                self._updated_at[conversation_id] = time.time()

    def get_title(self, conversation_id: str) -> Optional[str]:
        with self._lock:
            return self._titles.get(conversation_id)

    def list_conversations(self) -> List[Dict[str, Any]]:
        with self._lock:
            items = [
                {"id": cid, "title": self._titles.get(cid), "updated_at": self._updated_at.get(cid, 0.0)}
                for cid in self._turns
            ]
        return sorted(items, key=lambda c: c["updated_at"], reverse=True)

    def delete(self, conversation_id: str) -> bool:
        with self._lock:
            existed = self._turns.pop(conversation_id, None) is not None
            self._titles.pop(conversation_id, None)
            self._updated_at.pop(conversation_id, None)
        return existed
