"""In-memory chat history for question-answering sessions.

History lives for the lifetime of the process and is never persisted. Each
session keeps only its most recent interactions; the oldest are evicted
first.

Known limitation: when two queries for the same session run concurrently,
their interactions are recorded in completion order, not submission order.
"""
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional

import structlog

from docqa import config
from docqa.rag.records import utc_now_iso

logger = structlog.get_logger()

ALL_SESSIONS = "all"


@dataclass
class Interaction:
    """One query/response exchange."""

    query: str
    response: str
    context_sources: List[Dict[str, Any]] = field(default_factory=list)
    timestamp: str = field(default_factory=utc_now_iso)

    @property
    def has_context(self) -> bool:
        return len(self.context_sources) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "query": self.query,
            "response": self.response,
            "contextSources": list(self.context_sources),
            "hasContext": self.has_context,
        }


class ChatHistory:
    """Bounded per-session interaction history."""

    def __init__(self, max_interactions: int = None):
        """Initialize the history.

        Args:
            max_interactions: Interactions retained per session (default from config)
        """
        self.max_interactions = max_interactions or config.MAX_HISTORY
        self._sessions: Dict[str, Deque[Interaction]] = {}

    def add(
        self,
        session_id: str,
        query: str,
        response: str,
        context_sources: Optional[List[Dict[str, Any]]] = None,
    ) -> Interaction:
        """Record an interaction, evicting the oldest beyond the limit."""
        interaction = Interaction(
            query=query,
            response=response,
            context_sources=list(context_sources or []),
        )

        history = self._sessions.get(session_id)
        if history is None:
            history = deque(maxlen=self.max_interactions)
            self._sessions[session_id] = history
        history.append(interaction)

        logger.debug(
            "interaction_recorded",
            session_id=session_id,
            history_size=len(history),
            has_context=interaction.has_context,
        )
        return interaction

    def get(self, session_id: str, limit: Optional[int] = None) -> List[Interaction]:
        """Most recent interactions of a session, oldest first.

        Args:
            session_id: The session to read
            limit: Maximum number of interactions; all retained ones when None
        """
        history = list(self._sessions.get(session_id, ()))
        if limit is None:
            return history
        if limit <= 0:
            return []
        return history[-limit:]

    def clear(self, session_id: str) -> None:
        """Forget a session, or every session when given ``"all"``."""
        if session_id == ALL_SESSIONS:
            self._sessions.clear()
        else:
            self._sessions.pop(session_id, None)
        logger.info("chat_history_cleared", session_id=session_id)

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    @property
    def total_interactions(self) -> int:
        return sum(len(history) for history in self._sessions.values())
