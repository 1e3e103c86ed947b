"""Per-session interaction history."""
from docqa.memory.history import ChatHistory, Interaction

__all__ = ["ChatHistory", "Interaction"]
