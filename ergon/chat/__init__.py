from __future__ import annotations

from .orchestrator import NO_RESPONSE_TEXT, ChatOrchestrator, TurnOutput
from .session import ChatSession

__all__ = ["ChatOrchestrator", "ChatSession", "NO_RESPONSE_TEXT", "TurnOutput"]
