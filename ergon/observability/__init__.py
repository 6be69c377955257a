from __future__ import annotations

from .context import add_error, bind_context, current_errors, set_state, snapshot
from .ids import new_session_id, new_tool_call_id
from .logging import KVLogger, configure_logging, get_logger

__all__ = [
    "KVLogger",
    "add_error",
    "bind_context",
    "configure_logging",
    "current_errors",
    "get_logger",
    "new_session_id",
    "new_tool_call_id",
    "set_state",
    "snapshot",
]
