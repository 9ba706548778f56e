"""Shared utilities for the council pipeline: progress reporting, history helpers."""

import asyncio
import inspect
import logging
import string
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from .models import CouncilStage

logger = logging.getLogger(__name__)

RESPONSE_LABELS = string.ascii_uppercase

ProgressCallback = Callable[[str, str, int], Union[None, Awaitable[None]]]
ChunkCallback = Callable[[str], None]

_HISTORY_ROLES = ("user", "assistant", "system")


# ============== Progress Reporting ==============

class ProgressReporter:
    """Serializes progress callbacks coming from concurrent model tasks.

    The callback may be a plain function or a coroutine function. A failing
    callback is logged and never fails the model task that reported.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback
        self._lock = asyncio.Lock()

    async def report(self, stage: CouncilStage, model: str, progress: int) -> None:
        if self._callback is None:
            return
        async with self._lock:
            try:
                result = self._callback(stage.value, model, progress)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Progress callback failed for %s/%s", stage.value, model)


# ============== Conversation History ==============

def build_history_messages(
    conversation_history: Optional[Sequence[Dict[str, Any]]],
    limit: Optional[int] = None,
) -> List[Dict[str, str]]:
    """Keep well-formed turns as plain role/content messages.

    With a limit, only the most recent `limit` turns are kept.
    """
    if not conversation_history or (limit is not None and limit <= 0):
        return []
    messages = []
    for msg in conversation_history:
        role = str(msg.get("role", "")).lower()
        content = msg.get("content")
        if role in _HISTORY_ROLES and isinstance(content, str) and content.strip():
            messages.append({"role": role, "content": content})
    if limit is None:
        return messages
    return messages[-limit:]


def format_history_context(
    conversation_history: Optional[Sequence[Dict[str, Any]]],
    limit: int,
    max_chars: int = 500,
) -> str:
    """Render recent turns as a prompt section, or "" when there are none."""
    history_lines = []
    for msg in build_history_messages(conversation_history, limit):
        if msg["role"] == "system":
            continue
        speaker = "User" if msg["role"] == "user" else "Assistant"
        history_lines.append(f"{speaker}: {msg['content'][:max_chars]}")
    if not history_lines:
        return ""
    return "PRIOR CONVERSATION CONTEXT:\n" + "\n\n".join(history_lines) + "\n\n"
