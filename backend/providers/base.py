"""Abstract base class for completion clients."""

from abc import ABC, abstractmethod
from typing import List, Dict, Optional, Callable


class CompletionError(Exception):
    """A backend failed to produce a completion."""

    def __init__(self, model: str, message: str):
        super().__init__(f"{model}: {message}")
        self.model = model


class CompletionClient(ABC):
    """Base class for streaming completion backends.

    The council pipeline only needs one capability: ask a model to answer a
    list of role-tagged messages and stream the text back. Implementations
    raise CompletionError on transport failures, HTTP errors, upstream error
    payloads and malformed streams. Retries are the client's concern.
    """

    @abstractmethod
    async def complete(
        self,
        model: str,
        messages: List[Dict[str, str]],
        on_chunk: Optional[Callable[[str], None]] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Stream a completion, calling on_chunk per text fragment.

        Returns the concatenated text.
        """
        ...

    async def aclose(self) -> None:
        """Release pooled connections. Default is a no-op."""
        return None
