"""Abstract base for completion-service backends."""

from abc import ABC, abstractmethod

from quorum.models import CompletionRequest, CompletionResponse


class ServiceError(Exception):
    """Raised when a completion call fails (transport, auth, upstream rejection, timeout)."""

    def __init__(self, backend: str, message: str) -> None:
        self.backend = backend
        super().__init__(f"[{backend}] {message}")


class CompletionClient(ABC):
    """One request in, one response out. Implementations must tolerate concurrent calls."""

    @abstractmethod
    def name(self) -> str:
        """Return the short backend name (e.g. 'gemini', 'openai')."""
        ...

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Issue a single completion request.

        Args:
            request: Fully built, immutable request.

        Returns:
            CompletionResponse, possibly with zero content parts.

        Raises:
            ServiceError: On API failure, timeout, or malformed upstream payload.
        """
        ...
