"""Base inference client interface for tag extraction and scoring."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional


class FailureKind(Enum):
    """How an inference failure should be treated by callers."""
    RATE_LIMITED = "rate_limited"
    OTHER = "other"


class InferenceError(Exception):
    """Raised by an InferenceClient when a completion could not be produced.

    ``kind`` tells the retry layer whether the failure is transient
    (throttling) or permanent.
    """

    def __init__(self, message: str, kind: FailureKind = FailureKind.OTHER, provider: Optional[str] = None):
        self.kind = kind
        self.provider = provider
        super().__init__(message)

    @property
    def is_rate_limited(self) -> bool:
        return self.kind is FailureKind.RATE_LIMITED

    def __str__(self):
        base = super().__str__()
        if self.provider:
            return f"[{self.provider}:{self.kind.value}] {base}"
        return f"[{self.kind.value}] {base}"


class InferenceClient(ABC):
    """Abstract text-completion service.

    Implementations translate their SDK's throttling errors into
    ``InferenceError(kind=FailureKind.RATE_LIMITED)`` and everything else into
    ``FailureKind.OTHER``.
    """

    @abstractmethod
    def complete(self, prompt: str, max_tokens: int = 4000) -> str:
        """Return the model's text response for a single user prompt."""
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        """Return the model identifier."""
        pass
