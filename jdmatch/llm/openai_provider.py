"""OpenAI inference client."""

import os
from typing import Optional

import openai
from openai import OpenAI

from .provider_base import FailureKind, InferenceClient, InferenceError


class OpenAIInferenceClient(InferenceClient):
    """Chat-completions client that sends the prompt as a single user message.

    Throttling (``openai.RateLimitError``) is surfaced as a rate-limited
    ``InferenceError`` so the resilient invoker can back off and retry.
    """

    def __init__(self, api_key: Optional[str] = None, model: str = "gpt-4o-mini", timeout: int = 60):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key. If None, reads from OPENAI_API_KEY env var.
            model: OpenAI model to use.
            timeout: Per-request deadline in seconds.
        """
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError("OpenAI API key required. Set OPENAI_API_KEY env var or pass api_key parameter.")

        self.model = model
        # SDK-level retries are disabled; backoff is owned by ResilientInvoker
        self.client = OpenAI(api_key=self.api_key, timeout=timeout, max_retries=0)

    def complete(self, prompt: str, max_tokens: int = 4000) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.1,  # Low temperature for consistent extraction
                max_tokens=max_tokens,
            )
        except openai.RateLimitError as e:
            raise InferenceError(str(e), kind=FailureKind.RATE_LIMITED, provider="openai") from e
        except openai.OpenAIError as e:
            raise InferenceError(str(e), kind=FailureKind.OTHER, provider="openai") from e

        content = response.choices[0].message.content
        return content or ""

    def get_model_name(self) -> str:
        return self.model
