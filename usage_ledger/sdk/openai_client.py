"""
Recording OpenAI client wrapper.

Records one usage record per chat completion without modifying behavior.
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from openai import OpenAI

from ..storage.models import UsageRecord
from ..storage.repository import UsageRepository


class RecordingOpenAI:
    """OpenAI client wrapper that appends usage records to the ledger.

    Successful calls are recorded with their token usage and text.
    Failed calls are recorded as failures and the error is re-raised.
    """

    def __init__(
        self,
        model: str,
        repository: UsageRepository,
        api_key_label: str = "",
        source: str = "sdk",
        client: Optional[OpenAI] = None
    ):
        """Initialize recording OpenAI client.

        Args:
            model: OpenAI model name (required)
            repository: Repository that receives usage records
            api_key_label: Identifier of the caller's key, stored as api_key
            source: Where the request came from
            client: Existing OpenAI client; a new one is created if omitted

        Raises:
            ValueError: If model is missing/empty
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")

        self.model = model
        self.repository = repository
        self.api_key_label = api_key_label
        self.source = source
        self.client = client or OpenAI()

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs: Any
    ) -> Any:
        """Create chat completion with usage recording.

        Args:
            messages: List of message dictionaries (required)
            temperature: Sampling temperature (optional)
            max_tokens: Maximum tokens to generate (optional)
            **kwargs: Additional OpenAI parameters

        Returns:
            OpenAI chat completion response, unchanged

        Raises:
            ValueError: If messages is empty
            OpenAI API errors: Propagated after the failure is recorded
        """
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        prompt_text = "\n".join(str(m.get("content", "")) for m in messages)
        started = time.monotonic()

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs
            )
        except Exception:
            self.repository.append(UsageRecord(
                timestamp=datetime.now(timezone.utc),
                model=self.model,
                api_key=self.api_key_label,
                source=self.source,
                is_failure=True,
                duration_ms=self._elapsed_ms(started),
                prompt_text=prompt_text,
            ))
            raise

        usage = response.usage
        if not usage:
            raise ValueError("OpenAI response missing usage information")

        completion_text = ""
        if response.choices:
            completion_text = response.choices[0].message.content or ""

        self.repository.append(UsageRecord(
            timestamp=datetime.now(timezone.utc),
            model=self.model,
            api_key=self.api_key_label,
            source=self.source,
            input_tokens=usage.prompt_tokens,
            output_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
            duration_ms=self._elapsed_ms(started),
            prompt_text=prompt_text,
            completion_text=completion_text,
        ))

        return response

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
