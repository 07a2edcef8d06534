"""
SDK for Usage Ledger.

Provides client wrappers that record usage for every request.
"""

from .openai_client import RecordingOpenAI

__all__ = ["RecordingOpenAI"]
