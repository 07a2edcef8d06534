"""
Unit tests for SDK layer.

Tests OpenAI client wrapper behavior and usage recording.
"""

from unittest.mock import Mock, patch

import pytest

from usage_ledger.sdk.openai_client import RecordingOpenAI


def _mock_response(content="Hi there"):
    message = Mock()
    message.content = content
    choice = Mock()
    choice.message = message

    response = Mock()
    response.id = "chat_123"
    response.usage.prompt_tokens = 100
    response.usage.completion_tokens = 50
    response.usage.total_tokens = 150
    response.choices = [choice]
    return response


class TestRecordingOpenAI:
    """Test RecordingOpenAI client wrapper."""

    @patch('usage_ledger.sdk.openai_client.OpenAI')
    def test_init_success(self, mock_openai_class, repository):
        """Test successful initialization."""
        mock_openai_class.return_value = Mock()

        client = RecordingOpenAI(model="gpt-4", repository=repository, api_key_label="team-a")

        assert client.model == "gpt-4"
        assert client.repository is repository
        assert client.api_key_label == "team-a"
        assert client.source == "sdk"
        assert client.client is mock_openai_class.return_value

    def test_init_with_existing_client(self, repository):
        """A provided client is used as-is."""
        existing = Mock()

        client = RecordingOpenAI(model="gpt-4", repository=repository, client=existing)

        assert client.client is existing

    def test_init_missing_model(self, repository):
        """Test initialization fails with missing model."""
        with pytest.raises(ValueError, match="model is required"):
            RecordingOpenAI(model="", repository=repository, client=Mock())

        with pytest.raises(ValueError, match="model is required"):
            RecordingOpenAI(model=None, repository=repository, client=Mock())

    def test_chat_requires_messages(self, repository):
        """Test chat fails with empty messages."""
        client = RecordingOpenAI(model="gpt-4", repository=repository, client=Mock())

        with pytest.raises(ValueError, match="messages is required"):
            client.chat(messages=[])

    def test_chat_success_records_usage(self, repository):
        """Test successful chat call records a usage record."""
        mock_client = Mock()
        mock_response = _mock_response()
        mock_client.chat.completions.create.return_value = mock_response

        client = RecordingOpenAI(
            model="gpt-4",
            repository=repository,
            api_key_label="team-a",
            source="proxy",
            client=mock_client
        )

        messages = [{"role": "user", "content": "Hello"}]
        response = client.chat(messages=messages)

        mock_client.chat.completions.create.assert_called_once_with(
            model="gpt-4",
            messages=messages,
            temperature=None,
            max_tokens=None
        )
        assert response == mock_response

        records = repository.recent_activity(10, 0)
        assert len(records) == 1

        record = records[0]
        assert record.model == "gpt-4"
        assert record.api_key == "team-a"
        assert record.source == "proxy"
        assert record.input_tokens == 100
        assert record.output_tokens == 50
        assert record.total_tokens == 150
        assert record.is_failure is False
        assert record.prompt_text == "Hello"
        assert record.completion_text == "Hi there"
        assert record.duration_ms >= 0
        assert record.cost_usd == 0.0045  # gpt-4: 100/1M*15 + 50/1M*60

    def test_chat_failure_records_failure(self, repository):
        """Test failed chat call records a failure and re-raises."""
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = RuntimeError("API down")

        client = RecordingOpenAI(model="gpt-4", repository=repository, client=mock_client)

        with pytest.raises(RuntimeError, match="API down"):
            client.chat(messages=[{"role": "user", "content": "Hello"}])

        records = repository.recent_activity(10, 0, "", "failure")
        assert len(records) == 1
        assert records[0].is_failure is True
        assert records[0].total_tokens == 0
        assert records[0].prompt_text == "Hello"

    def test_chat_missing_usage(self, repository):
        """Test response without usage raises and records nothing."""
        mock_client = Mock()
        mock_response = _mock_response()
        mock_response.usage = None
        mock_client.chat.completions.create.return_value = mock_response

        client = RecordingOpenAI(model="gpt-4", repository=repository, client=mock_client)

        with pytest.raises(ValueError, match="missing usage information"):
            client.chat(messages=[{"role": "user", "content": "Hello"}])

        assert repository.global_stats().total_requests == 0

    def test_chat_passes_extra_parameters(self, repository):
        """Test additional OpenAI parameters are forwarded."""
        mock_client = Mock()
        mock_client.chat.completions.create.return_value = _mock_response(content=None)

        client = RecordingOpenAI(model="gpt-4", repository=repository, client=mock_client)
        client.chat(
            messages=[{"role": "user", "content": "Hello"}],
            temperature=0.2,
            max_tokens=64,
            top_p=0.9
        )

        mock_client.chat.completions.create.assert_called_once_with(
            model="gpt-4",
            messages=[{"role": "user", "content": "Hello"}],
            temperature=0.2,
            max_tokens=64,
            top_p=0.9
        )
        assert repository.recent_activity(10, 0)[0].completion_text == ""
