# tests/test_retry.py
#
# Tests for the exponential backoff retry logic in BaseAgent.
# We mock the LLM clients to simulate API errors without making real calls.

import pytest
from types import SimpleNamespace
from unittest.mock import patch, MagicMock

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from anthropic import APIStatusError
from agents.base_agent import BaseAgent, backoff_delay, is_overloaded
from agents.errors import ReasoningServiceTransientError, ReasoningServiceMalformedOutput


def _make_api_error(status_code: int, error_type: str = "overloaded_error") -> APIStatusError:
    """Create an APIStatusError with the given status code and body type."""
    body = {"error": {"type": error_type, "message": error_type}}
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.headers = {}
    mock_response.json.return_value = body
    return APIStatusError(
        message=f"Error code: {status_code}",
        response=mock_response,
        body=body,
    )


def _anthropic_response(text: str):
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])


def _openrouter_response(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


class TestOverloadDetection:
    """Which errors count as "busy, try again"."""

    def test_status_codes(self):
        assert is_overloaded(_make_api_error(529, "api_error"))
        assert is_overloaded(_make_api_error(429, "rate_limit_error"))
        assert not is_overloaded(_make_api_error(400, "invalid_request_error"))

    def test_overloaded_body_type(self):
        assert is_overloaded(_make_api_error(500, "overloaded_error"))

    def test_overloaded_in_message(self):
        assert is_overloaded(Exception("Model is Overloaded right now"))
        assert not is_overloaded(Exception("connection reset"))

    def test_openrouter_statuses(self):
        error = _make_api_error(503, "api_error")
        assert is_overloaded(error, (429, 502, 503, 529))
        assert not is_overloaded(error, (429, 529))


class TestBackoffDelay:
    """Doubling delay, capped, plus up to one second of jitter."""

    @patch('agents.base_agent.random.random', return_value=0.0)
    def test_doubles(self, mock_random):
        assert [backoff_delay(a) for a in (1, 2, 3)] == [2.0, 4.0, 8.0]

    @patch('agents.base_agent.random.random', return_value=0.0)
    def test_capped(self, mock_random):
        assert backoff_delay(6) == 10.0

    @patch('agents.base_agent.random.random', return_value=0.5)
    def test_jitter_added(self, mock_random):
        assert backoff_delay(1) == 2.5


class TestAnthropicRetryLogic:
    """Tests for _call_anthropic retry with exponential backoff."""

    def setup_method(self):
        """Create a fresh BaseAgent for each test."""
        self.agent = BaseAgent()

    @patch('agents.base_agent.anthropic_client')
    def test_success_on_first_try(self, mock_client):
        """API call succeeds immediately, no retries needed."""
        mock_client.messages.create.return_value = _anthropic_response("  hello  ")

        result = self.agent._call_anthropic("prompt", "system")

        assert result == "hello"
        assert mock_client.messages.create.call_count == 1
        assert mock_client.messages.create.call_args.kwargs['system'] == "system"

    @patch('agents.base_agent.time.sleep')
    @patch('agents.base_agent.anthropic_client')
    def test_retry_on_529_then_succeed(self, mock_client, mock_sleep):
        """529 error on first attempt, success on second."""
        mock_client.messages.create.side_effect = [
            _make_api_error(529), _anthropic_response("ok")
        ]

        assert self.agent._call_anthropic("prompt", "system") == "ok"
        assert mock_client.messages.create.call_count == 2
        mock_sleep.assert_called_once()

    @patch('agents.base_agent.random.random', return_value=0.0)
    @patch('agents.base_agent.time.sleep')
    @patch('agents.base_agent.anthropic_client')
    def test_exhausted_retries_raise_transient(self, mock_client, mock_sleep, mock_random):
        """Three overloaded attempts → ReasoningServiceTransientError."""
        mock_client.messages.create.side_effect = _make_api_error(529)

        with pytest.raises(ReasoningServiceTransientError):
            self.agent._call_anthropic("prompt", "system")

        assert mock_client.messages.create.call_count == 3
        # No sleep after the last attempt.
        assert [c.args[0] for c in mock_sleep.call_args_list] == [2.0, 4.0]

    @patch('config.settings.API_MAX_RETRIES', 5)
    @patch('config.settings.API_RETRY_BASE_DELAY', 4.0)
    @patch('agents.base_agent.random.random', return_value=0.0)
    @patch('agents.base_agent.time.sleep')
    @patch('agents.base_agent.anthropic_client')
    def test_delay_never_exceeds_cap(self, mock_client, mock_sleep, mock_random):
        mock_client.messages.create.side_effect = _make_api_error(529)

        with pytest.raises(ReasoningServiceTransientError):
            self.agent._call_anthropic("prompt", "system")

        assert [c.args[0] for c in mock_sleep.call_args_list] == [8.0, 10.0, 10.0, 10.0]

    @patch('agents.base_agent.time.sleep')
    @patch('agents.base_agent.anthropic_client')
    def test_non_retryable_error_raises_immediately(self, mock_client, mock_sleep):
        """A 400 Bad Request should NOT be retried; raise immediately."""
        mock_client.messages.create.side_effect = _make_api_error(400, "invalid_request_error")

        with pytest.raises(APIStatusError):
            self.agent._call_anthropic("prompt", "system")

        assert mock_client.messages.create.call_count == 1
        mock_sleep.assert_not_called()

    @patch('agents.base_agent.time.sleep')
    @patch('agents.base_agent.anthropic_client')
    def test_on_retry_callback(self, mock_client, mock_sleep):
        seen = []
        self.agent.on_retry = lambda attempt, total, delay: seen.append((attempt, total))
        mock_client.messages.create.side_effect = [
            _make_api_error(429), _make_api_error(529), _anthropic_response("ok")
        ]

        self.agent._call_anthropic("prompt", "system")

        assert seen == [(1, 3), (2, 3)]

    @patch('agents.base_agent.anthropic_client')
    def test_no_text_block_is_malformed(self, mock_client):
        mock_client.messages.create.return_value = SimpleNamespace(
            content=[SimpleNamespace(type="tool_use")]
        )

        with pytest.raises(ReasoningServiceMalformedOutput):
            self.agent._call_anthropic("prompt", "system")


class TestOpenRouterRetryLogic:
    """OpenRouter retries the same way, with its own status list."""

    def setup_method(self):
        self.agent = BaseAgent()

    @patch('agents.base_agent.time.sleep')
    @patch('agents.base_agent.openrouter_client')
    def test_retry_on_503_then_succeed(self, mock_client, mock_sleep):
        mock_client.chat.completions.create.side_effect = [
            _make_api_error(503, "api_error"), _openrouter_response(" done ")
        ]

        assert self.agent._call_openrouter("prompt", "system") == "done"
        assert mock_client.chat.completions.create.call_count == 2

    @patch('agents.base_agent.openrouter_client')
    def test_system_prompt_sent_first(self, mock_client):
        mock_client.chat.completions.create.return_value = _openrouter_response("x")

        self.agent._call_openrouter("prompt", "system")

        messages = mock_client.chat.completions.create.call_args.kwargs['messages']
        assert messages[0] == {"role": "system", "content": "system"}
        assert messages[1] == {"role": "user", "content": "prompt"}

    @patch('agents.base_agent.openrouter_client')
    def test_empty_content_is_malformed(self, mock_client):
        mock_client.chat.completions.create.return_value = _openrouter_response(None)

        with pytest.raises(ReasoningServiceMalformedOutput):
            self.agent._call_openrouter("prompt", "system")


class TestProviderFallback:
    """Tests for OpenRouter → Anthropic fallback logic."""

    def setup_method(self):
        self.agent = BaseAgent()
        self.agent.system_prompt = "default system"

    @patch('agents.base_agent.USE_OPENROUTER', True)
    @patch('agents.base_agent.USE_ANTHROPIC', True)
    @patch('agents.base_agent.openrouter_client')
    @patch('agents.base_agent.anthropic_client')
    def test_fallback_on_openrouter_failure(self, mock_anthropic, mock_openrouter):
        """When OpenRouter fails, should fall back to Anthropic."""
        mock_openrouter.chat.completions.create.side_effect = Exception("OpenRouter down")
        mock_anthropic.messages.create.return_value = _anthropic_response("from claude")

        assert self.agent.complete("prompt") == "from claude"
        mock_openrouter.chat.completions.create.assert_called_once()
        mock_anthropic.messages.create.assert_called_once()

    @patch('agents.base_agent.USE_OPENROUTER', True)
    @patch('agents.base_agent.USE_ANTHROPIC', False)
    @patch('agents.base_agent.openrouter_client')
    def test_openrouter_only_failure_propagates(self, mock_openrouter):
        mock_openrouter.chat.completions.create.side_effect = Exception("OpenRouter down")

        with pytest.raises(Exception, match="OpenRouter down"):
            self.agent.complete("prompt")

    @patch('agents.base_agent.USE_OPENROUTER', False)
    @patch('agents.base_agent.USE_ANTHROPIC', True)
    @patch('agents.base_agent.anthropic_client')
    def test_anthropic_only_uses_default_system_prompt(self, mock_anthropic):
        """When only Anthropic is configured, use it directly."""
        mock_anthropic.messages.create.return_value = _anthropic_response("hi")

        assert self.agent.complete("prompt") == "hi"
        assert mock_anthropic.messages.create.call_args.kwargs['system'] == "default system"

    @patch('agents.base_agent.USE_OPENROUTER', False)
    @patch('agents.base_agent.USE_ANTHROPIC', False)
    def test_no_provider_raises(self):
        """When no provider is configured, raise RuntimeError."""
        with pytest.raises(RuntimeError, match="No LLM provider available"):
            self.agent.complete("prompt")
