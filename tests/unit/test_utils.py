"""
Tests for retry, polling and logging utilities.
"""

import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from nl_step_engine.exceptions import PollTimeoutError
from nl_step_engine.utils import RetryConfig, get_logger, poll_until, retry, retry_async, setup_logging
from nl_step_engine.utils.logging import JsonFormatter


class TestRetryAsync:
    """Test retry_async."""

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        """No retry when the call succeeds."""
        func = AsyncMock(return_value="ok")
        result = await retry_async(func, RetryConfig(max_attempts=3, initial_delay_ms=0))
        assert result == "ok"
        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        """Failures are retried and the callback is told."""
        func = AsyncMock(side_effect=[ValueError("a"), "ok"])
        on_retry = MagicMock()
        config = RetryConfig(max_attempts=3, initial_delay_ms=0, on_retry=on_retry)

        assert await retry_async(func, config) == "ok"
        on_retry.assert_called_once()
        assert on_retry.call_args.args[0] == 1

    @pytest.mark.asyncio
    async def test_raises_last_error(self):
        """The final exception propagates."""
        func = AsyncMock(side_effect=ValueError("always"))
        with pytest.raises(ValueError, match="always"):
            await retry_async(func, RetryConfig(max_attempts=2, initial_delay_ms=0))
        assert func.await_count == 2

    @pytest.mark.asyncio
    async def test_only_listed_errors_retry(self):
        """Other exception types are not retried."""
        func = AsyncMock(side_effect=KeyError("x"))
        config = RetryConfig(max_attempts=3, initial_delay_ms=0, retry_on=(ValueError,))
        with pytest.raises(KeyError):
            await retry_async(func, config)
        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_decorator(self):
        """The decorator wraps coroutine functions."""
        calls = []

        @retry(max_attempts=2, initial_delay_ms=0)
        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("first")
            return "done"

        assert await flaky() == "done"
        assert len(calls) == 2


class TestPollUntil:
    """Test poll_until."""

    @pytest.mark.asyncio
    async def test_returns_when_condition_holds(self):
        """Polling stops at the first True."""
        condition = AsyncMock(side_effect=[False, False, True])
        await poll_until(condition, "ready", timeout_ms=1000, poll_interval_ms=1)
        assert condition.await_count == 3

    @pytest.mark.asyncio
    async def test_timeout(self):
        """A condition that never holds raises PollTimeoutError."""
        condition = AsyncMock(return_value=False)
        with pytest.raises(PollTimeoutError) as exc_info:
            await poll_until(condition, "never ready", timeout_ms=20, poll_interval_ms=5)
        assert exc_info.value.timeout_ms == 20
        assert "never ready" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_errors_count_as_not_yet(self):
        """Exceptions from the condition are swallowed until the deadline."""
        condition = AsyncMock(side_effect=[RuntimeError("detached"), True])
        await poll_until(condition, "ready", timeout_ms=1000, poll_interval_ms=1)

    @pytest.mark.asyncio
    async def test_last_error_reported(self):
        """The last condition error is part of the timeout message."""
        condition = AsyncMock(side_effect=RuntimeError("detached"))
        with pytest.raises(PollTimeoutError, match="detached"):
            await poll_until(condition, "ready", timeout_ms=10, poll_interval_ms=5)

    @pytest.mark.asyncio
    async def test_zero_timeout_evaluates_once(self):
        """A zero deadline still checks once."""
        condition = AsyncMock(return_value=True)
        await poll_until(condition, "ready", timeout_ms=0)
        assert condition.await_count == 1


class TestLogging:
    """Test logging setup."""

    def test_setup_logging_level(self):
        """Root level follows the argument."""
        setup_logging(level="DEBUG")
        assert logging.getLogger().level == logging.DEBUG
        setup_logging(level="WARNING")
        assert logging.getLogger().level == logging.WARNING

    def test_log_file(self, tmp_path):
        """A file handler is added when a path is given."""
        log_file = tmp_path / "engine.log"
        setup_logging(level="INFO", log_file=str(log_file), json_format=True)

        handlers = logging.getLogger().handlers
        assert any(isinstance(h, logging.FileHandler) for h in handlers)
        for handler in handlers:
            if isinstance(handler, logging.FileHandler):
                handler.close()
        setup_logging(level="WARNING")

    def test_json_formatter(self):
        """Records render as JSON objects."""
        record = logging.LogRecord("nl_step_engine.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        payload = json.loads(JsonFormatter().format(record))
        assert payload["message"] == "hello world"
        assert payload["level"] == "INFO"
        assert payload["name"] == "nl_step_engine.test"

    def test_get_logger(self):
        """get_logger returns a named logger."""
        assert get_logger("nl_step_engine.x").name == "nl_step_engine.x"
