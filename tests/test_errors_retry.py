"""Tests for error classification and transient retries."""

import asyncio
from unittest.mock import patch

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from visibility_scoring.core.errors import (
    BackendChainError,
    BackendError,
    BackendResponseError,
    ConfigurationError,
    PermanentItemError,
    TransientError,
    is_backend_semantic,
    is_timeout_message,
    is_transient,
)
from visibility_scoring.core.retry import calculate_backoff, retry_async, transient_retry


class TestClassification:
    @pytest.mark.parametrize(
        "exc",
        [
            TransientError("down"),
            httpx.ReadTimeout("slow"),
            httpx.ConnectError("refused"),
            asyncio.TimeoutError(),
            ConnectionResetError("reset"),
            OperationalError("UPDATE ...", {}, Exception("database is locked")),
        ],
    )
    def test_transient(self, exc):
        assert is_transient(exc) is True

    @pytest.mark.parametrize(
        "exc",
        [
            PermanentItemError("no brand"),
            ConfigurationError("no backend"),
            BackendError("unauthorized", status_code=401),
            BackendResponseError("bad json"),
            ValueError("bug"),
            OperationalError("SELECT ...", {}, Exception("no such table: brands")),
        ],
    )
    def test_not_transient(self, exc):
        assert is_transient(exc) is False

    def test_semantic(self):
        assert is_backend_semantic(BackendResponseError("empty"))
        assert not is_backend_semantic(TransientError("down"))
        assert is_backend_semantic(
            BackendChainError([("a", BackendResponseError("x")), ("b", BackendResponseError("y"))])
        )
        assert not is_backend_semantic(BackendChainError([("a", BackendResponseError("x")), ("b", TransientError("y"))]))

    def test_empty_chain(self):
        chain = BackendChainError([])
        assert "no backends configured" in str(chain)
        assert not is_transient(chain)
        assert not is_backend_semantic(chain)

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("openrouter: Timeout after 120s", True),
            ("Request TIMED OUT", True),
            ("operation aborted by client", True),
            ("connection refused", False),
            ("", False),
            (None, False),
        ],
    )
    def test_timeout_message(self, message, expected):
        assert is_timeout_message(message) is expected


class TestBackoff:
    def test_grows_exponentially(self):
        with patch("visibility_scoring.core.retry.random.uniform", return_value=0.0):
            assert [calculate_backoff(a, 1.0) for a in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped(self):
        assert calculate_backoff(10, 1.0, max_delay=30.0) == 30.0

    def test_jitter_bounded(self):
        for _ in range(20):
            assert 2.0 <= calculate_backoff(1, 1.0) <= 2.5


class TestRetryAsync:
    async def test_retries_transient_then_succeeds(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise TransientError("down")
            return "ok"

        assert await retry_async(flaky, max_attempts=3, base_delay=0) == "ok"
        assert len(calls) == 3

    async def test_gives_up_after_max_attempts(self):
        calls = []

        async def down():
            calls.append(1)
            raise TransientError("down")

        with pytest.raises(TransientError):
            await retry_async(down, max_attempts=2, base_delay=0)
        assert len(calls) == 2

    async def test_permanent_errors_not_retried(self):
        calls = []

        async def broken():
            calls.append(1)
            raise PermanentItemError("no brand")

        with pytest.raises(PermanentItemError):
            await retry_async(broken, max_attempts=5, base_delay=0)
        assert len(calls) == 1

    async def test_method_decorator_uses_instance_policy(self):
        class Repo:
            retry_attempts = 4
            retry_base_delay = 0

            def __init__(self):
                self.calls = 0

            @transient_retry
            async def load(self, value):
                self.calls += 1
                if self.calls < 4:
                    raise httpx.ConnectError("refused")
                return value

        repo = Repo()
        assert await repo.load("x") == "x"
        assert repo.calls == 4
