"""Tests for session lifecycle and cancellation tokens."""

from __future__ import annotations

import asyncio

import pytest

from tokenrelay.relay.cancellation import (
    CancellationToken,
    SessionLifecycle,
    SessionState,
    uncancel_current_task,
)
from tokenrelay.relay.errors import InvalidTransitionError, RelayError


class TestSessionState:
    def test_terminal_states(self):
        assert SessionState.COMPLETED.is_terminal
        assert SessionState.FAILED.is_terminal
        assert SessionState.CANCELLED.is_terminal

    def test_non_terminal_states(self):
        assert not SessionState.IDLE.is_terminal
        assert not SessionState.STREAMING.is_terminal

    def test_values_are_strings(self):
        assert SessionState.STREAMING == "streaming"


class TestSessionLifecycle:
    def test_starts_idle(self):
        assert SessionLifecycle().state is SessionState.IDLE

    def test_happy_path(self):
        lifecycle = SessionLifecycle()
        lifecycle.start()
        assert lifecycle.is_streaming
        lifecycle.complete()
        assert lifecycle.state is SessionState.COMPLETED

    def test_fail(self):
        lifecycle = SessionLifecycle()
        lifecycle.start()
        lifecycle.fail()
        assert lifecycle.state is SessionState.FAILED

    def test_cannot_complete_from_idle(self):
        with pytest.raises(InvalidTransitionError, match="idle to completed"):
            SessionLifecycle("s1").complete()

    def test_cannot_restart(self):
        lifecycle = SessionLifecycle()
        lifecycle.start()
        lifecycle.complete()
        with pytest.raises(InvalidTransitionError):
            lifecycle.start()

    def test_terminal_is_final(self):
        lifecycle = SessionLifecycle()
        lifecycle.start()
        lifecycle.fail()
        with pytest.raises(InvalidTransitionError):
            lifecycle.complete()

    def test_cancel_while_streaming(self):
        lifecycle = SessionLifecycle()
        lifecycle.start()
        assert lifecycle.cancel() is True
        assert lifecycle.state is SessionState.CANCELLED

    def test_cancel_after_terminal_is_noop(self):
        lifecycle = SessionLifecycle()
        lifecycle.start()
        lifecycle.complete()
        assert lifecycle.cancel() is False
        assert lifecycle.state is SessionState.COMPLETED

    def test_cancel_before_start_is_noop(self):
        lifecycle = SessionLifecycle()
        assert lifecycle.cancel() is False
        assert lifecycle.state is SessionState.IDLE

    def test_error_is_relay_error(self):
        assert issubclass(InvalidTransitionError, RelayError)


class TestCancellationToken:
    @pytest.mark.asyncio()
    async def test_initially_not_cancelled(self):
        assert CancellationToken().cancelled is False

    @pytest.mark.asyncio()
    async def test_cancel_sets_flag(self):
        token = CancellationToken()
        token.cancel()
        token.cancel()
        assert token.cancelled is True

    @pytest.mark.asyncio()
    async def test_tokens_are_independent(self):
        first, second = CancellationToken(), CancellationToken()
        first.cancel()
        assert not second.cancelled


class TestUncancelCurrentTask:
    @pytest.mark.asyncio()
    async def test_clears_pending_cancellation(self):
        async def victim() -> int:
            task = asyncio.current_task()
            task.cancel()
            try:
                await asyncio.sleep(1)
            except asyncio.CancelledError:
                uncancel_current_task()
            return task.cancelling()

        assert await asyncio.ensure_future(victim()) == 0

    @pytest.mark.asyncio()
    async def test_noop_without_cancellation(self):
        uncancel_current_task()
        assert asyncio.current_task().cancelling() == 0
