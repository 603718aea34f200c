"""Tests for the enable/disable state machine and fail-open helpers."""

from __future__ import annotations

import asyncio

from shadow_git.control import ControlState, EngineState
from shadow_git.safety import best_effort, fail_open


class TestControlState:
    def test_initial_state(self):
        control = ControlState(enabled=True)
        assert control.state == EngineState.UNINITIALIZED
        assert control.enabled

    def test_start(self):
        control = ControlState()
        assert control.start(False) == EngineState.DISABLED
        assert not control.is_enabled()

    def test_side_effect_order(self):
        log = []
        control = ControlState(enabled=True)
        control.on_disabling = lambda: log.append(("disabling", control.enabled))
        control.on_enabled = lambda: log.append(("enabled", control.enabled))

        assert control.disable()
        assert control.enable()
        # disable fires while still enabled; enable fires once enabled
        assert log == [("disabling", True), ("enabled", True)]
        assert control.state == EngineState.ACTIVE

    def test_redundant_transitions_have_no_side_effects(self):
        calls = []
        control = ControlState(enabled=False, on_enabled=lambda: calls.append("on"), on_disabling=lambda: calls.append("off"))
        assert control.disable() is False
        assert control.state == EngineState.DISABLED
        assert control.enable() is True
        assert control.enable() is False
        assert calls == ["on"]


class TestBestEffort:
    def test_success(self):
        async def ok():
            return 42

        outcome = asyncio.run(best_effort(ok))
        assert outcome.ok and outcome.value == 42 and outcome.error is None

    def test_failure_reported(self):
        reported = []

        async def bad():
            raise ValueError("nope")

        outcome = asyncio.run(best_effort(bad, on_error=reported.append))
        assert not outcome.ok
        assert outcome.error == "ValueError: nope"
        assert reported == ["ValueError: nope"]

    def test_failing_reporter_is_contained(self):
        async def bad():
            raise OSError()

        def reporter(detail):
            raise RuntimeError("reporter broke")

        outcome = asyncio.run(best_effort(bad, on_error=reporter))
        assert outcome.error == "OSError"


def test_fail_open_returns_default():
    @fail_open(default="fallback")
    async def handler():
        raise KeyError("x")

    assert asyncio.run(handler()) == "fallback"
