"""Shared fixtures for the agentpatterns test suite."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from agentpatterns.foundation.config import (
    AgentPatternsSettings,
    ModelSettings,
    RetrySettings,
    clear_settings_cache,
)
from agentpatterns.foundation.testing import ScriptedInvoker
from agentpatterns.runtime.agents import PatternExecutor, PatternStrategy
from agentpatterns.runtime.observability import RecordingObserver
from agentpatterns.runtime.tools import ToolInvocationRouter, calculator


@pytest.fixture(autouse=True)
def _fresh_settings() -> None:
    clear_settings_cache()


@pytest.fixture
def settings() -> AgentPatternsSettings:
    """Settings with near-zero backoff so retry tests stay fast."""
    return AgentPatternsSettings(
        model=ModelSettings(timeout=5.0, stream_idle_timeout=5.0),
        retry=RetrySettings(max_retries=2, base_delay=0.001, max_delay=0.01),
    )


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def model() -> ScriptedInvoker:
    return ScriptedInvoker()


@pytest.fixture
def router() -> ToolInvocationRouter:
    r = ToolInvocationRouter(timeout=1.0)
    r.register(calculator())
    return r


@pytest.fixture
def make_executor(
    model: ScriptedInvoker, observer: RecordingObserver, settings: AgentPatternsSettings,
) -> Callable[..., PatternExecutor]:
    def make(strategy: PatternStrategy, **kw: object) -> PatternExecutor:
        return PatternExecutor(strategy, model, observer=observer, settings=settings, **kw)  # type: ignore[arg-type]
    return make
