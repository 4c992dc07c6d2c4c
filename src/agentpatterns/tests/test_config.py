"""Tests for environment-driven settings.

Validates:
- Defaults
- Section-prefixed and nested environment overrides
- Range validation
- Settings cache and its reset
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from agentpatterns.foundation.config import (
    AgentPatternsSettings,
    ConvergenceSettings,
    clear_settings_cache,
    get_settings,
)
from agentpatterns.foundation.testing import ScriptedInvoker
from agentpatterns.models import ResilientInvoker


def test_defaults() -> None:
    settings = AgentPatternsSettings()
    assert settings.convergence.max_iterations == 3
    assert settings.convergence.target_score == 8.0
    assert settings.convergence.sequential_threshold == 7.0
    assert settings.retry.max_retries == 2
    assert settings.tools.max_steps == 5
    assert settings.input.max_length == 10_000
    assert settings.server.wire_format == "text"
    assert settings.model.has_credentials is False


def test_section_prefix_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AGENTPATTERNS_CONVERGENCE_TARGET_SCORE", "9.5")
    monkeypatch.setenv("AGENTPATTERNS_TOOL_MAX_STEPS", "8")
    monkeypatch.setenv("AGENTPATTERNS_LOG_LEVEL", "debug")
    settings = AgentPatternsSettings()
    assert settings.convergence.target_score == 9.5
    assert settings.tools.max_steps == 8
    assert settings.logging.level == "DEBUG"


def test_nested_delimiter_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AGENTPATTERNS_RETRY__MAX_RETRIES", "4")
    assert AgentPatternsSettings().retry.max_retries == 4


def test_api_key_is_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AGENTPATTERNS_MODEL_API_KEY", "sk-test")
    model = AgentPatternsSettings().model
    assert model.has_credentials
    assert "sk-test" not in repr(model)
    assert model.api_key is not None and model.api_key.get_secret_value() == "sk-test"


@pytest.mark.parametrize("kwargs", [{"max_iterations": 0}, {"target_score": 1.0}, {"target_score": 10.5}])
def test_convergence_ranges(kwargs: dict[str, float]) -> None:
    with pytest.raises(ValidationError):
        ConvergenceSettings(**kwargs)


def test_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    first = get_settings()
    assert get_settings() is first
    monkeypatch.setenv("AGENTPATTERNS_DEBUG", "true")
    assert get_settings().debug is False
    clear_settings_cache()
    assert get_settings().debug is True


def test_invoker_from_settings() -> None:
    settings = AgentPatternsSettings()
    invoker = ResilientInvoker.from_settings(ScriptedInvoker(), settings)
    assert invoker.timeout == settings.model.timeout
    assert invoker.policy.max_retries == settings.retry.max_retries
    assert invoker.stream_idle_timeout == settings.model.stream_idle_timeout
