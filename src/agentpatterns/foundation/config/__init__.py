"""Configuration via pydantic-settings."""

from .settings import (
    AgentPatternsSettings,
    ConvergenceSettings,
    InputSettings,
    LoggingSettings,
    ModelSettings,
    OrchestratorSettings,
    RetrySettings,
    ServerSettings,
    ToolSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "AgentPatternsSettings", "ModelSettings", "RetrySettings", "ConvergenceSettings",
    "ToolSettings", "InputSettings", "OrchestratorSettings", "LoggingSettings", "ServerSettings",
    "get_settings", "clear_settings_cache",
]
