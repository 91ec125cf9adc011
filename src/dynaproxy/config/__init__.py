"""Process configuration for dynaproxy."""

from dynaproxy.config.settings import (
    InferenceConfig,
    LoggingConfig,
    RoutesConfig,
    ServerConfig,
    Settings,
    UpstreamConfig,
    load_settings,
)

__all__ = [
    "InferenceConfig",
    "LoggingConfig",
    "RoutesConfig",
    "ServerConfig",
    "Settings",
    "UpstreamConfig",
    "load_settings",
]
