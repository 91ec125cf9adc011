"""
Proxy Settings
==============

Typed process configuration read once at start-up from an optional YAML file
and ``DYNAPROXY_*`` environment variables. Nothing here changes while the
proxy is serving requests.
"""

from typing import Literal, Optional
from pathlib import Path
from importlib import metadata
from pydantic import BaseModel, Field, ValidationError, field_validator, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict
import yaml


def _installed_version() -> str:
    try:
        return metadata.version("dynaproxy")
    except metadata.PackageNotFoundError:
        return "0.0.0-dev"


_PLACEHOLDER_MARKERS = ("changeme", "change-me", "your_", "your-", "placeholder")


def _looks_like_placeholder(value: str) -> bool:
    lowered = value.lower()
    return any(marker in lowered for marker in _PLACEHOLDER_MARKERS)


class ServerConfig(BaseModel):
    """Inbound HTTP listener"""
    host: str = Field("0.0.0.0", description="Bind address")
    port: int = Field(3000, ge=1, le=65535, description="Listen port")
    status_path: str = Field("/proxy-status", description="Reserved path serving the status snapshot")
    name: str = Field("dynaproxy", description="Engine identity reported by the status endpoint")

    @field_validator('status_path')
    @classmethod
    def status_path_is_absolute(cls, v: str) -> str:
        if not v.startswith('/'):
            raise ValueError("status_path must start with '/'")
        return v.rstrip('/') or '/'

    model_config = ConfigDict(extra='allow')


class RoutesConfig(BaseModel):
    """Route table source"""
    config_path: Path = Field(Path("nginclaude-proxy.conf"), description="nginx-style route config file")
    probe_backends_on_start: bool = Field(True, description="Check backend reachability at start-up")
    probe_timeout_seconds: float = Field(1.0, gt=0, le=60, description="Per-backend probe timeout")

    model_config = ConfigDict(extra='allow')


class InferenceConfig(BaseModel):
    """Inference service used to pick routing targets"""
    provider: Literal["anthropic", "ollama", "static", "disabled"] = Field(
        "anthropic", description="Inference backend"
    )
    model: Optional[str] = Field(None, description="Model name (backend default when unset)")
    api_key: Optional[str] = Field(None, description="API key (Anthropic falls back to ANTHROPIC_API_KEY)")
    base_url: Optional[str] = Field(None, description="Inference service endpoint override")
    timeout_seconds: float = Field(30.0, gt=0, le=600, description="Bounded inference request timeout")
    max_tokens: int = Field(1024, ge=16, le=8192, description="Maximum tokens in the model reply")
    static_response: str = Field("", description="Reply returned by the static provider")

    @field_validator('api_key')
    @classmethod
    def api_key_is_real(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and _looks_like_placeholder(v):
            raise ValueError(
                "inference api_key is still a placeholder; "
                "set a real key or unset it to use ANTHROPIC_API_KEY"
            )
        return v

    model_config = ConfigDict(extra='allow')


class UpstreamConfig(BaseModel):
    """Forwarding client timeouts"""
    connect_timeout_seconds: float = Field(10.0, gt=0, le=300, description="Upstream connect timeout")
    timeout_seconds: float = Field(300.0, gt=0, le=3600, description="Upstream read/write timeout")

    model_config = ConfigDict(extra='allow')


class LoggingConfig(BaseModel):
    """Log output"""
    level: str = Field("INFO", description="DEBUG, INFO, WARNING, ERROR or CRITICAL")
    format: Literal["json", "text"] = Field("json", description="json lines or plain text")

    @field_validator('level')
    @classmethod
    def level_is_known(cls, v: str) -> str:
        level = v.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f"unknown log level {v!r}")
        return level

    model_config = ConfigDict(extra='allow')


class Settings(BaseSettings):
    """
    Top-level settings.

    Precedence: explicit YAML values, then ``DYNAPROXY_*`` environment
    variables, then defaults. Nested fields use a double underscore:

      DYNAPROXY_SERVER__PORT=8080
      DYNAPROXY_ROUTES__CONFIG_PATH=/etc/dynaproxy/proxy.conf
      DYNAPROXY_INFERENCE__PROVIDER=ollama
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    routes: RoutesConfig = Field(default_factory=RoutesConfig)
    inference: InferenceConfig = Field(default_factory=InferenceConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    version: str = Field(default_factory=_installed_version, description="Installed package version")

    model_config = SettingsConfigDict(
        env_prefix='DYNAPROXY_',
        env_nested_delimiter='__',
        extra='allow',
        validate_assignment=True,
    )

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> "Settings":
        """
        Build settings from a YAML document; an empty file means defaults.

        Raises:
            FileNotFoundError: If ``config_path`` does not exist
            ValidationError: If a value is out of range or of the wrong type
        """
        path = Path(config_path)
        if not path.is_file():
            raise FileNotFoundError(f"Settings file not found: {path}")
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return cls(**data)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls()


def load_settings(config_path: Optional[str | Path] = None) -> Settings:
    """
    Load settings from ``config_path`` (YAML) or from the environment alone.

    Raises:
        FileNotFoundError: If ``config_path`` is given but missing
        ValueError: With one line per invalid field
    """
    try:
        return Settings.from_yaml(config_path) if config_path else Settings.from_env()
    except ValidationError as e:
        problems = "\n".join(
            f"  - {'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValueError(f"Configuration validation failed:\n{problems}") from e


__all__ = [
    'Settings',
    'ServerConfig',
    'RoutesConfig',
    'InferenceConfig',
    'UpstreamConfig',
    'LoggingConfig',
    'load_settings',
]
