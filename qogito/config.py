"""Configuration management for Qogito."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.qogito/config.yaml").expanduser()
LOCAL_CONFIG_FILENAME = "qogito.yaml"

DEFAULT_SYSTEM_PROMPT = (
    "You are Qogito, an agentic coding assistant working inside the user's "
    "workspace. You help with understanding and editing code in it.\n"
    "Always call list_tools as your very first action before doing anything "
    "else. Check the returned list carefully to confirm you have the tools "
    "needed to fulfill the request. If the request requires file editing and "
    "no file editing tools (write_file, str_replace) are available, state "
    "clearly that you cannot proceed rather than attempting a workaround. If "
    "the tools needed are not available you can stop processing the request "
    "after stating why."
)


class ServerConfig(BaseModel):
    """Inference server connection settings."""

    agentic_url: str = ""
    completion_url: str = ""
    allow_self_signed: bool = False
    timeout: float = 120.0


class AgentConfig(BaseModel):
    """Conversation behaviour."""

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    mode: Literal["passive", "active"] = "passive"
    allow_run_command: bool = True
    compaction_threshold: float = 0.95


class ShellToolConfig(BaseModel):
    """Shell tool configuration."""

    timeout: float = 30.0
    max_output_bytes: int = 10 * 1024 * 1024


class ToolsConfig(BaseModel):
    """Tools configuration."""

    max_read_chars: int = 8000
    max_search_results: int = 50
    skip_dirs: list[str] = ["node_modules"]
    shell: ShellToolConfig = Field(default_factory=ShellToolConfig)


class WorkspaceConfig(BaseModel):
    """Workspace root configuration."""

    path: str = ""


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    format: str = "console"


class Config(BaseSettings):
    """Main configuration for Qogito."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="QOGITO_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls) -> "Config":
        """Load configuration; environment variables are applied by BaseSettings."""
        return cls.from_yaml()

    def save(self, path: Path | str | None = None) -> Path:
        """Save configuration to YAML file."""
        config_path = Path(path).expanduser() if path else self.resolve_default_config_path()

        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        return config_path

    def resolved_workspace_path(self, runtime_base: Path | str | None = None) -> Path | None:
        """Resolve workspace path, anchoring relative paths to runtime base/cwd.

        Returns None when the configured path points to a missing directory.
        """
        anchor = Path(runtime_base).expanduser().resolve() if runtime_base is not None else Path.cwd().resolve()
        raw = Path(self.workspace.path).expanduser() if self.workspace.path else anchor
        resolved = raw.resolve() if raw.is_absolute() else (anchor / raw).resolve()
        if not resolved.is_dir():
            return None
        return resolved


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
