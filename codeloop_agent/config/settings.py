"""
Configuration loader — YAML files + environment variable overrides.

Priority (highest to lowest):
  1. Environment variables (CODELOOP_PROVIDER, CODELOOP_MODEL, ...)
  2. Explicit config file (``--config``)
  3. Project config: <cwd>/.codeloop/config.yaml
  4. User config: ~/.config/codeloop/config.yaml
  5. Packaged default_config.yaml

``AGENT.MD`` in the working directory becomes the developer instructions
when none are configured.  Credentials are read from the environment once,
here, and carried on the Config object.
"""

from __future__ import annotations
import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from ..core.approval import ApprovalPolicy
from ..core.errors import ConfigError
from ..core.hook_system import HookConfig
from ..core.mcp_client import MCPServerConfig

logger = logging.getLogger(__name__)

APP_NAME = "codeloop"
CONFIG_FILE_NAME = "config.yaml"
PROJECT_DIR_NAME = ".codeloop"
AGENT_MD_FILE = "AGENT.MD"

SUPPORTED_PROVIDERS = ("openai", "gemini", "groq", "anthropic")

# provider -> environment variables checked for its key, in order
API_KEY_ENV = {
    "openai": ("OPENAI_API_KEY", "API_KEY"),
    "gemini": ("GEMINI_API_KEY", "API_KEY"),
    "groq": ("GROQ_API_KEY", "API_KEY"),
    "anthropic": ("ANTHROPIC_API_KEY", "API_KEY"),
}


def get_config_dir() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(Path.home(), ".config")
    return Path(base) / APP_NAME


def get_data_dir() -> Path:
    override = os.environ.get("CODELOOP_DATA_DIR")
    if override:
        return Path(override)
    base = os.environ.get("XDG_DATA_HOME") or os.path.join(Path.home(), ".local", "share")
    return Path(base) / APP_NAME


# ── Config objects ────────────────────────────────────────────

@dataclass
class ModelConfig:
    name: str = "gemini-2.5-flash-lite"
    temperature: float = 1.0
    context_window: int = 256_000


@dataclass
class ShellEnvironmentPolicy:
    ignore_default_excludes: bool = False
    exclude_patterns: list[str] = field(default_factory=lambda: ["*KEY*", "*TOKEN*", "*SECRET*"])
    set_vars: dict[str, str] = field(default_factory=dict)


@dataclass
class Config:
    """Resolved configuration for one agent process."""
    provider: str = "gemini"
    model: ModelConfig = field(default_factory=ModelConfig)
    cwd: str = field(default_factory=os.getcwd)
    shell_environment: ShellEnvironmentPolicy = field(default_factory=ShellEnvironmentPolicy)
    hooks_enabled: bool = False
    hooks: list[HookConfig] = field(default_factory=list)
    approval: ApprovalPolicy = ApprovalPolicy.ON_REQUEST
    max_turns: int = 100
    mcp_servers: dict[str, MCPServerConfig] = field(default_factory=dict)
    allowed_tools: Optional[list[str]] = None
    developer_instructions: Optional[str] = None
    user_instructions: Optional[str] = None
    autoplan: bool = False
    debug: bool = False
    data_dir: str = field(default_factory=lambda: str(get_data_dir()))
    api_key: Optional[str] = None
    base_url: Optional[str] = None

    @property
    def model_name(self) -> str:
        return self.model.name

    def copy(self, **overrides: Any) -> "Config":
        """Deep copy with field overrides (used for sub-agents)."""
        clone = copy.deepcopy(self)
        for key, value in overrides.items():
            setattr(clone, key, value)
        return clone

    def validate(self) -> list[str]:
        errors = []
        if self.provider not in SUPPORTED_PROVIDERS:
            errors.append(f"Unsupported provider: {self.provider}")
        elif not self.api_key:
            env_names = " or ".join(API_KEY_ENV[self.provider])
            errors.append(f"No API key found for {self.provider}. Set {env_names}")
        if not self.cwd or not os.path.isabs(self.cwd):
            errors.append(f"Working directory is not valid: {self.cwd}")
        elif not os.path.isdir(self.cwd):
            errors.append(f"Working directory does not exist: {self.cwd}")
        if self.max_turns < 1:
            errors.append(f"max_turns must be at least 1, got {self.max_turns}")
        return errors

    def __repr__(self) -> str:
        """Mask API key in repr to prevent accidental logging."""
        masked = "***" if self.api_key else None
        return (
            f"Config(provider={self.provider!r}, model={self.model.name!r}, "
            f"cwd={self.cwd!r}, approval={self.approval.value!r}, api_key={masked!r})"
        )


# ── Loading ───────────────────────────────────────────────────

def _read_yaml(path: Path) -> dict:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}", str(path)) from e
    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping", str(path))
    return data


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay dict into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _resolve_api_key(provider: str) -> Optional[str]:
    for env_name in API_KEY_ENV.get(provider, ("API_KEY",)):
        value = os.getenv(env_name)
        if value:
            return value
    return None


def config_from_dict(data: dict, cwd: str) -> Config:
    """Build a Config from a merged raw mapping; raises ConfigError on bad values."""
    model_data = data.get("model") or {}
    shell_data = data.get("shell_environment") or {}

    try:
        approval = ApprovalPolicy(data.get("approval", ApprovalPolicy.ON_REQUEST.value))
    except ValueError:
        raise ConfigError(f"Unknown approval policy: {data.get('approval')!r}")

    try:
        hooks = [HookConfig.from_dict(h) for h in data.get("hooks") or []]
    except (KeyError, ValueError) as e:
        raise ConfigError(f"Invalid hook definition: {e}")

    mcp_servers = {}
    for name, server in (data.get("mcp_servers") or {}).items():
        server_config = MCPServerConfig.from_dict(name, server or {}, cwd)
        try:
            server_config.validate()
        except ValueError as e:
            raise ConfigError(f"MCP server '{name}': {e}")
        mcp_servers[name] = server_config

    provider = str(data.get("provider", "gemini"))
    defaults = ShellEnvironmentPolicy()
    return Config(
        provider=provider,
        model=ModelConfig(
            name=str(model_data.get("name", ModelConfig.name)),
            temperature=float(model_data.get("temperature", ModelConfig.temperature)),
            context_window=int(model_data.get("context_window", ModelConfig.context_window)),
        ),
        cwd=os.path.abspath(data.get("cwd") or cwd),
        shell_environment=ShellEnvironmentPolicy(
            ignore_default_excludes=bool(shell_data.get("ignore_default_excludes", False)),
            exclude_patterns=list(shell_data.get("exclude_patterns") or defaults.exclude_patterns),
            set_vars={str(k): str(v) for k, v in (shell_data.get("set_vars") or {}).items()},
        ),
        hooks_enabled=bool(data.get("hooks_enabled", False)),
        hooks=hooks,
        approval=approval,
        max_turns=int(data.get("max_turns", 100)),
        mcp_servers=mcp_servers,
        allowed_tools=data.get("allowed_tools") or None,
        developer_instructions=data.get("developer_instructions"),
        user_instructions=data.get("user_instructions"),
        autoplan=bool(data.get("autoplan", False)),
        debug=bool(data.get("debug", False)),
        data_dir=str(data.get("data_dir") or get_data_dir()),
        api_key=data.get("api_key") or _resolve_api_key(provider),
        base_url=data.get("base_url") or os.getenv("BASE_URL"),
    )


def load_config(
    cwd: Optional[str] = None,
    config_path: Optional[str] = None,
    overrides: Optional[dict] = None,
) -> Config:
    """Load, merge and resolve configuration for *cwd*.

    *overrides* (already-parsed command line values) win over everything else.
    """
    resolved_cwd = os.path.abspath(cwd or os.getcwd())

    data = _read_yaml(Path(__file__).parent / "default_config.yaml")

    user_path = get_config_dir() / CONFIG_FILE_NAME
    project_path = Path(resolved_cwd) / PROJECT_DIR_NAME / CONFIG_FILE_NAME
    for path in (user_path, project_path):
        if path.exists():
            try:
                data = _deep_merge(data, _read_yaml(path))
            except ConfigError as e:
                logger.warning(f"Skipping invalid config: {e}")

    if config_path:
        if not Path(config_path).exists():
            raise ConfigError("Config file not found", config_path)
        data = _deep_merge(data, _read_yaml(Path(config_path)))

    # Apply environment variable overrides
    env_mappings = {
        "CODELOOP_PROVIDER": ("provider", str),
        "CODELOOP_MODEL": ("model.name", str),
        "CODELOOP_APPROVAL": ("approval", str),
        "CODELOOP_MAX_TURNS": ("max_turns", int),
    }
    for env_key, (config_key, cast) in env_mappings.items():
        env_val = os.getenv(env_key)
        if env_val is None:
            continue
        try:
            value = cast(env_val)
        except ValueError:
            raise ConfigError(f"{env_key} has an invalid value: {env_val!r}")
        target = data
        *parents, leaf = config_key.split(".")
        for key in parents:
            target = target.setdefault(key, {})
        target[leaf] = value

    if overrides:
        data = _deep_merge(data, overrides)

    if not data.get("developer_instructions"):
        agent_md = Path(resolved_cwd) / AGENT_MD_FILE
        if agent_md.exists():
            data["developer_instructions"] = agent_md.read_text(encoding="utf-8")

    return config_from_dict(data, resolved_cwd)
