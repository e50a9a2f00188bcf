"""
Layered configuration for ledgerbot.

Sources, later ones winning::

    built-in defaults
    ledgerbot.yaml (plus an optional named profile from its ``profiles:`` table)
    LEDGERBOT_* environment variables
    command-line flags
    overrides set on a live config object

Example file::

    llm:
      provider: deepseek
      api_key_env: DEEPSEEK_API_KEY
    agent:
      max_iterations: 20
    tools:
      disabled: [delete_flow]
    profiles:
      local:
        llm: {provider: custom, api_base: "http://localhost:1234/v1"}
"""

from __future__ import annotations

import os
import typing
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml


@dataclass
class LLMProviderConfig:
    provider: str = "openai"  # openai | deepseek | custom
    model: str = ""  # empty: the provider default
    api_base: str = ""
    api_key_env: str = "OPENAI_API_KEY"
    max_tokens: int = 1000
    temperature: float = 0.7
    timeout_seconds: int = 120
    max_retries: int = 2


@dataclass
class AgentConfig:
    max_iterations: int = 100
    history_limit: int = 100
    history_window: int = 20


@dataclass
class ToolsConfig:
    demo: bool = True
    disabled: list[str] = field(default_factory=list)


@dataclass
class PluginsConfig:
    """Entry-point tool loading (group ``ledgerbot.tools``)."""

    enabled: bool = False
    allow_distributions: list[str] = field(default_factory=list)
    allow_tools: list[str] = field(default_factory=list)


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    file: str = ""


_SECTIONS: dict[str, type] = {
    "llm": LLMProviderConfig,
    "agent": AgentConfig,
    "tools": ToolsConfig,
    "plugins": PluginsConfig,
    "logging": LoggingConfig,
}


@dataclass
class LedgerbotConfig:
    llm: LLMProviderConfig = field(default_factory=LLMProviderConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    plugins: PluginsConfig = field(default_factory=PluginsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    _overrides: dict[str, Any] = field(default_factory=dict, repr=False)

    def set_override(self, dotpath: str, value: Any) -> None:
        """Change one setting on this object, e.g. ``set_override("llm.model", "gpt-4o")``."""
        _set_dotted(self, dotpath, value)
        self._overrides[dotpath] = value

    def get_override(self, dotpath: str) -> Any | None:
        return self._overrides.get(dotpath)

    def to_dict(self) -> dict:
        data = asdict(self)
        del data["_overrides"]
        return data


def _set_dotted(target: Any, dotpath: str, value: Any) -> None:
    *parents, leaf = dotpath.split(".")
    for name in parents:
        target = getattr(target, name)
    if leaf not in {f.name for f in fields(target)}:
        raise AttributeError(f"Unknown config key: {dotpath}")
    setattr(target, leaf, value)


def _merged(base: dict, update: dict) -> dict:
    out = dict(base)
    for key, value in update.items():
        current = out.get(key)
        out[key] = _merged(current, value) if isinstance(current, dict) and isinstance(value, dict) else value
    return out


def _from_env(text: str, annotation: Any) -> Any:
    """Parse an environment string according to the field's annotation."""
    origin = typing.get_origin(annotation) or annotation
    if origin is bool:
        return text.strip().lower() in {"1", "true", "yes", "on"}
    if origin is int:
        return int(text)
    if origin is float:
        return float(text)
    if origin is list:
        return [item.strip() for item in text.split(",") if item.strip()]
    return text


def _section(cls: type, values: dict | None) -> Any:
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in (values or {}).items() if k in known})


# Environment variable -> dotted config key.
ENV_VARS: dict[str, str] = {
    "LEDGERBOT_LLM_PROVIDER": "llm.provider",
    "LEDGERBOT_LLM_MODEL": "llm.model",
    "LEDGERBOT_LLM_API_BASE": "llm.api_base",
    "LEDGERBOT_LLM_API_KEY_ENV": "llm.api_key_env",
    "LEDGERBOT_LLM_MAX_TOKENS": "llm.max_tokens",
    "LEDGERBOT_LLM_TEMPERATURE": "llm.temperature",
    "LEDGERBOT_LLM_TIMEOUT": "llm.timeout_seconds",
    "LEDGERBOT_LLM_MAX_RETRIES": "llm.max_retries",
    "LEDGERBOT_AGENT_MAX_ITER": "agent.max_iterations",
    "LEDGERBOT_AGENT_HISTORY_LIMIT": "agent.history_limit",
    "LEDGERBOT_AGENT_HISTORY_WIN": "agent.history_window",
    "LEDGERBOT_TOOLS_DEMO": "tools.demo",
    "LEDGERBOT_TOOLS_DISABLED": "tools.disabled",
    "LEDGERBOT_PLUGINS_ENABLED": "plugins.enabled",
    "LEDGERBOT_LOG_LEVEL": "logging.level",
    "LEDGERBOT_LOG_FILE": "logging.file",
}


def _annotation(dotpath: str) -> Any:
    section, key = dotpath.split(".")
    hints = typing.get_type_hints(_SECTIONS[section])
    return hints[key]


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> LedgerbotConfig:
    """
    Resolve the effective configuration.

    A missing *config_path* is not an error; defaults apply.  *profile*
    names an entry of the file's ``profiles:`` table merged over the rest of
    the file.  *cli_overrides* maps dotted keys to values; ``None`` values
    mean "flag not given" and are skipped.
    """
    data: dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path).expanduser()
        if path.is_file():
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}

    profiles = data.get("profiles") or {}
    if profile and profiles.get(profile):
        data = _merged(data, profiles[profile])

    cfg = LedgerbotConfig(
        **{name: _section(cls, data.get(name)) for name, cls in _SECTIONS.items()},
        profiles=profiles,
    )

    for var, dotpath in ENV_VARS.items():
        if var in os.environ:
            _set_dotted(cfg, dotpath, _from_env(os.environ[var], _annotation(dotpath)))

    for dotpath, value in (cli_overrides or {}).items():
        if value is not None:
            _set_dotted(cfg, dotpath, value)

    return cfg
