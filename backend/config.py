"""
Configuration: centralized settings for the entire backend.

Values come from an optional profile.yaml (path in DOCK_PROFILE_PATH) and are
then overridden by DOCK_* environment variables. Everything else reads
settings through get_settings(); nothing calls os.environ directly.

Usage:
    from config import get_settings
    settings = get_settings()
    print(settings.model.default_model)
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent
_DEFAULT_PROFILE_PATH = PROJECT_ROOT / "profile.yaml"

DEFAULT_SYSTEM_PROMPT = (
    "You are Dock, a concise assistant. Use the available tools when they help "
    "answer the user, and say plainly when a tool fails."
)


# ── Dataclasses ──

@dataclass
class ModelConfig:
    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    default_model: str = "gpt-4o-mini"
    summary_model: str = "gpt-4o-mini"
    timeout_seconds: float = 60.0
    temperature: float = 0.7
    max_tokens: int = 1024

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass
class ContextConfig:
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_context_chars: int = 12000
    max_tail_messages: int = 12
    max_tool_loops: int = 4
    summary_fallback_chars: int = 1200


@dataclass
class ShellConfig:
    timeout_seconds: float = 10.0
    max_output_chars: int = 8000
    cwd: Optional[str] = None  # defaults to the data dir


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 3000
    data_dir: str = str(PROJECT_ROOT / "data")
    public_dir: str = str(PROJECT_ROOT / "public")
    max_body_bytes: int = 64 * 1024
    tool_server_timeout: float = 15.0
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ])


@dataclass
class Settings:
    model: ModelConfig = field(default_factory=ModelConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    shell: ShellConfig = field(default_factory=ShellConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @property
    def data_path(self) -> Path:
        return Path(self.server.data_dir)

    @property
    def shell_cwd(self) -> Path:
        return Path(self.shell.cwd) if self.shell.cwd else self.data_path


# ── Parsing ──

def _parse_dict(data: dict, cls):
    """Create a dataclass instance from a dict, ignoring unknown keys."""
    field_names = {f.name for f in dataclasses.fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in field_names})


def _settings_from_dict(raw: dict) -> Settings:
    settings = Settings()
    for section, cls in (("model", ModelConfig), ("context", ContextConfig),
                         ("shell", ShellConfig), ("server", ServerConfig)):
        if isinstance(raw.get(section), dict):
            setattr(settings, section, _parse_dict(raw[section], cls))
    return settings


def _env_str(name: str, default: str) -> str:
    value = os.environ.get(name)
    return value if value else default


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("%s is not a valid integer, using default: %s", name, default)
        return default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("%s is not a valid number, using default: %s", name, default)
        return default


def _apply_env(settings: Settings) -> Settings:
    """Overlay DOCK_* environment variables on top of profile values."""
    m = settings.model
    m.api_key = os.environ.get("DOCK_MODEL_API_KEY") or os.environ.get("OPENAI_API_KEY") or m.api_key
    m.base_url = _env_str("DOCK_MODEL_BASE_URL", m.base_url).rstrip("/")
    m.default_model = _env_str("DOCK_MODEL", m.default_model)
    m.summary_model = _env_str("DOCK_SUMMARY_MODEL", m.summary_model)
    m.timeout_seconds = _env_float("DOCK_MODEL_TIMEOUT", m.timeout_seconds)
    m.temperature = _env_float("DOCK_TEMPERATURE", m.temperature)
    m.max_tokens = _env_int("DOCK_MAX_TOKENS", m.max_tokens)

    c = settings.context
    c.system_prompt = _env_str("DOCK_SYSTEM_PROMPT", c.system_prompt)
    c.max_context_chars = _env_int("DOCK_MAX_CONTEXT_CHARS", c.max_context_chars)
    c.max_tail_messages = max(1, _env_int("DOCK_MAX_TAIL_MESSAGES", c.max_tail_messages))
    c.max_tool_loops = max(0, _env_int("DOCK_MAX_TOOL_LOOPS", c.max_tool_loops))
    c.summary_fallback_chars = _env_int("DOCK_SUMMARY_FALLBACK_CHARS", c.summary_fallback_chars)

    s = settings.shell
    s.timeout_seconds = _env_float("DOCK_SHELL_TIMEOUT", s.timeout_seconds)
    s.max_output_chars = _env_int("DOCK_SHELL_MAX_OUTPUT", s.max_output_chars)
    s.cwd = os.environ.get("DOCK_SHELL_CWD") or s.cwd

    srv = settings.server
    srv.host = _env_str("DOCK_HOST", srv.host)
    srv.port = _env_int("DOCK_PORT", srv.port)
    srv.data_dir = _env_str("DOCK_DATA_DIR", srv.data_dir)
    srv.public_dir = _env_str("DOCK_PUBLIC_DIR", srv.public_dir)
    srv.max_body_bytes = _env_int("DOCK_MAX_BODY_BYTES", srv.max_body_bytes)
    srv.tool_server_timeout = _env_float("DOCK_TOOL_SERVER_TIMEOUT", srv.tool_server_timeout)
    srv.log_level = _env_str("DOCK_LOG_LEVEL", srv.log_level).upper()
    origins = os.environ.get("DOCK_CORS_ORIGINS")
    if origins:
        srv.cors_origins = [o.strip() for o in origins.split(",") if o.strip()]
    return settings


def load_settings(profile_path: Optional[Path] = None) -> Settings:
    """Load settings from the YAML profile (if any) and the environment."""
    env_path = os.environ.get("DOCK_PROFILE_PATH")
    path = profile_path or (Path(env_path) if env_path else _DEFAULT_PROFILE_PATH)

    settings = Settings()
    if path.exists():
        try:
            raw = yaml.safe_load(path.read_text()) or {}
            if isinstance(raw, dict):
                settings = _settings_from_dict(raw)
            else:
                logger.warning("%s is not a valid YAML mapping, using defaults", path)
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to load profile %s: %s, using defaults", path, e)
    else:
        logger.debug("No profile found at %s, using defaults", path)

    return _apply_env(settings)


# ── Singleton ──

_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the settings singleton. Loads on first call."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reload_settings() -> Settings:
    """Force reload of the settings from disk and environment."""
    global _settings
    _settings = load_settings()
    return _settings
