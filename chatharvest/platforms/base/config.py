"""Multi-platform configuration management for the harvest engine.

This module loads the YAML platform map, validates it with pydantic models and
exposes a small manager API for looking up platform profiles. Selectors are
opaque strings owned by the configuration file; credentials are never stored
in YAML, the auth section only names the environment variables holding them.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = (
    Path(__file__).resolve().parent.parent.parent.parent / "config" / "platforms.yaml"
)
DEFAULT_RESPONSE_TIMEOUT_SEC = 60.0
DEFAULT_LOGIN_TIMEOUT_SEC = 300.0
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)


@dataclass
class Credentials:
    """Credential material resolved from the environment."""

    cookies: str = ""
    token: str = ""
    user_token: str = ""
    local_storage: dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.cookies or self.token or self.user_token or self.local_storage)


class AuthConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    cookies_env: str | None = Field(None)
    token_env: str | None = Field(None)
    user_token_env: str | None = Field(None)
    local_storage_env: str | None = Field(None)
    cookie_domains: list[str] = Field(default_factory=list)
    sign_in_url: str | None = Field(None)
    network_pattern: str | None = Field(
        None, description="Regex matched against authenticated API response URLs"
    )
    network_timeout_sec: float = Field(10.0, gt=0)
    allow_manual_login: bool = Field(True)

    def resolve(self) -> Credentials:
        """Read the configured credential environment variables."""
        local_storage: dict[str, str] = {}
        raw_storage = _getenv(self.local_storage_env)
        if raw_storage:
            try:
                parsed = json.loads(raw_storage)
                if isinstance(parsed, dict):
                    local_storage = {str(k): str(v) for k, v in parsed.items()}
                else:
                    logger.warning(f"{self.local_storage_env} is not a JSON object")
            except json.JSONDecodeError as e:
                logger.error(f"Failed to parse {self.local_storage_env} JSON: {e}")

        return Credentials(
            cookies=_getenv(self.cookies_env),
            token=_getenv(self.token_env),
            user_token=_getenv(self.user_token_env),
            local_storage=local_storage,
        )


def _getenv(name: str | None) -> str:
    if not name:
        return ""
    return os.getenv(name, "").strip()


class SelectorConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    input: str
    response: str
    submit: str | None = Field(None)
    login_button: str | None = Field(
        None, description="Affordance only visible while logged out"
    )
    logged_in_marker: str | None = Field(
        None, description="Affordance only visible while logged in (avatar etc.)"
    )
    generating: str | None = Field(
        None, description="Stop/in-progress affordance shown while streaming"
    )
    search_toggle: str | None = Field(
        None, description="Text pattern of the collapsed search-results toggle"
    )
    search_panel: str | None = Field(None)
    references: str | None = Field(None)
    citation: str | None = Field(None)
    login_modal: str | None = Field(None)
    popups: list[str] = Field(default_factory=list)


class CompletionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    poll_interval_sec: float = Field(1.0, gt=0)
    stability_threshold: int = Field(5, ge=1)
    appear_timeout_sec: float = Field(30.0, gt=0)


class PlatformProfile(BaseModel):
    """Immutable description of one target site."""

    model_config = ConfigDict(frozen=True)

    platform_id: str = Field("")
    name: str
    url: str
    enabled: bool = Field(True)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    selectors: SelectorConfig
    timeout_sec: float | None = Field(
        None, description="Response timeout; the global default applies when unset"
    )
    login_timeout_sec: float = Field(DEFAULT_LOGIN_TIMEOUT_SEC, gt=0)
    navigation_timeout_sec: float = Field(60.0, gt=0)
    completion: CompletionConfig = Field(default_factory=CompletionConfig)

    @property
    def hostname(self) -> str:
        return urlparse(self.url).hostname or ""

    def get_cookie_domains(self) -> list[str]:
        """Cookie domains to inject into, derived from the URL when unset."""
        if self.auth.cookie_domains:
            return list(self.auth.cookie_domains)
        host = self.hostname
        if not host:
            return []
        domain = host[4:] if host.startswith("www.") else host
        return [domain if domain.startswith(".") else f".{domain}"]


class ViewportSettings(BaseModel):
    width: int = Field(1280, gt=0)
    height: int = Field(720, gt=0)


class GlobalSettings(BaseModel):
    headless: bool = Field(True)
    default_timeout_sec: float = Field(DEFAULT_RESPONSE_TIMEOUT_SEC, gt=0)
    viewport: ViewportSettings = Field(default_factory=ViewportSettings)
    user_agent: str = Field(DEFAULT_USER_AGENT)
    locale: str = Field("zh-CN")
    timezone_id: str = Field("Asia/Shanghai")
    launch_args: list[str] = Field(
        default_factory=lambda: [
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-blink-features=AutomationControlled",
        ]
    )
    outputs_directory: str = Field("outputs")
    sessions_dir: str = Field("data/sessions")
    reports_dir: str = Field("reports")
    results_dir: str = Field("data/automation_results")
    debug_dir: str = Field("debug")
    logs_dir: str = Field("logs")


class BatchSettings(BaseModel):
    retry_count: int = Field(3, ge=1)
    retry_delay_sec: float = Field(2.0, ge=0)
    pacing_min_sec: float = Field(2.0, ge=0)
    pacing_max_sec: float = Field(7.0, ge=0)
    min_response_chars: int = Field(5, ge=0)
    error_keywords: list[str] = Field(default_factory=list)
    error_reply_max_chars: int = Field(40, ge=0)
    jsonl_enabled: bool = Field(True)

    @model_validator(mode="after")
    def check_pacing_range(self) -> "BatchSettings":
        if self.pacing_max_sec < self.pacing_min_sec:
            raise ValueError("pacing_max_sec cannot be lower than pacing_min_sec")
        return self


class HarvestConfig(BaseModel):
    global_settings: GlobalSettings = Field(default_factory=GlobalSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    platforms: dict[str, PlatformProfile]

    project_root: Path = Field(
        default_factory=lambda: Path(__file__).resolve().parent.parent.parent.parent
    )

    @model_validator(mode="before")
    @classmethod
    def inject_platform_ids(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("platforms"), dict):
            platforms = {}
            for platform_id, profile in data["platforms"].items():
                if isinstance(profile, dict):
                    profile = {**profile, "platform_id": platform_id}
                platforms[platform_id] = profile
            data = {**data, "platforms": platforms}
        return data

    def resolve_path(self, value: str) -> Path:
        """Resolve an output path relative to the outputs root."""
        path = Path(value)
        if path.is_absolute():
            return path
        outputs_root = Path(self.global_settings.outputs_directory)
        if not outputs_root.is_absolute():
            outputs_root = self.project_root / outputs_root
        return outputs_root / path

    @property
    def sessions_path(self) -> Path:
        return self.resolve_path(self.global_settings.sessions_dir)

    @property
    def reports_path(self) -> Path:
        return self.resolve_path(self.global_settings.reports_dir)

    @property
    def results_path(self) -> Path:
        return self.resolve_path(self.global_settings.results_dir)

    @property
    def debug_path(self) -> Path:
        return self.resolve_path(self.global_settings.debug_dir)

    @property
    def logs_path(self) -> Path:
        return self.resolve_path(self.global_settings.logs_dir)


def load_harvest_config(config_path: Path = DEFAULT_CONFIG_PATH) -> HarvestConfig:
    logger.info(f"Loading platform config from: {config_path}")
    if not config_path.is_file():
        raise FileNotFoundError(f"Platform config file not found: {config_path}")
    try:
        with open(config_path, encoding="utf-8") as f:
            config_data = yaml.safe_load(f)
        if not isinstance(config_data, dict):
            raise ValueError("Config file is not a valid dictionary.")
        return HarvestConfig(**config_data)
    except ValidationError as e:
        logger.error(f"Config validation error: {e}")
        raise ValueError("Config validation failed.") from e
    except ValueError:
        raise
    except Exception as e:
        logger.error(f"Error parsing config data: {e}", exc_info=True)
        raise ValueError("Unexpected error during config parsing.") from e


class PlatformConfigManager:
    """Lookup facade over a validated HarvestConfig."""

    def __init__(self, config: HarvestConfig):
        self.config = config

    @classmethod
    def from_file(cls, config_path: Path = DEFAULT_CONFIG_PATH):
        return cls(load_harvest_config(config_path))

    def get_profile(self, platform_id: str) -> PlatformProfile:
        """Get the profile for a platform.

        Raises
        ------
            ValueError: If the platform is not configured

        """
        profile = self.config.platforms.get(platform_id)
        if profile is None:
            raise ValueError(f"No configuration found for platform: {platform_id}")
        return profile

    def is_platform_enabled(self, platform_id: str) -> bool:
        try:
            return self.get_profile(platform_id).enabled
        except ValueError:
            return False

    def get_enabled_platforms(self) -> list[str]:
        return [pid for pid, p in self.config.platforms.items() if p.enabled]

    def get_response_timeout(self, platform_id: str) -> float:
        """Platform response timeout, falling back to the global default."""
        profile = self.get_profile(platform_id)
        if profile.timeout_sec:
            return profile.timeout_sec
        return self.config.global_settings.default_timeout_sec
