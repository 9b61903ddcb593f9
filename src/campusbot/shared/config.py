"""
Configuration Module - Load and validate application settings.
==============================================================

Loads configuration from:
1. config/settings.yaml (defaults)
2. Environment variables from .env file
3. Environment variables from system

Environment variables (including nested ones such as CACHE__DEFAULT_TTL)
override YAML values, which override the built-in defaults. Only the composition root
(CLI / create_aggregator) reads these settings; the scraping core receives
plain config objects at construction.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from campusbot.shared.schemas import Credentials

# Load .env file early
load_dotenv()


def _find_project_root() -> Path:
    """Find the project root directory by looking for pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path.cwd()


PROJECT_ROOT = _find_project_root()
CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_CONFIG_FILE = CONFIG_DIR / "settings.yaml"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)


# ─────────────────────────────────────────────────────────────────────────────
# Nested Configuration Models
# ─────────────────────────────────────────────────────────────────────────────


class PlatformConfig(BaseModel):
    """Connection settings for one external site."""

    base_url: str
    login_path: str = "/login"
    logout_path: str = "/logout"
    csrf_field: str = "_csrf"
    logged_in_markers: list[str] = Field(default_factory=lambda: ["로그아웃", "logout"])


def _default_platforms() -> dict[str, PlatformConfig]:
    return {
        "course_platform": PlatformConfig(
            base_url="https://learnus.yonsei.ac.kr",
            login_path="/login",
            logout_path="/login/logout.php",
        ),
        "portal": PlatformConfig(base_url="https://portal.yonsei.ac.kr"),
        "library": PlatformConfig(base_url="https://library.yonsei.ac.kr"),
    }


class ScrapingConfig(BaseModel):
    """HTTP and retry settings shared by every platform session."""

    timeout: float = 10.0
    max_retries: int = 3
    retry_backoff: float = 1.0
    retry_max_wait: float = 10.0
    max_redirects: int = 5
    user_agent: str = DEFAULT_USER_AGENT
    accept: str = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
    accept_language: str = "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7"

    @property
    def headers(self) -> dict[str, str]:
        """Browser-like request headers."""
        return {
            "User-Agent": self.user_agent,
            "Accept": self.accept,
            "Accept-Language": self.accept_language,
        }


class CacheConfig(BaseModel):
    """Expiring cache settings (seconds)."""

    enabled: bool = True
    default_ttl: float = 1800.0
    max_size: int = 1000
    cleanup_interval: float = 300.0
    category_ttl: dict[str, float] = Field(
        default_factory=lambda: {
            "course": 600.0,
            "assignment": 600.0,
            "notice": 300.0,
            "academic": 300.0,
            "scholarship": 300.0,
            "career": 300.0,
            "library": 60.0,
            "studyroom": 60.0,
            "facilities": 300.0,
        }
    )
    snapshot_file: str = ""

    @field_validator("max_size")
    @classmethod
    def validate_max_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("cache.max_size must be at least 1")
        return v


class AggregationConfig(BaseModel):
    """Aggregator defaults and category routing."""

    default_campus: str = "신촌"
    default_count: int = 20
    routes: dict[str, list[str]] = Field(default_factory=dict)


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    rich_console: bool = True
    file: str = ""


# ─────────────────────────────────────────────────────────────────────────────
# YAML Source
# ─────────────────────────────────────────────────────────────────────────────


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
        return data if data else {}


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Settings source reading the YAML config file named by the settings class."""

    def __init__(self, settings_cls: type[BaseSettings]):
        super().__init__(settings_cls)
        config_file = getattr(settings_cls, "config_file", None)
        self.data = _load_yaml_config(config_file) if config_file else {}

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return self.data.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return {
            name: self.data[name]
            for name in self.settings_cls.model_fields
            if name in self.data
        }


# ─────────────────────────────────────────────────────────────────────────────
# Main Settings Class
# ─────────────────────────────────────────────────────────────────────────────


class Settings(BaseSettings):
    """
    Main application settings.

    Loads from, highest priority first:
    1. Keyword arguments
    2. Environment variables (and .env)
    3. The YAML file named by config_file
    4. Field defaults
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # YAML file read by YamlSettingsSource; None reads no file
    config_file: ClassVar[Optional[Path]] = None

    # Credentials (from environment only)
    username: str = Field(default="", validation_alias="CAMPUSBOT_USERNAME")
    password: SecretStr = Field(default=SecretStr(""), validation_alias="CAMPUSBOT_PASSWORD")

    log_level: Optional[str] = Field(default=None, validation_alias="LOG_LEVEL")

    # Nested configurations (from YAML)
    platforms: dict[str, PlatformConfig] = Field(default_factory=_default_platforms)
    scraping: ScrapingConfig = Field(default_factory=ScrapingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    _project_root: Path = PROJECT_ROOT

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )

    @field_validator("platforms", mode="before")
    @classmethod
    def merge_platform_defaults(cls, v: Any) -> Any:
        """Let YAML override single platforms without restating the others."""
        if not isinstance(v, dict):
            return v
        merged: dict[str, Any] = {
            name: config.model_dump() for name, config in _default_platforms().items()
        }
        for name, override in v.items():
            base = merged.get(name, {})
            if isinstance(override, PlatformConfig):
                override = override.model_dump()
            merged[name] = {**base, **(override or {})}
        return merged

    @property
    def project_root(self) -> Path:
        """Get the project root directory."""
        return self._project_root

    @property
    def credentials(self) -> Optional[Credentials]:
        """Credentials for platform login, or None when not configured."""
        if not self.username or not self.password.get_secret_value():
            return None
        return Credentials(username=self.username, password=self.password)

    def get_platform(self, name: str) -> Optional[PlatformConfig]:
        """Get platform configuration by name."""
        return self.platforms.get(name.lower())

    def get_effective_log_level(self) -> str:
        """Get the effective log level (env override or config)."""
        if self.log_level:
            return self.log_level.upper()
        return self.logging.level.upper()


def _create_settings(config_path: Optional[Path] = None) -> Settings:
    """Create settings from the YAML file, overridden by the environment."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    class FileSettings(Settings):
        config_file = config_path

    return FileSettings()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the process-wide settings instance.

    Example:
        >>> settings = get_settings()
        >>> print(settings.cache.default_ttl)
        1800.0
    """
    return _create_settings()


def reload_settings() -> Settings:
    """Force reload of settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
