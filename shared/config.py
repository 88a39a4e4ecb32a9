"""
Shared configuration management for the Notice Relay.
"""

import os
from pathlib import Path
from typing import List, Tuple, Type

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)


def config_files() -> List[Path]:
    """Return YAML config files in load order: defaults first, then env overlay."""
    config_dir = Path(os.getenv("NOTICE_CONFIG_DIR", "configs"))
    files = [config_dir / "default.yml"]
    env = os.getenv("NOTICE_ENV")
    if env:
        files.append(config_dir / f"{env}.yml")
    return files


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="NOTICE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over YAML; YAML wins over field defaults.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=config_files()),
            file_secret_settings,
        )


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"


class NoticeConfig(ServiceConfig):
    """Settings for the notice relay."""

    service_name: str = "notice"
    port: int = 3011

    # WeCom application credentials
    corp_id: str = ""
    corp_secret: str = ""
    agent_id: int = 0
    wecom_base_url: str = "https://qyapi.weixin.qq.com/cgi-bin"

    # Shared secret callers send in the Token header
    token: str = ""

    http_timeout: float = Field(default=5.0, gt=0)
    token_safety_margin: int = Field(default=300, ge=0)
    prefetch_token: bool = True


def get_config(**overrides) -> NoticeConfig:
    """Get configuration for the notice service; keyword overrides beat env and files."""
    return NoticeConfig(**overrides)
