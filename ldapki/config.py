# SPDX-License-Identifier: Apache-2.0
# Copyright (C) 2024-2026 The Birthmark Standard Foundation

"""Configuration management for ldapki."""

import logging
import re
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .certificates.storage import KeyFormat
from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("./config.yml")

CERTS_DIR_MODE = 0o700  # drwx------

MAX_VALIDITY_DAYS = 36500  # 100 years

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


class Settings(BaseSettings):
    """
    Application settings.

    Loaded from a YAML file (see Settings.load) and overridden by
    LDAPKI_* environment variables or a .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="LDAPKI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    debug: bool = False
    log_level: str = "INFO"

    # Directory
    url: str = ""
    base_dn: str = ""
    ldap_username: str = ""
    ldap_password: SecretStr = SecretStr("")
    ldap_filter: str = "(objectClass=person)"

    # Intermediate CA
    ca_cert_path: Path
    ca_key_path: Path
    ca_password: SecretStr

    # Issued certificates
    cert_validity_days: int = Field(gt=0, le=MAX_VALIDITY_DAYS)
    cert_key_size: int = Field(ge=1024)
    user_cert_save_to_path: Path
    issued_key_format: KeyFormat = KeyFormat.PKCS1
    inherit_ca_dns_names: bool = False

    # Batch behaviour
    fail_fast: bool = False
    workers: int = Field(default=1, ge=1)

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {value!r}")
        return level

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment wins over values read from the YAML file
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level

    @property
    def directory_configured(self) -> bool:
        return bool(self.url and self.base_dn)

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None) -> "Settings":
        """
        Load settings from a YAML file plus the environment.

        Keys may be written in snake_case or camelCase (caCertPath).

        Args:
            config_path: YAML file; None loads from the environment only

        Raises:
            ConfigError: If the file is unreadable or a value is missing or invalid
        """
        data = read_config_file(config_path) if config_path is not None else {}

        try:
            return cls(**data)
        except ValidationError as e:
            # Only locations and messages; input values may be secrets
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or 'config'}: {err['msg']}"
                for err in e.errors()
            )
            raise ConfigError(f"Invalid configuration: {problems}", stage="config") from None

    def ensure_output_dir(self) -> Path:
        """
        Create the certificate output directory if missing.

        Raises:
            ConfigError: If the path exists but is not a directory
        """
        path = self.user_cert_save_to_path

        if not path.exists():
            logger.info(f"Certs path '{path}' does not exist, will be created")
            try:
                path.mkdir(mode=CERTS_DIR_MODE, parents=True)
            except OSError as e:
                raise ConfigError(f"Failed to create certs path {path}: {e}", stage="config") from e
            return path

        if not path.is_dir():
            raise ConfigError(f"'{path}' is not a directory", stage="config")

        return path


def _snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def read_config_file(config_path: Union[str, Path]) -> dict:
    """Read a YAML config file into a dict with snake_case keys."""
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Config file {path} does not exist", stage="config")
    if path.is_dir():
        raise ConfigError(f"'{path}' is a directory, not a file", stage="config")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Failed to read config {path}: {e}", stage="config") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse config {path}: {e}", stage="config") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping", stage="config")

    return {_snake_case(str(key)): value for key, value in data.items()}
