"""Centralized configuration loader for YAML-based configuration.

This module provides functions to load configuration from YAML files with:
- Environment variable overrides (env var → YAML → defaults)
- Type coercion (string to float, bool, int)
- Schema validation using dataclasses
- Graceful degradation (missing files use defaults)
"""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

API_VERSION_SUFFIX = "/v1"


def get_project_root() -> Path:
    """
    Get project root directory.

    Uses pattern: config_loader.py → core/ → lab_catalog/ → src/ → project_root

    Raises:
        ValueError: If config/ directory is not found at the detected project root
    """
    project_root = Path(__file__).parent.parent.parent.parent

    config_dir = project_root / "config"
    if not config_dir.is_dir():
        raise ValueError(
            f"Project root detection failed: config/ directory not found at {config_dir}. "
            f"Detected project root: {project_root}."
        )

    return project_root


def _default_config_path(filename: str) -> Path | None:
    # Installed wheels ship without config/: defaults apply
    try:
        return get_project_root() / "config" / filename
    except ValueError as e:
        logger.debug(f"{e} Using defaults for {filename}")
        return None


def _coerce_type(value: Any, target_type: type) -> Any:
    """
    Coerce value to target type.

    Handles:
    - String "30.0" → float 30.0
    - String "true"/"false" → bool True/False (case-insensitive)
    - String "123" → int 123

    Raises:
        ValueError: If coercion fails
    """
    if value is None:
        return None

    if isinstance(value, target_type) and not (target_type is int and isinstance(value, bool)):
        return value

    if target_type is bool:
        if isinstance(value, str):
            return value.lower() in ("true", "1", "yes", "on")
        return bool(value)

    if target_type is float:
        return float(value)

    if target_type is int:
        if isinstance(value, str):
            return int(float(value))  # Handle "100.0" → 100
        return int(value)

    if target_type is str:
        return str(value)

    return value


def _apply_env_overrides(config: dict[str, Any], env_mapping: dict[str, str]) -> dict[str, Any]:
    """
    Apply environment variable overrides to config.

    Args:
        config: Configuration dictionary
        env_mapping: Mapping of env var names to config keys

    Returns:
        Config with env var overrides applied

    Raises:
        ValueError: If an env var cannot be coerced to the key's type
    """
    result = config.copy()
    for env_key, config_key in env_mapping.items():
        env_value = os.getenv(env_key)
        if env_value is None:
            continue
        target_type = type(result[config_key])
        try:
            result[config_key] = _coerce_type(env_value, target_type)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid value for {env_key}={env_value!r}: expected {target_type.__name__}") from e
    return result


def _read_yaml(config_path: Path) -> dict[str, Any]:
    """
    Read a YAML mapping; a missing or empty file yields {}.

    Raises:
        ValueError: If the YAML is invalid or not a mapping
    """
    if not config_path.exists():
        logger.debug(f"Config file not found at {config_path}, using defaults")
        return {}
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML in {config_path}: top level must be a mapping")
    return data


def normalize_api_root(api_url: str) -> str:
    """Strip trailing slashes and append the API version segment unless present."""
    root = api_url.strip().rstrip("/")
    if not root.endswith(API_VERSION_SUFFIX):
        root += API_VERSION_SUFFIX
    return root


@dataclass
class CatalogConfigDefaults:
    """Default values for the catalog client configuration."""

    api_url: str = "http://localhost:8080/api"
    page_size: int = 100
    sort_by: str = "id"
    timeout_s: float = 10.0
    user_header: str = "X-User-Id"
    roles_header: str = "X-User-Roles"

    def to_dict(self) -> dict[str, Any]:
        """Convert dataclass to dictionary."""
        return asdict(self)


@dataclass(frozen=True)
class CatalogConfig:
    """
    Resolved catalog client configuration.

    Attributes:
        api_url: API base URL as configured
        page_size: Page size used when loading the full analysis catalog
        sort_by: Sort key used when loading the full analysis catalog
        timeout_s: Per-request timeout in seconds
        user_header: Header carrying the authenticated user id
        roles_header: Header carrying the comma-joined role list
    """

    api_url: str
    page_size: int
    sort_by: str
    timeout_s: float
    user_header: str
    roles_header: str

    @property
    def api_root(self) -> str:
        return normalize_api_root(self.api_url)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CatalogConfig":
        config = cls(**data)
        if config.page_size <= 0:
            raise ValueError(f"page_size must be positive, got {config.page_size}")
        if config.timeout_s <= 0:
            raise ValueError(f"timeout_s must be positive, got {config.timeout_s}")
        if not config.api_url.strip():
            raise ValueError("api_url must not be empty")
        return config


CATALOG_ENV_MAPPING: dict[str, str] = {
    "LAB_CATALOG_API_URL": "api_url",
    "LAB_CATALOG_PAGE_SIZE": "page_size",
    "LAB_CATALOG_TIMEOUT_S": "timeout_s",
    "LAB_CATALOG_SORT_BY": "sort_by",
}


def load_catalog_config(config_path: Path | None = None) -> CatalogConfig:
    """
    Load catalog config from YAML with env var overrides.

    Precedence: Environment variable → YAML value → Default value

    Args:
        config_path: Optional path to config file. If None, uses default location.

    Raises:
        ValueError: If YAML is invalid, a value cannot be coerced, or a
            page size/timeout is not positive
    """
    defaults = CatalogConfigDefaults().to_dict()
    if config_path is None:
        config_path = _default_config_path("catalog.yaml")

    config = defaults.copy()
    yaml_data = _read_yaml(config_path) if config_path is not None else {}
    for key, value in yaml_data.items():
        if key not in defaults:
            logger.warning(f"Unknown catalog config key {key!r} ignored")
            continue
        target_type = type(defaults[key])
        try:
            config[key] = _coerce_type(value, target_type)
        except (ValueError, TypeError) as e:
            raise ValueError(
                f"Type coercion failed for config {key}={value}: expected {target_type.__name__}. Error: {e}"
            ) from e

    config = _apply_env_overrides(config, CATALOG_ENV_MAPPING)
    return CatalogConfig.from_dict(config)


@dataclass
class LoggingConfigDefaults:
    """Default values for logging configuration."""

    root_level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    module_levels: dict[str, str] = field(
        default_factory=lambda: {
            "lab_catalog.gateway": "INFO",
            "lab_catalog.catalog": "INFO",
        }
    )
    reduce_noise: dict[str, str] = field(
        default_factory=lambda: {
            "httpx": "WARNING",
            "httpcore": "WARNING",
        }
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert dataclass to dictionary."""
        return {
            "root_level": self.root_level,
            "format": self.format,
            "module_levels": self.module_levels.copy(),
            "reduce_noise": self.reduce_noise.copy(),
        }


def load_logging_config(config_path: Path | None = None) -> dict[str, Any]:
    """
    Load logging config from YAML.

    Args:
        config_path: Optional path to config file. If None, uses default location.

    Returns:
        dict with keys:
        - root_level: str
        - format: str
        - module_levels: dict[str, str]
        - reduce_noise: dict[str, str]

    Raises:
        ValueError: If YAML is invalid
    """
    config = LoggingConfigDefaults().to_dict()
    if config_path is None:
        config_path = _default_config_path("logging.yaml")

    yaml_data = _read_yaml(config_path) if config_path is not None else {}
    for key, value in yaml_data.items():
        if key not in config:
            continue
        if key in ("module_levels", "reduce_noise"):
            # Merge dicts
            if isinstance(value, dict):
                config[key].update(value)
        else:
            config[key] = value

    return config
