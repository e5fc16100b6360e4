"""
Configuration for discovery_cache.

Settings come from a YAML file selected by APP_ENV, with environment
variable overrides applied on top, and are validated by a pydantic model.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import DiscoveryConfigError

logger = logging.getLogger("discovery_cache.config")

DEFAULT_RENEW_HANDICAP_MS = 60 * 1000  # 1 minute
DEFAULT_REFRESH_DELAY_MS = 100
DEFAULT_RETRY_COUNT = 3
DEFAULT_RETRY_INTERVAL = 3
DEFAULT_RETRY_CYCLE_DELAY = 0

CONFIG_SECTION = "discovery"

ENV_OVERRIDES = {
    "DISCOVERY_CACHE_ID": "cache_id",
    "DISCOVERY_INITIAL_ENDPOINT": "initial_endpoint",
    "DISCOVERY_CLIENT_ID": "client_id",
    "DISCOVERY_REFRESH_HANDICAP_MS": "refresh_handicap_ms",
    "DISCOVERY_REFRESH_DELAY_MS": "refresh_delay_ms",
}


class DiscoveryConfig(BaseModel):
    """Construction-time settings for a discovery coordinator."""

    cache_id: str = Field(min_length=1)
    """Cache key prefix; documents live under '<cache_id>-initial' and '<cache_id>-external'."""

    initial_endpoint: str = Field(min_length=1)
    """URL of the initial discovery document."""

    client_id: str = ""
    """Client identifier sent with the initial fetch. Checked when bootstrap starts."""

    refresh_handicap_ms: int = Field(default=DEFAULT_RENEW_HANDICAP_MS, ge=0)
    """How long before its literal expiry external data is reported expired."""

    refresh_delay_ms: int = Field(default=DEFAULT_REFRESH_DELAY_MS, ge=0)
    """Settling delay before a refresh reads the cached external data."""


@dataclass
class RetryPolicy:
    """Advisory retry settings carried by discovery documents."""

    retry_count: int = DEFAULT_RETRY_COUNT
    retry_interval: int = DEFAULT_RETRY_INTERVAL
    retry_cycle_delay: int = DEFAULT_RETRY_CYCLE_DELAY


def retry_policy(document: Optional[Mapping[str, Any]]) -> RetryPolicy:
    """
    Read the retry settings of an initial or external document.

    Missing fields fall back to the package defaults. Nothing in this
    package acts on the policy; it is for callers scheduling retries.
    """
    document = document or {}
    return RetryPolicy(
        retry_count=document.get("retryCount", DEFAULT_RETRY_COUNT),
        retry_interval=document.get("retryInterval", DEFAULT_RETRY_INTERVAL),
        retry_cycle_delay=document.get("retryCycleDelay", DEFAULT_RETRY_CYCLE_DELAY),
    )


def _find_config_path(base_path: Path, app_env: str) -> Path:
    """Find the configuration file path based on APP_ENV."""
    env_specific = base_path / f"discovery.{app_env}.yaml"
    if env_specific.exists():
        logger.debug(f"Using environment-specific config: {env_specific}")
        return env_specific

    default = base_path / "discovery.yaml"
    if default.exists():
        logger.debug(f"Using default config: {default}")
        return default

    raise DiscoveryConfigError(
        f"No discovery config file found. Tried: {env_specific}, {default}"
    )


def apply_env_overrides(
    data: Dict[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Return a copy of ``data`` with DISCOVERY_* environment variables applied."""
    environ = os.environ if environ is None else environ
    merged = dict(data)
    for env_name, field_name in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is not None and value != "":
            logger.debug(f"Config override from {env_name}")
            merged[field_name] = value
    return merged


def load_discovery_config(
    config_dir: Union[str, Path],
    app_env: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> DiscoveryConfig:
    """
    Load discovery settings from a YAML file.

    Args:
        config_dir: Directory holding discovery.yaml / discovery.<env>.yaml
        app_env: Environment name (default: from APP_ENV env var or 'dev')
        environ: Environment mapping for overrides (default: os.environ)

    Returns:
        Validated DiscoveryConfig

    Raises:
        DiscoveryConfigError: file missing, unparsable or invalid
    """
    environ = os.environ if environ is None else environ
    env = app_env or environ.get("APP_ENV", "dev")
    logger.info(f"Loading discovery config for APP_ENV={env}")

    config_path = _find_config_path(Path(config_dir), env)

    try:
        raw = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        raise DiscoveryConfigError(f"YAML parsing error in {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise DiscoveryConfigError(f"Expected a mapping in {config_path}")

    section = raw.get(CONFIG_SECTION, raw)
    if not isinstance(section, dict):
        raise DiscoveryConfigError(
            f"Expected '{CONFIG_SECTION}' to be a mapping in {config_path}"
        )

    try:
        config = DiscoveryConfig.model_validate(apply_env_overrides(section, environ))
    except ValidationError as e:
        raise DiscoveryConfigError(f"Invalid discovery config in {config_path}: {e}") from e

    logger.info(f"Successfully loaded discovery config from: {config_path}")
    return config
