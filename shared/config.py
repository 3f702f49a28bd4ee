"""
Configuration loading for the media server.

Values come from built-in defaults, then ~/.config/r2-music-server/config.json,
then environment variables (a local .env file is loaded first).
"""

import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Optional, Dict, Any

from dotenv import load_dotenv

from shared.constants import (
    DEFAULT_CONFIG_DIR, CONFIG_FILENAME, CLOUDFLARE_R2_ENDPOINT_TEMPLATE,
)
from shared.models import ServerConfig, StorageProvider

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when configuration values are missing or malformed."""


# env var -> (config field, converter)
ENV_OVERRIDES = {
    "MUSIC_PROVIDER": ("provider", str),
    "MUSIC_BUCKET": ("bucket", str),
    "MUSIC_ENDPOINT": ("endpoint", str),
    "MUSIC_REGION": ("region", str),
    "MUSIC_LOCAL_PATH": ("base_path", str),
    "MUSIC_HOST": ("host", str),
    "MUSIC_PORT": ("port", int),
    "MUSIC_PUBLIC_ORIGIN": ("public_origin", str),
    "MUSIC_CATALOG_WORKERS": ("catalog_workers", int),
    "MUSIC_FETCH_TIMEOUT": ("fetch_timeout", float),
    "MUSIC_CATALOG_TIMEOUT": ("catalog_timeout", float),
    "MUSIC_CATALOG_CACHE_TTL": ("catalog_cache_ttl", float),
    "S3_ACCESS_KEY_ID": ("access_key_id", str),
    "S3_SECRET_ACCESS_KEY": ("secret_access_key", str),
    "R2_ACCESS_KEY_ID": ("access_key_id", str),
    "R2_SECRET_ACCESS_KEY": ("secret_access_key", str),
}


def config_path() -> Path:
    """Location of config.json, overridable with MUSIC_SERVER_CONFIG."""
    override = os.getenv("MUSIC_SERVER_CONFIG")
    if override:
        return Path(override).expanduser()
    return Path(DEFAULT_CONFIG_DIR).expanduser() / CONFIG_FILENAME


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Corrupt config file {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def _env_values(environ) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for env_key, (field_name, convert) in ENV_OVERRIDES.items():
        raw = environ.get(env_key)
        if raw is None or raw == "":
            continue
        try:
            values[field_name] = convert(raw)
        except ValueError:
            raise ConfigError(f"{env_key} must be a {convert.__name__}, got {raw!r}")

    account_id = environ.get("R2_ACCOUNT_ID")
    if account_id and "endpoint" not in values:
        values["endpoint"] = CLOUDFLARE_R2_ENDPOINT_TEMPLATE.format(account_id=account_id)
        values.setdefault("provider", StorageProvider.CLOUDFLARE_R2.value)
    return values


def load_config(path: Optional[Path] = None, environ=None, use_dotenv: bool = True) -> ServerConfig:
    """
    Build the effective ServerConfig.

    Args:
        path: Config file to read (defaults to config_path())
        environ: Mapping used for overrides (defaults to os.environ)
        use_dotenv: Load a .env file from the working directory first

    Raises:
        ConfigError: If no provider is configured or a value is malformed
    """
    if use_dotenv:
        load_dotenv()
    if environ is None:
        environ = os.environ
    path = path or config_path()

    file_data = _read_config_file(path)
    env_data = _env_values(environ)

    provider_value = env_data.pop("provider", None) or file_data.get("provider")
    if not provider_value:
        raise ConfigError(f"No storage provider configured (run 'init' or set MUSIC_PROVIDER); looked in {path}")

    try:
        provider = StorageProvider(provider_value)
    except ValueError:
        choices = ", ".join(p.value for p in StorageProvider)
        raise ConfigError(f"Unknown provider {provider_value!r} (expected one of: {choices})")

    file_data["provider"] = provider.value
    config = ServerConfig.from_dict(file_data)
    config = replace(config, **env_data)

    if config.provider == StorageProvider.LOCAL and not config.base_path:
        raise ConfigError("Local provider requires base_path (or MUSIC_LOCAL_PATH)")
    if config.provider != StorageProvider.LOCAL and not config.bucket:
        raise ConfigError("Bucket name is required (config 'bucket' or MUSIC_BUCKET)")
    if config.provider == StorageProvider.CLOUDFLARE_R2 and not config.endpoint:
        raise ConfigError("Cloudflare R2 requires an endpoint (config 'endpoint', MUSIC_ENDPOINT or R2_ACCOUNT_ID)")

    logger.debug("Loaded config from %s (provider=%s)", path, config.provider.value)
    return config


def save_config(config: ServerConfig, path: Optional[Path] = None) -> Path:
    """Write config.json with credentials encrypted."""
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        f.write(config.to_json())
    try:
        os.chmod(path, 0o600)
    except OSError as e:
        logger.warning("Could not restrict permissions on %s: %s", path, e)
    return path
