"""Configuration loader for kube-secret-poller."""
import os
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional
import yaml

from .preferences import get_preference
from .models import OwnerReference, SecretDescriptor

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 10000
CONFIG_ENV_VAR = "KUBE_SECRET_POLLER_CONFIG"
INTERVAL_ENV_VAR = "POLLER_INTERVAL_MILLISECONDS"


class ConfigError(Exception):
    """Configuration error exception."""
    pass


def default_config_path() -> Path:
    return Path.home() / ".config" / "kube-secret-poller" / "config.yml"


def _get_config_path(explicit_path: Optional[str] = None) -> str:
    """
    Resolve the config file path.

    Priority order:
    1. Explicit path (--config)
    2. KUBE_SECRET_POLLER_CONFIG environment variable
    3. User preference (config_path in preferences.json)
    4. Default location: ~/.config/kube-secret-poller/config.yml

    Raises:
        FileNotFoundError: If no config file exists at any location
    """
    if explicit_path:
        return str(Path(explicit_path).expanduser())

    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        logger.info(f"Using config from {CONFIG_ENV_VAR}: {env_path}")
        return env_path

    config_path_pref = get_preference("config_path")
    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            logger.info(f"Using config from preference: {config_path}")
            return str(config_path)
        logger.warning(f"Config path from preference doesn't exist: {config_path}")

    default_config = default_config_path()
    if default_config.exists():
        logger.info(f"Using default config location: {default_config}")
        return str(default_config)

    raise FileNotFoundError(
        "Configuration file not found. Please set up your config file using one of these methods:\n\n"
        "1. Use the default location:\n"
        f"   mkdir -p {default_config.parent}\n"
        f"   cp /path/to/your/config.yml {default_config}\n\n"
        "2. Point to an existing config file:\n"
        "   kube-secret-poller config set-path /path/to/your/config.yml\n\n"
        f"3. Set {CONFIG_ENV_VAR} or pass --config\n"
    )


def _validate_interval(poller: Dict[str, Any]) -> int:
    raw = os.getenv(INTERVAL_ENV_VAR) or poller.get("interval_ms", DEFAULT_INTERVAL_MS)
    try:
        interval = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid poll interval: {raw!r} (expected milliseconds as an integer)")
    if interval <= 0:
        raise ConfigError(f"Poll interval must be positive, got {interval}")
    return interval


def _validate_metrics_port(poller: Dict[str, Any]) -> int:
    raw = poller.get("metrics_port") or 0
    try:
        port = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid metrics port: {raw!r} (expected an integer, 0 disables)")
    if not 0 <= port <= 65535:
        raise ConfigError(f"Metrics port must be between 0 and 65535, got {port}")
    return port


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load and validate configuration from YAML file.

    Args:
        path: Explicit config path; resolved from env/preferences/default if omitted

    Returns:
        Dict with keys:
        - poller: namespace, interval_ms (int), metrics_port (int)
        - owner_reference: Kubernetes owner reference mapping
        - backends: backend type -> settings
        - secrets: list of secret descriptor mappings

    Raises:
        ConfigError: If the file is unreadable or a required field is missing
        FileNotFoundError: If no config file can be located
    """
    config_path = _get_config_path(path)

    if not os.path.exists(config_path):
        raise ConfigError(f"Configuration file not found at: {config_path}")

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}")

    if not config:
        raise ConfigError(f"Config file at {config_path} is empty")

    poller = config.get('poller')
    if not isinstance(poller, dict) or not poller.get('namespace'):
        raise ConfigError(
            f"Missing 'poller.namespace' in config at {config_path}\n"
            f"Required format:\n"
            f"poller:\n"
            f"  namespace: default\n"
            f"  interval_ms: 10000"
        )
    poller['interval_ms'] = _validate_interval(poller)
    poller["metrics_port"] = _validate_metrics_port(poller)

    owner = config.get('owner_reference')
    missing = [k for k in ('apiVersion', 'kind', 'name', 'uid') if not (owner or {}).get(k)]
    if missing:
        raise ConfigError(
            f"Missing owner_reference fields in config at {config_path}: {', '.join(missing)}"
        )

    backends = config.get('backends')
    if not backends:
        raise ConfigError(
            f"Missing 'backends' section in config at {config_path}\n"
            f"Required format:\n"
            f"backends:\n"
            f"  gcp:\n"
            f"    project_id: your-project-id"
        )

    secrets = config.get('secrets') or []
    if not isinstance(secrets, list):
        raise ConfigError("'secrets' must be a list of secret descriptors")
    for index, secret in enumerate(secrets):
        if not isinstance(secret, dict) or not secret.get('name'):
            raise ConfigError(f"Secret #{index} is missing 'name'")
        backend_type = secret.get('backendType', secret.get('backend_type'))
        if backend_type not in backends:
            raise ConfigError(
                f"Secret '{secret['name']}' uses backend '{backend_type}' "
                f"which is not configured under 'backends'"
            )
    config['secrets'] = secrets

    logger.info(f"Configuration loaded successfully from {config_path}")
    logger.debug(f"Polling namespace {poller['namespace']} every {poller['interval_ms']}ms")

    return config


def get_owner_reference(config: Dict[str, Any]) -> OwnerReference:
    return OwnerReference.from_dict(config['owner_reference'])


def get_descriptors(config: Dict[str, Any]) -> List[SecretDescriptor]:
    """Build secret descriptors from a loaded config."""
    try:
        return [SecretDescriptor.from_dict(s) for s in config['secrets']]
    except KeyError as e:
        raise ConfigError(f"Invalid secret descriptor, missing {e}")
