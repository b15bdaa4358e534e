"""
Settings loader for the quiz relay.

Settings come from a JSON file (``config/settings.json`` by default), are
merged over built-in defaults and finally overridden by environment
variables, so deployments can keep secrets out of the file.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .constants import DEFAULT_MODEL, DEFAULT_PATHS, POOL_DEFAULTS, RELAY_WAIT, RETRY_POLICIES

DEFAULT_SETTINGS: Dict[str, Any] = {
    'pool': {
        'concurrency': POOL_DEFAULTS['concurrency'],
        'headless': POOL_DEFAULTS['headless'],
        'launch_args': list(POOL_DEFAULTS['launch_args'])
    },
    'retry': copy.deepcopy(RETRY_POLICIES),
    'relay': dict(RELAY_WAIT),
    'cache': {
        'enabled': True
    },
    'completion': {
        'base_url': 'https://openrouter.ai/api/v1',
        'api_key': '',
        'model': DEFAULT_MODEL,
        'referer': '',
        'title': 'Proktoring Helper',
        'timeout': 45.0
    },
    'store': {
        'backend': 'memory',
        'file': DEFAULT_PATHS['store_file']
    },
    'logging': {
        'level': 'INFO',
        'file': 'logs/quiz_relay.log',
        'max_size': 10485760,
        'backup_count': 5
    }
}

# Environment variable -> (section, key, converter)
ENV_OVERRIDES = {
    'OPENAI_API_KEY': ('completion', 'api_key', str),
    'OPENAI_BASE_URL': ('completion', 'base_url', str),
    'SERVER_URL': ('completion', 'referer', str),
    'QUIZ_RELAY_MODEL': ('completion', 'model', str),
    'QUIZ_RELAY_CONCURRENCY': ('pool', 'concurrency', int),
    'QUIZ_RELAY_STORE': ('store', 'backend', str),
    'QUIZ_RELAY_STORE_FILE': ('store', 'file', str),
    'LOG_LEVEL': ('logging', 'level', str)
}

logger = logging.getLogger(__name__)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(config_path: Optional[str] = None,
                  environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Load settings from a JSON file and the environment.

    A missing file is not an error: the defaults are used and a warning is
    logged. An unreadable file is.

    Args:
        config_path: Path to the settings file (defaults to config/settings.json)
        environ: Mapping used for overrides, os.environ when omitted

    Returns:
        Settings dictionary with every section present

    Raises:
        json.JSONDecodeError: If the settings file is not valid JSON
    """
    config_path = config_path or DEFAULT_PATHS['config_file']
    environ = os.environ if environ is None else environ

    settings = copy.deepcopy(DEFAULT_SETTINGS)
    path = Path(config_path)
    if path.exists():
        with open(path, 'r', encoding='utf-8') as f:
            settings = _deep_merge(settings, json.load(f))
        logger.debug(f"Loaded settings from {config_path}")
    else:
        logger.warning(f"Settings file not found: {config_path}. Using defaults.")

    for variable, (section, key, convert) in ENV_OVERRIDES.items():
        raw = environ.get(variable)
        if raw is None or raw == '':
            continue
        try:
            settings[section][key] = convert(raw)
        except ValueError:
            logger.warning(f"Ignoring invalid value for {variable}: {raw!r}")

    return settings
