"""Application configuration for catalog-sync runs."""
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

import jsonschema
import yaml
from dotenv import load_dotenv

from catalog_sync.core_definitions import SourceOverrideMap, parse_source_override
from catalog_sync.errors import ConfigError
from catalog_sync.logging_config import setup_logger

DEFAULT_CONFIG_FILE = 'config.yaml'

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "service": {"type": "string"},
        "matcher": {"type": "string"},
        "model_name": {"type": "string"},
        "base_url": {"type": ["string", "null"]},
        "prompt": {"type": ["string", "null"]},
        "source_override": {
            "oneOf": [
                {"type": "string"},
                {"type": "object", "additionalProperties": {"type": "string"}},
                {"type": "null"},
            ]
        },
        "max_concurrent_api_calls": {"type": "integer", "minimum": 1},
        "requests_per_minute": {"type": "integer", "minimum": 1},
        "debug": {"type": "boolean"},
        "logging": {
            "type": "object",
            "properties": {
                "log_level": {"type": "string"},
                "log_file_path": {"type": ["string", "null"]},
                "log_to_console": {"type": "boolean"},
            },
        },
    },
}


@dataclass
class AppConfig:
    """Application configuration dataclass."""
    # Service selection
    service: str = 'openai'
    matcher: str = 'none'
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model_name: str = 'gpt-4o-mini'
    prompt: str = ''

    # Language configuration
    source_override: SourceOverrideMap = field(default_factory=dict)

    # Processing settings
    max_concurrent_api_calls: int = 5
    requests_per_minute: int = 60
    debug: bool = False

    # Logging
    log_level: str = 'INFO'
    log_file_path: Optional[str] = None
    log_to_console: bool = True


def _load_dotenv_files(working_dir: str) -> Optional[str]:
    """Load a .env file from the working directory or its docker/ folder."""
    for candidate in (os.path.join(working_dir, '.env'), os.path.join(working_dir, 'docker', '.env')):
        if os.path.exists(candidate):
            load_dotenv(candidate)
            return candidate
    return None


def _load_yaml_config(working_dir: str) -> Dict[str, Any]:
    """Load and validate the YAML configuration file; a missing file yields {}."""
    config_file = os.environ.get('TRANSLATOR_CONFIG_FILE', os.path.join(working_dir, DEFAULT_CONFIG_FILE))
    if not os.path.isabs(config_file):
        config_file = os.path.abspath(config_file)

    if not os.path.exists(config_file):
        if 'TRANSLATOR_CONFIG_FILE' in os.environ:
            print(f"Warning: Configuration file '{config_file}' not found. Using default configuration.",
                  file=sys.stderr)
        return {}

    try:
        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file '{config_file}': {e}") from e
    except OSError as e:
        print(f"Error: Could not read configuration file '{config_file}': {e}", file=sys.stderr)
        print("Using default configuration.", file=sys.stderr)
        return {}

    if loaded_config is None:
        print(f"Warning: Configuration file '{config_file}' is empty. Using default configuration.",
              file=sys.stderr)
        return {}
    try:
        jsonschema.validate(instance=loaded_config, schema=CONFIG_SCHEMA)
    except jsonschema.ValidationError as e:
        raise ConfigError(f"Invalid configuration in '{config_file}': {e.message}") from e
    return loaded_config


def _coerce_source_override(value: Union[str, Dict[str, str], None]) -> SourceOverrideMap:
    if isinstance(value, dict):
        return {str(k).strip(): str(v).strip() for k, v in value.items() if str(k).strip() and str(v).strip()}
    return parse_source_override(value)


def load_app_config(cli_overrides: Optional[Dict[str, Any]] = None) -> AppConfig:
    """
    Load application configuration.

    Precedence, lowest first: defaults, the YAML file (TRANSLATOR_CONFIG_FILE
    or ./config.yaml), environment variables (a .env file is loaded first),
    and ``cli_overrides``. Overrides whose value is None are ignored.

    Returns:
        AppConfig: The loaded application configuration.

    Raises:
        ConfigError: If the YAML file is invalid.
    """
    working_dir = os.getcwd()
    dotenv_path = _load_dotenv_files(working_dir)
    config = _load_yaml_config(working_dir)
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}

    log_config = config.get('logging') or {}
    app_config = AppConfig(
        service=config.get('service', 'openai'),
        matcher=config.get('matcher', 'none'),
        api_key=os.environ.get('OPENAI_API_KEY'),
        base_url=os.environ.get('OPENAI_BASE_URL', config.get('base_url')),
        model_name=os.environ.get('MODEL_NAME', config.get('model_name', 'gpt-4o-mini')),
        prompt=config.get('prompt') or '',
        source_override=_coerce_source_override(config.get('source_override')),
        max_concurrent_api_calls=config.get('max_concurrent_api_calls', 5),
        requests_per_minute=config.get('requests_per_minute', 60),
        debug=config.get('debug', False),
        log_level=log_config.get('log_level', 'INFO').upper(),
        log_file_path=log_config.get('log_file_path'),
        log_to_console=log_config.get('log_to_console', True),
    )

    for name in ('service', 'matcher', 'api_key', 'base_url', 'model_name', 'prompt', 'debug'):
        if name in overrides:
            setattr(app_config, name, overrides[name])
    if 'source_override' in overrides:
        app_config.source_override = _coerce_source_override(overrides['source_override'])
    if app_config.debug:
        app_config.log_level = 'DEBUG'

    logger = setup_logger(app_config.log_level, app_config.log_file_path, app_config.log_to_console)
    if dotenv_path:
        logger.debug("Loaded environment variables from: %s", dotenv_path)
    return app_config
