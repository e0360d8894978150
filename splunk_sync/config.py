"""
Configuration loading and management for Splunk Sync.

This module handles loading configuration from YAML files and environment variables,
with validation and defaults.
"""

import os
import yaml
import logging
from typing import Dict, Any, List, Optional

logger = logging.getLogger(__name__)

# Deployment synced when none are configured: the on-premise instance the
# credentials were issued for.
LOCAL_DEPLOYMENT = 'localhost'

DEFAULT_PAGE_SIZE = 50


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


class ConfigLoader:
    """Handles loading and validation of application configuration."""

    # Environment variable mappings for sensitive fields
    ENV_OVERRIDES = {
        'splunk.token': 'SPLUNK_TOKEN',
        'splunk.username': 'SPLUNK_USERNAME',
        'splunk.password': 'SPLUNK_PASSWORD',
    }

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file. If None, uses CONFIG_PATH env var or 'config.yaml'
        """
        self.config_path = config_path or os.getenv('CONFIG_PATH', 'config.yaml')
        self.config = {}

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file and apply environment overrides.

        Returns:
            Parsed and validated configuration dictionary

        Raises:
            ConfigurationError: If config file not found or validation fails
        """
        try:
            with open(self.config_path, 'r') as f:
                self.config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self.config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self.config_path}")

        self._apply_env_overrides()
        self._validate()
        self._apply_defaults()

        logger.info(f"Configuration loaded successfully from {self.config_path}")
        return self.config

    def _apply_env_overrides(self):
        """Apply environment variable overrides for sensitive fields."""
        for config_key, env_var in self.ENV_OVERRIDES.items():
            env_value = os.getenv(env_var)
            if env_value:
                self._set_nested_value(self.config, config_key, env_value)
                logger.debug(f"Applied environment override for {config_key}")

        deployments = os.getenv('SPLUNK_DEPLOYMENTS')
        if deployments:
            self._set_nested_value(self.config, 'splunk.deployments', parse_deployments(deployments))
            logger.debug("Applied environment override for splunk.deployments")

    def _set_nested_value(self, config: Dict, key_path: str, value: Any):
        """Set a nested configuration value using dot notation."""
        keys = key_path.split('.')
        current = config
        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

    def _validate(self):
        """Validate required configuration fields."""
        errors = []

        splunk_config = self.config.get('splunk')
        if not isinstance(splunk_config, dict):
            raise ConfigurationError("Configuration validation failed:\n  - Missing 'splunk' section")

        if not splunk_config.get('token'):
            if not splunk_config.get('username'):
                errors.append("Missing Splunk credentials: set splunk.token or splunk.username/password")
            elif not splunk_config.get('password'):
                errors.append("Missing splunk.password for username authentication")

        deployments = splunk_config.get('deployments') or []
        if isinstance(deployments, str):
            deployments = parse_deployments(deployments)
            splunk_config['deployments'] = deployments
        if not isinstance(deployments, list):
            errors.append("splunk.deployments must be a list of deployment names")
        elif any(not isinstance(name, str) or not name.strip() for name in deployments):
            errors.append("splunk.deployments must not contain empty names")
        elif len(set(deployments)) != len(deployments):
            errors.append("splunk.deployments contains duplicate names")

        if splunk_config.get('cloud') and not deployments:
            errors.append("Cloud mode requires at least one deployment")

        truststore_type = splunk_config.get('truststore_type')
        if truststore_type and str(truststore_type).upper() not in ('PEM', 'PKCS12'):
            errors.append(f"Unsupported splunk.truststore_type: {truststore_type}")

        sync_config = self.config.get('sync') or {}
        page_size = sync_config.get('page_size', DEFAULT_PAGE_SIZE)
        if not isinstance(page_size, int) or page_size <= 0:
            errors.append("sync.page_size must be a positive integer")

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors))

    def _apply_defaults(self):
        """Apply default values for optional configuration fields."""
        splunk_defaults = {
            'unsafe': False,
            'verbose': False,
            'cloud': False,
            'timeout': 30,
            'deployments': [],
        }
        splunk_config = self.config.setdefault('splunk', {})
        for key, value in splunk_defaults.items():
            splunk_config.setdefault(key, value)

        # No deployments configured means syncing the local instance only
        if not splunk_config['deployments']:
            splunk_config['deployments'] = [LOCAL_DEPLOYMENT]
        splunk_config.setdefault('default_deployment', splunk_config['deployments'][0])

        sync_defaults = {
            'page_size': DEFAULT_PAGE_SIZE,
            'output_file': 'sync_graph.json',
        }
        sync_config = self.config.setdefault('sync', {})
        for key, value in sync_defaults.items():
            sync_config.setdefault(key, value)

        # Logging defaults
        logging_defaults = {
            'level': 'INFO',
            'log_dir': 'logs',
            'rotation': 'daily',
            'retention_days': 7
        }
        logging_config = self.config.setdefault('logging', {})
        for key, value in logging_defaults.items():
            logging_config.setdefault(key, value)

        # Error handling defaults
        error_defaults = {
            'max_retries': 3,
            'retry_wait_seconds': 5,
            'retry_backoff': 1.0
        }
        error_config = self.config.setdefault('error_handling', {})
        for key, value in error_defaults.items():
            error_config.setdefault(key, value)


def parse_deployments(value: str) -> List[str]:
    """Split a comma separated deployment list, dropping blanks."""
    return [name.strip() for name in value.split(',') if name.strip()]


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to config file

    Returns:
        Loaded configuration dictionary
    """
    loader = ConfigLoader(config_path)
    return loader.load()
