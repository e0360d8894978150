#!/usr/bin/env python3
"""
Unit tests for configuration module.

This module provides unit tests for the configuration loading, validation,
defaults and environment variable override functionality.
"""

import os
import sys
import tempfile
import yaml
import unittest
from unittest.mock import patch
from typing import Dict, Any

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from splunk_sync.config import (
    DEFAULT_PAGE_SIZE, LOCAL_DEPLOYMENT, ConfigLoader, ConfigurationError, load_config, parse_deployments,
)

ENV_VARS = ('SPLUNK_TOKEN', 'SPLUNK_USERNAME', 'SPLUNK_PASSWORD', 'SPLUNK_DEPLOYMENTS')


class TestConfigLoader(unittest.TestCase):
    """Test cases for ConfigLoader class."""

    def setUp(self):
        """Set up test fixtures."""
        self.valid_config = {
            'splunk': {
                'token': 'test-token',
                'deployments': ['splunk-a', 'splunk-b'],
            },
            'sync': {
                'page_size': 25,
            },
            'logging': {
                'level': 'DEBUG',
            },
        }
        self.temp_files = []

        # Keep the developer's environment out of the tests
        env_patcher = patch.dict(os.environ)
        env_patcher.start()
        self.addCleanup(env_patcher.stop)
        for name in ENV_VARS:
            os.environ.pop(name, None)

    def tearDown(self):
        for path in self.temp_files:
            if os.path.exists(path):
                os.unlink(path)

    def create_test_config(self, config_data: Dict[str, Any]) -> str:
        """Create a temporary config file with the given data."""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            yaml.safe_dump(config_data, f)
        self.temp_files.append(f.name)
        return f.name

    def test_valid_config(self):
        """Test loading a valid configuration."""
        config = ConfigLoader(self.create_test_config(self.valid_config)).load()

        self.assertEqual(config['splunk']['deployments'], ['splunk-a', 'splunk-b'])
        self.assertEqual(config['splunk']['default_deployment'], 'splunk-a')
        self.assertEqual(config['sync']['page_size'], 25)
        self.assertEqual(config['logging']['level'], 'DEBUG')

    def test_defaults_applied(self):
        """Test default values for optional fields."""
        config = load_config(self.create_test_config({'splunk': {'token': 'x'}}))

        self.assertFalse(config['splunk']['unsafe'])
        self.assertFalse(config['splunk']['verbose'])
        self.assertFalse(config['splunk']['cloud'])
        self.assertEqual(config['splunk']['timeout'], 30)
        self.assertEqual(config['sync']['page_size'], DEFAULT_PAGE_SIZE)
        self.assertEqual(config['sync']['output_file'], 'sync_graph.json')
        self.assertEqual(config['logging']['retention_days'], 7)
        self.assertEqual(config['error_handling']['max_retries'], 3)

    def test_no_deployments_uses_local_sentinel(self):
        config = load_config(self.create_test_config({'splunk': {'token': 'x'}}))

        self.assertEqual(config['splunk']['deployments'], [LOCAL_DEPLOYMENT])
        self.assertEqual(config['splunk']['default_deployment'], LOCAL_DEPLOYMENT)

    def test_deployments_as_string(self):
        data = {'splunk': {'token': 'x', 'deployments': 'one, two'}}
        config = load_config(self.create_test_config(data))
        self.assertEqual(config['splunk']['deployments'], ['one', 'two'])

    def test_missing_file(self):
        with self.assertRaises(ConfigurationError) as ctx:
            ConfigLoader('/nonexistent/config.yaml').load()
        self.assertIn('not found', str(ctx.exception))

    def test_invalid_yaml(self):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            f.write('splunk: [unclosed')
        self.temp_files.append(f.name)

        with self.assertRaises(ConfigurationError):
            ConfigLoader(f.name).load()

    def test_missing_splunk_section(self):
        with self.assertRaises(ConfigurationError) as ctx:
            load_config(self.create_test_config({'sync': {'page_size': 10}}))
        self.assertIn("'splunk'", str(ctx.exception))

    def test_missing_credentials(self):
        with self.assertRaises(ConfigurationError) as ctx:
            load_config(self.create_test_config({'splunk': {'deployments': ['a']}}))
        self.assertIn('credentials', str(ctx.exception))

    def test_username_without_password(self):
        with self.assertRaises(ConfigurationError) as ctx:
            load_config(self.create_test_config({'splunk': {'username': 'admin'}}))
        self.assertIn('password', str(ctx.exception))

    def test_cloud_requires_deployments(self):
        with self.assertRaises(ConfigurationError) as ctx:
            load_config(self.create_test_config({'splunk': {'token': 'x', 'cloud': True}}))
        self.assertIn('Cloud mode', str(ctx.exception))

    def test_duplicate_deployments(self):
        data = {'splunk': {'token': 'x', 'deployments': ['a', 'a']}}
        with self.assertRaises(ConfigurationError):
            load_config(self.create_test_config(data))

    def test_invalid_page_size(self):
        data = {'splunk': {'token': 'x'}, 'sync': {'page_size': 0}}
        with self.assertRaises(ConfigurationError) as ctx:
            load_config(self.create_test_config(data))
        self.assertIn('page_size', str(ctx.exception))

    def test_unsupported_truststore_type(self):
        data = {'splunk': {'token': 'x', 'truststore_type': 'JKS'}}
        with self.assertRaises(ConfigurationError):
            load_config(self.create_test_config(data))

    def test_all_errors_reported(self):
        data = {'splunk': {'cloud': True}, 'sync': {'page_size': -1}}
        with self.assertRaises(ConfigurationError) as ctx:
            load_config(self.create_test_config(data))

        message = str(ctx.exception)
        self.assertIn('credentials', message)
        self.assertIn('Cloud mode', message)
        self.assertIn('page_size', message)

    def test_env_var_overrides(self):
        """Test environment variable overrides for sensitive data."""
        os.environ['SPLUNK_TOKEN'] = 'env-token'
        os.environ['SPLUNK_DEPLOYMENTS'] = 'east,west'

        config = load_config(self.create_test_config(self.valid_config))

        self.assertEqual(config['splunk']['token'], 'env-token')
        self.assertEqual(config['splunk']['deployments'], ['east', 'west'])

    def test_env_credentials_satisfy_validation(self):
        os.environ['SPLUNK_USERNAME'] = 'admin'
        os.environ['SPLUNK_PASSWORD'] = 'changeme'

        config = load_config(self.create_test_config({'splunk': {}}))

        self.assertEqual(config['splunk']['username'], 'admin')
        self.assertEqual(config['splunk']['password'], 'changeme')

    def test_config_path_from_env(self):
        path = self.create_test_config(self.valid_config)
        with patch.dict(os.environ, {'CONFIG_PATH': path}):
            loader = ConfigLoader()
        self.assertEqual(loader.config_path, path)


class TestParseDeployments(unittest.TestCase):
    """Test cases for the deployment list parser."""

    def test_parse(self):
        self.assertEqual(parse_deployments(' a, b ,,c '), ['a', 'b', 'c'])

    def test_parse_empty(self):
        self.assertEqual(parse_deployments(''), [])


if __name__ == '__main__':
    unittest.main()
