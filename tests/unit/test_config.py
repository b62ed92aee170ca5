"""Unit tests for configuration loading."""
import os
import unittest
from unittest.mock import patch

from unified_replication.config import (
    DEFAULT_BACKEND_PREFERENCE,
    OperatorConfig,
    load_operator_config,
)


class TestOperatorConfig(unittest.TestCase):
    """Test cases for environment driven configuration."""

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self):
        config = load_operator_config()
        self.assertIsInstance(config, OperatorConfig)
        self.assertEqual(config.discovery.cache_ttl_seconds, 300.0)
        self.assertEqual(config.discovery.timeout_per_backend, 10.0)
        self.assertTrue(config.discovery.enable_caching)
        self.assertEqual(config.retry.max_attempts, 5)
        self.assertEqual(config.retry.initial_delay, 1.0)
        self.assertEqual(config.retry.max_delay, 300.0)
        self.assertEqual(config.retry.multiplier, 2.0)
        self.assertEqual(config.circuit_breaker.failure_threshold, 5)
        self.assertEqual(config.circuit_breaker.cooldown_seconds, 60.0)
        self.assertEqual(config.engine.backend_preference, DEFAULT_BACKEND_PREFERENCE)
        self.assertEqual(config.server.port, 8081)
        self.assertEqual(config.log_level, "INFO")
        self.assertIsNone(config.kubeconfig)

    @patch.dict(os.environ, {
        "DISCOVERY_CACHE_TTL_SECONDS": "30",
        "DISCOVERY_CACHE_ENABLED": "False",
        "RETRY_MAX_ATTEMPTS": "2",
        "CIRCUIT_FAILURE_THRESHOLD": "3",
        "BACKEND_PREFERENCE": "PowerStore, trident",
        "VALIDATE_CAPABILITIES": "false",
        "HEALTH_PORT": "9090",
        "LOG_LEVEL": "debug",
    }, clear=True)
    def test_environment_overrides(self):
        config = load_operator_config()
        self.assertEqual(config.discovery.cache_ttl_seconds, 30.0)
        self.assertFalse(config.discovery.enable_caching)
        self.assertEqual(config.retry.max_attempts, 2)
        self.assertEqual(config.circuit_breaker.failure_threshold, 3)
        self.assertEqual(config.engine.backend_preference, ["powerstore", "trident"])
        self.assertFalse(config.engine.validate_capabilities)
        self.assertEqual(config.server.port, 9090)
        self.assertEqual(config.log_level, "DEBUG")
