"""Unit tests for client configuration."""
import os
import unittest
from unittest.mock import patch

from b2client.config import (
    DEFAULT_JITTER,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MIN_DELAY,
    DEFAULT_UNIT,
    ClientConfig,
    Credentials,
    RetryConfig,
)
from b2client.types import DEFAULT_API_URL


class TestRetryConfig(unittest.TestCase):
    """Test cases for RetryConfig."""

    def test_zero_fields_resolve_to_defaults(self):
        """Test zero values fall back to the defaults."""
        resolved = RetryConfig(max_attempts=0, jitter=0, min_delay=0, max_delay=0, unit=0).resolved()
        self.assertEqual(resolved.max_attempts, DEFAULT_MAX_ATTEMPTS)
        self.assertEqual(resolved.jitter, DEFAULT_JITTER)
        self.assertEqual(resolved.min_delay, DEFAULT_MIN_DELAY)
        self.assertEqual(resolved.max_delay, 0.0)
        self.assertEqual(resolved.unit, DEFAULT_UNIT)

    def test_explicit_fields_kept(self):
        """Test set values survive resolution."""
        config = RetryConfig(max_attempts=7, jitter=0.1, min_delay=0.001, max_delay=30, unit=0.001)
        self.assertEqual(config.resolved(), config)


class TestCredentials(unittest.TestCase):
    """Test cases for Credentials."""

    @patch.dict(os.environ, {"B2_KEY_ID": "id", "B2_APP_KEY": "key", "B2_KEY_NAME": "name"}, clear=True)
    def test_from_env(self):
        """Test credentials are read from the environment."""
        creds = Credentials.from_env()
        self.assertEqual(creds, Credentials("id", "key", "name"))
        self.assertTrue(creds)

    @patch.dict(os.environ, {"B2_ACCOUNT_ID": "legacy-id", "B2_ACCOUNT_KEY": "legacy-key"}, clear=True)
    def test_legacy_names(self):
        """Test the legacy account variable names are accepted."""
        creds = Credentials.from_env()
        self.assertEqual(creds.key_id, "legacy-id")
        self.assertEqual(creds.app_key, "legacy-key")

    @patch.dict(os.environ, {"PROD_B2_KEY_ID": "id", "B2_APP_KEY": "key"}, clear=True)
    def test_prefix(self):
        """Test a prefix selects a different set of variables."""
        creds = Credentials.from_env("PROD_")
        self.assertEqual(creds.key_id, "id")
        self.assertEqual(creds.app_key, "")
        self.assertFalse(creds)


class TestClientConfig(unittest.TestCase):
    """Test cases for ClientConfig."""

    @patch("b2client.config.load_dotenv")
    @patch.dict(os.environ, {
        "B2_KEY_ID": "id",
        "B2_APP_KEY": "key",
        "B2_MAX_ATTEMPTS": "5",
        "B2_RETRY_MAX": "30",
        "B2_TIMEOUT": "12.5",
        "B2_TEST_MODE": "fail_some_uploads",
    }, clear=True)
    def test_from_env(self, mock_load_dotenv):
        """Test the config is built from the environment after loading .env."""
        config = ClientConfig.from_env(dotenv_path="/tmp/b2.env")

        mock_load_dotenv.assert_called_once_with(dotenv_path="/tmp/b2.env")
        self.assertEqual(config.credentials.key_id, "id")
        self.assertEqual(config.retry.max_attempts, 5)
        self.assertEqual(config.retry.max_delay, 30.0)
        self.assertEqual(config.retry.min_delay, DEFAULT_MIN_DELAY)
        self.assertEqual(config.timeout, 12.5)
        self.assertEqual(config.api_url, DEFAULT_API_URL)
        self.assertEqual(config.test_mode, "fail_some_uploads")
        self.assertIsNone(config.user_agent)


if __name__ == "__main__":
    unittest.main()
