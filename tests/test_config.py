"""Tests for configuration loading and validation."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
import unittest

from ollama_stream.config import DEFAULT_CONFIG, load_config


class ConfigTests(unittest.TestCase):
    """Validate config merge and fallback behavior."""

    def _load(self, text: str | None) -> dict:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            if text is not None:
                config_path.write_text(text.strip(), encoding="utf-8")
            return load_config(config_path=config_path)

    def test_missing_config_uses_defaults(self) -> None:
        config = self._load(None)
        self.assertEqual(config, DEFAULT_CONFIG)
        self.assertEqual(config["ollama"]["endpoint"], "http://localhost:11434/api")
        self.assertEqual(config["ollama"]["model"], "")
        self.assertEqual(config["connection"]["check_interval_seconds"], 15)
        self.assertFalse(config["security"]["allow_remote_hosts"])
        self.assertEqual(config["logging"]["level"], "INFO")

    def test_partial_config_overrides_selected_values(self) -> None:
        config = self._load(
            """
[ollama]
model = "  qwen2.5 "
connect_timeout_seconds = 2.5

[logging]
level = "debug"
            """
        )
        self.assertEqual(config["ollama"]["model"], "qwen2.5")
        self.assertEqual(config["ollama"]["connect_timeout_seconds"], 2.5)
        self.assertEqual(config["logging"]["level"], "DEBUG")
        self.assertEqual(
            config["ollama"]["endpoint"], DEFAULT_CONFIG["ollama"]["endpoint"]
        )

    def test_invalid_values_fallback_to_defaults(self) -> None:
        config = self._load(
            """
[connection]
check_interval_seconds = 0

[logging]
level = "LOUD"
            """
        )
        self.assertEqual(config, DEFAULT_CONFIG)

    def test_unparseable_toml_uses_defaults(self) -> None:
        self.assertEqual(self._load("[ollama\nmodel ="), DEFAULT_CONFIG)

    def test_remote_host_disallowed_by_default_policy(self) -> None:
        config = self._load(
            """
[ollama]
endpoint = "http://example.com:11434/api"
            """
        )
        self.assertEqual(
            config["ollama"]["endpoint"], DEFAULT_CONFIG["ollama"]["endpoint"]
        )
        self.assertFalse(config["security"]["allow_remote_hosts"])

    def test_remote_host_allowed_when_policy_enabled(self) -> None:
        config = self._load(
            """
[ollama]
endpoint = "http://example.com:11434/api"

[security]
allow_remote_hosts = true
allowed_hosts = ["localhost"]
            """
        )
        self.assertEqual(config["ollama"]["endpoint"], "http://example.com:11434/api")
        self.assertTrue(config["security"]["allow_remote_hosts"])

    def test_allowlisted_remote_host(self) -> None:
        config = self._load(
            """
[ollama]
endpoint = "http://gpu-box:11434/api"

[security]
allowed_hosts = ["localhost", "GPU-Box"]
            """
        )
        self.assertEqual(config["ollama"]["endpoint"], "http://gpu-box:11434/api")

    def test_malformed_endpoint_is_left_for_the_transport(self) -> None:
        config = self._load(
            """
[ollama]
endpoint = "not a url"
            """
        )
        self.assertEqual(config["ollama"]["endpoint"], "not a url")

    @unittest.skipUnless(os.name == "posix", "POSIX permissions only")
    def test_config_file_permissions_are_tightened(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text('[ollama]\nmodel = "x"\n', encoding="utf-8")
            config_path.chmod(0o644)
            load_config(config_path=config_path)
            self.assertEqual(config_path.stat().st_mode & 0o777, 0o600)


if __name__ == "__main__":
    unittest.main()
