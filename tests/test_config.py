import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from invoice_deployer.config import AppConfig, load_config
from invoice_deployer.errors import ConfigurationMissing


class ConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        config = AppConfig()
        self.assertEqual(config.ssh.username, "ec2-user")
        self.assertEqual(config.readiness.max_attempts, 30)
        self.assertEqual(config.readiness.interval, 30)
        self.assertEqual(config.terraform.record_path, ".deployment-info")
        self.assertEqual(config.backup.retention_days, 30)

    def test_loads_custom_config(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(
                json.dumps(
                    {
                        "ssh": {"username": "admin", "_comment": "ignored"},
                        "readiness": {"max_attempts": 5},
                    }
                )
            )
            config = load_config(str(path))
        self.assertEqual(config.ssh.username, "admin")
        self.assertEqual(config.ssh.port, 22)
        self.assertEqual(config.readiness.max_attempts, 5)
        self.assertEqual(config.readiness.interval, 30)

    def test_missing_explicit_config_raises(self) -> None:
        with self.assertRaises(ConfigurationMissing):
            load_config("does/not/exist.json")

    def _load_text(self, text: str) -> AppConfig:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(text)
            return load_config(str(path))

    def test_malformed_json_raises(self) -> None:
        with self.assertRaises(ConfigurationMissing) as ctx:
            self._load_text('{"ssh": {"username": "admin",}')
        self.assertIn("Invalid configuration file", str(ctx.exception))

    def test_unknown_key_raises(self) -> None:
        with self.assertRaises(ConfigurationMissing) as ctx:
            self._load_text(json.dumps({"ssh": {"user_name": "admin"}}))
        self.assertIn("user_name", str(ctx.exception))

    def test_non_object_section_raises(self) -> None:
        with self.assertRaises(ConfigurationMissing):
            self._load_text(json.dumps({"readiness": [30, 30]}))
        with self.assertRaises(ConfigurationMissing):
            self._load_text(json.dumps(["ssh"]))

    def test_env_vars_override_file(self) -> None:
        env = {
            "INVOICE_DEPLOYER_SSH_USERNAME": "deployer",
            "INVOICE_DEPLOYER_TERRAFORM_DIR": "infra",
            "INVOICE_DEPLOYER_RECORD_PATH": "state/record",
            "INVOICE_DEPLOYER_REPO_URL": "https://example.com/fork.git",
        }
        with mock.patch.dict(os.environ, env):
            config = load_config()
        self.assertEqual(config.ssh.username, "deployer")
        self.assertEqual(config.terraform.directory, "infra")
        self.assertEqual(config.terraform.record_path, "state/record")
        self.assertEqual(config.application.repo_url, "https://example.com/fork.git")


if __name__ == "__main__":
    unittest.main()
