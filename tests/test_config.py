"""
Review Broker: Config Loader Tests

Tests three-tier config loading: base file → overlay files → env vars,
plus the typed BrokerSettings view.
"""

import os
import shutil
import sys
import tempfile
import unittest
from unittest import mock

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from broker.config import (
    BrokerSettings,
    _load_env_overrides,
    _load_overlay_file,
    deep_merge,
    get_config_value,
    load_config,
)


def _clean_env():
    return {k: v for k, v in os.environ.items() if not k.startswith("RB_")}


class TestDeepMerge(unittest.TestCase):
    def test_flat_merge(self):
        self.assertEqual(deep_merge({"a": 1, "b": 2}, {"b": 99, "c": 3}), {"a": 1, "b": 99, "c": 3})

    def test_nested_merge(self):
        base = {"server": {"host": "127.0.0.1", "port": 3000}}
        result = deep_merge(base, {"server": {"port": 4000}})
        self.assertEqual(result, {"server": {"host": "127.0.0.1", "port": 4000}})

    def test_overlay_replaces_list(self):
        self.assertEqual(deep_merge({"items": [1, 2]}, {"items": [9]}), {"items": [9]})

    def test_base_not_mutated(self):
        base = {"session": {"timeout_seconds": 480}}
        deep_merge(base, {"session": {"timeout_seconds": 10}})
        self.assertEqual(base["session"]["timeout_seconds"], 480)


class TestEnvOverrides(unittest.TestCase):
    def test_nested_keys_and_parsing(self):
        env = _clean_env()
        env.update({
            "RB_SERVER__PORT": "3100",
            "RB_REVIEW__OPEN_BROWSER": "false",
            "RB_SESSION__TIMEOUT_SECONDS": "120",
            "RB_ENV": "dev",
        })
        with mock.patch.dict(os.environ, env, clear=True):
            overrides = _load_env_overrides()
        self.assertEqual(overrides["server"]["port"], 3100)
        self.assertIs(overrides["review"]["open_browser"], False)
        self.assertEqual(overrides["session"]["timeout_seconds"], 120)
        self.assertNotIn("env", overrides)

    def test_no_overrides(self):
        with mock.patch.dict(os.environ, _clean_env(), clear=True):
            self.assertEqual(_load_env_overrides(), {})


class TestLoadConfig(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.base = os.path.join(self.tmp, "review_config.yaml")
        with open(self.base, "w") as f:
            f.write("session:\n  timeout_seconds: 480\nserver:\n  port: 3000\n")
        os.makedirs(os.path.join(self.tmp, "config"))
        with open(os.path.join(self.tmp, "config", "staging.yaml"), "w") as f:
            f.write("server:\n  port: 3500\n")

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_base_only(self):
        with mock.patch.dict(os.environ, _clean_env(), clear=True):
            cfg = load_config(base_path=self.base)
        self.assertEqual(cfg["server"]["port"], 3000)
        self.assertEqual(cfg["_active_env"], "default")

    def test_overlay_beside_base(self):
        with mock.patch.dict(os.environ, _clean_env(), clear=True):
            cfg = load_config(base_path=self.base, env="staging", config_dir=os.path.join(self.tmp, "none"))
        self.assertEqual(cfg["server"]["port"], 3500)
        self.assertEqual(cfg["session"]["timeout_seconds"], 480)
        self.assertEqual(cfg["_active_env"], "staging")

    def test_env_vars_win(self):
        env = _clean_env()
        env["RB_SERVER__PORT"] = "3900"
        with mock.patch.dict(os.environ, env, clear=True):
            cfg = load_config(base_path=self.base, env="staging", config_dir=os.path.join(self.tmp, "config"))
        self.assertEqual(cfg["server"]["port"], 3900)

    def test_missing_overlay(self):
        with mock.patch.dict(os.environ, _clean_env(), clear=True):
            self.assertEqual(_load_overlay_file(self.base, env="prod", config_dir=self.tmp), {})

    def test_missing_base_file(self):
        with mock.patch.dict(os.environ, _clean_env(), clear=True):
            cfg = load_config(base_path=os.path.join(self.tmp, "absent.yaml"))
        self.assertEqual(set(cfg), {"_active_env", "_config_source"})

    def test_get_config_value(self):
        cfg = {"session": {"timeout_seconds": 60}}
        self.assertEqual(get_config_value("session.timeout_seconds", cfg), 60)
        self.assertEqual(get_config_value("session.missing", cfg, default=7), 7)
        self.assertIsNone(get_config_value("a.b.c", cfg))


class TestBrokerSettings(unittest.TestCase):
    def test_defaults(self):
        s = BrokerSettings.from_config({})
        self.assertEqual(s.timeout_seconds, 480)
        self.assertEqual(s.result_retention_seconds, 60)
        self.assertEqual(s.port, 3000)
        self.assertEqual(s.port_attempts, 20)
        self.assertTrue(s.open_browser)
        self.assertEqual(s.enhancer_factory, "")
        self.assertEqual(s.log_level, "INFO")

    def test_from_config(self):
        s = BrokerSettings.from_config({
            "session": {"timeout_seconds": 90},
            "server": {"host": "0.0.0.0", "port": 3100},
            "review": {"open_browser": False},
            "enhancer": {"factory": "pkg.mod:build", "base_url": "https://x"},
        })
        self.assertEqual(s.timeout_seconds, 90.0)
        self.assertEqual(s.host, "0.0.0.0")
        self.assertFalse(s.open_browser)
        self.assertEqual(s.enhancer_factory, "pkg.mod:build")
        self.assertEqual(s.enhancer_base_url, "https://x")

    def test_invalid_values(self):
        with self.assertRaises(ValueError) as ctx:
            BrokerSettings.from_config({"session": {"timeout_seconds": 0}, "server": {"port": 70000}})
        self.assertIn("timeout_seconds", str(ctx.exception))
        self.assertIn("server.port", str(ctx.exception))

    def test_shipped_config_is_valid(self):
        with mock.patch.dict(os.environ, _clean_env(), clear=True):
            cfg = load_config(base_path=os.path.join(_base, "review_config.yaml"))
        s = BrokerSettings.from_config(cfg)
        self.assertEqual(s.validate(), [])
        self.assertEqual(s.timeout_seconds, 480)


if __name__ == "__main__":
    unittest.main()
