import json
import tempfile
import unittest
from dataclasses import asdict
from pathlib import Path
from unittest import mock

from config import CURRENT_CONFIG_VERSION, Config
import config_persistence


class TestConfigPersistence(unittest.TestCase):
    def test_save_and_load_roundtrip(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            cfg = Config()
            cfg.audio.device_index = 2
            cfg.calibration.lowest_freq = 350.0

            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                self.assertTrue(config_persistence.save_config(cfg))
                loaded = config_persistence.load_config()

            self.assertEqual(loaded.audio.device_index, 2)
            self.assertAlmostEqual(loaded.calibration.lowest_freq, 350.0)

    def test_load_default_when_missing(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                loaded = config_persistence.load_config()
            self.assertEqual(loaded, Config())

    def test_load_migrates_and_autosaves(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            legacy = Config()
            legacy.version = 0
            legacy_data = asdict(legacy)
            legacy_data["audio"]["fft_size"] = 1000
            with open(cfg_file, "w", encoding="utf-8") as f:
                json.dump(legacy_data, f)

            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                loaded = config_persistence.load_config()

            self.assertEqual(loaded.version, CURRENT_CONFIG_VERSION)
            self.assertEqual(loaded.audio.fft_size, 2048)
            with open(cfg_file, "r", encoding="utf-8") as f:
                persisted = json.load(f)
            self.assertEqual(persisted["version"], CURRENT_CONFIG_VERSION)
            self.assertEqual(persisted["audio"]["fft_size"], 2048)

    def test_load_invalid_json_returns_default(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            with open(cfg_file, "w", encoding="utf-8") as f:
                f.write("{invalid json")

            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                loaded = config_persistence.load_config()

            self.assertIsInstance(loaded, Config)

    def test_load_malformed_sections_returns_usable_config(self):
        payloads = (
            {"audio": None},
            {"audio": {"min_decibels": "loud"}},
            {"calibration": {"warmup_ms": "x"}},
            ["not", "an", "object"],
        )
        for payload in payloads:
            with tempfile.TemporaryDirectory() as tmpdir:
                cfg_file = Path(tmpdir) / "config.json"
                with open(cfg_file, "w", encoding="utf-8") as f:
                    json.dump(payload, f)

                with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                    loaded = config_persistence.load_config()

            self.assertEqual(loaded.audio, Config().audio)
            self.assertEqual(loaded.calibration, Config().calibration)

    def test_load_unexpected_error_returns_default(self):
        with mock.patch.object(config_persistence, "get_config_file", side_effect=RuntimeError("boom")):
            self.assertEqual(config_persistence.load_config(), Config())

    def test_save_failure_returns_false(self):
        cfg = Config()

        with mock.patch.object(config_persistence, "get_config_file", side_effect=OSError("boom")):
            self.assertFalse(config_persistence.save_config(cfg))


if __name__ == "__main__":
    unittest.main()
