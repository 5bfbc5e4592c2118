import os
import sys
import unittest
import yaml

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import YamlConfig, load_settings
from settings_schema import TrackerSettings, validate_settings


class YamlConfigTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.path = "test_tracker_settings.yaml"
        if os.path.exists(self.path):
            os.remove(self.path)

    def tearDown(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
        os.environ.pop("SESSION_TRACKER_SETTINGS", None)

    def test_missing_file_gives_defaults(self) -> None:
        self.assertEqual(YamlConfig(self.path).load(), {})
        settings = load_settings(self.path)
        self.assertEqual(settings, TrackerSettings())
        self.assertEqual(settings.auto_advance_delay, 0.5)
        self.assertEqual(settings.default_target_sets, 3)

    def test_save_and_load(self) -> None:
        YamlConfig(self.path).save({"api_url": "http://gym.local:9000", "auto_advance_delay": 1.5})
        with open(self.path, encoding="utf-8") as f:
            self.assertEqual(yaml.safe_load(f)["api_url"], "http://gym.local:9000")
        settings = load_settings(self.path)
        self.assertEqual(settings.api_url, "http://gym.local:9000")
        self.assertEqual(settings.auto_advance_delay, 1.5)
        self.assertEqual(settings.weight_unit, "kg")

    def test_invalid_values_rejected(self) -> None:
        with self.assertRaises(ValueError):
            YamlConfig(self.path).save({"default_target_sets": 0})
        self.assertFalse(os.path.exists(self.path))
        with self.assertRaises(ValueError):
            validate_settings({"request_timeout": -1})

    def test_non_mapping_file_rejected(self) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("- just\n- a list\n")
        with self.assertRaises(ValueError):
            load_settings(self.path)

    def test_environment_overrides_path(self) -> None:
        YamlConfig(self.path).save({"log_level": "DEBUG"})
        os.environ["SESSION_TRACKER_SETTINGS"] = self.path
        self.assertEqual(YamlConfig().path, self.path)
        self.assertEqual(load_settings().log_level, "DEBUG")


if __name__ == "__main__":
    unittest.main()
