import os
import yaml

from settings_schema import TrackerSettings, validate_settings


class YamlConfig:
    """Load and save tracker settings to a YAML file."""

    def __init__(self, path: str | None = None) -> None:
        self.path = path or os.environ.get("SESSION_TRACKER_SETTINGS", "settings.yaml")

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} must contain a mapping")
        return data

    def save(self, data: dict) -> None:
        validate_settings(data)
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(dict(data), f)


def load_settings(path: str | None = None) -> TrackerSettings:
    """Return validated settings from ``path`` with defaults for missing keys."""
    data = YamlConfig(path).load()
    validate_settings(data)
    return TrackerSettings(**data)
