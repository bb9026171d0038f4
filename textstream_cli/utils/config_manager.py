"""Configuration Management for CLI Settings"""

import os
from pathlib import Path
from typing import Any
from uuid import uuid4

import yaml
from rich.console import Console

console = Console()


class ConfigManager:
    """Manage CLI configuration settings"""

    def __init__(self, config_dir: Path | None = None):
        self.config_dir = config_dir or Path(
            os.getenv("TEXTSTREAM_CONFIG_DIR", Path.home() / ".textstream")
        )
        self.config_file = self.config_dir / "config.yaml"

    def ensure_config_dir(self):
        """Ensure config directory exists"""
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def load_config(self) -> dict[str, Any]:
        """Load configuration from file"""
        if not self.config_file.exists():
            return self.get_default_config()

        try:
            with open(self.config_file) as f:
                config = yaml.safe_load(f) or {}
            # Merge with defaults to ensure all keys exist
            return _merge(self.get_default_config(), config)
        except Exception as e:
            console.print(f"[red]Error loading config: {e}[/red]")
            return self.get_default_config()

    def save_config(self, config: dict[str, Any]):
        """Save configuration to file"""
        self.ensure_config_dir()
        try:
            with open(self.config_file, "w") as f:
                yaml.dump(config, f, default_flow_style=False)
        except Exception as e:
            console.print(f"[red]Error saving config: {e}[/red]")
            raise

    def get_default_config(self) -> dict[str, Any]:
        """Get default configuration"""
        return {
            "api": {
                "base_url": os.getenv("TEXTSTREAM_API_URL", "http://localhost:8000"),
                "timeout": 30,
            },
            "client": {
                "connection_id": None,
                "poll_interval_s": 0.5,
            },
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'api.base_url')"""
        config = self.load_config()
        keys = key.split(".")

        for k in keys:
            if isinstance(config, dict) and k in config:
                config = config[k]
            else:
                return default

        return config

    def set(self, key: str, value: Any):
        """Set configuration value using dot notation"""
        config = self.load_config()
        keys = key.split(".")

        # Navigate to the parent dict
        current = config
        for k in keys[:-1]:
            if not isinstance(current.get(k), dict):
                current[k] = {}
            current = current[k]

        current[keys[-1]] = value
        self.save_config(config)

    def get_connection_id(self) -> str:
        """
        Connection identifier this CLI presents to the API.

        Generated on first use and persisted, so jobs submitted in one
        invocation can be listed and cancelled from later ones.
        """
        connection_id = self.get("client.connection_id")
        if not connection_id:
            connection_id = str(uuid4())
            self.set("client.connection_id", connection_id)
        return str(connection_id)

    def reset(self):
        """Reset configuration to defaults"""
        self.save_config(self.get_default_config())


def _merge(defaults: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(defaults.get(key), dict):
            defaults[key] = _merge(defaults[key], value)
        else:
            defaults[key] = value
    return defaults


# Global config manager instance
config = ConfigManager()
