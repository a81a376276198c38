"""
InvOcr - Configuration Manager

This module provides centralized JSON-based configuration management.
It handles loading and saving settings and notifies subscribers when a
value changes, which is how the OCR core follows the live backend mode.
"""

import copy
import json
import logging
import os
import threading
from collections.abc import Callable
from typing import Any, Final

from invocr.config import CONFIG_FILE_PATH, DEFAULT_ASSET_DIR, DEFAULT_CACHE_DIR

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Any, Any], None]

# Default configuration values
DEFAULT_CONFIG: Final[dict[str, Any]] = {
    "version": 1,
    "ocr": {
        "backend_mode": "auto",
        "asset_dir": DEFAULT_ASSET_DIR,
        "cache_dir": DEFAULT_CACHE_DIR,
        "workers": 0,
    },
}


class ConfigManager:
    """Manages application configuration in JSON format.

    This class provides a centralized way to load, save, and access
    configuration settings. Callers may subscribe to a dot-separated key
    and are called with ``(old_value, new_value)`` whenever ``set`` changes it.
    """

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize the configuration manager.

        Args:
            config_path: Optional path to the configuration file.
                        Defaults to CONFIG_FILE_PATH.
        """
        self.config_path = config_path or CONFIG_FILE_PATH
        self._config: dict[str, Any] = {}
        self._lock = threading.RLock()
        self._subscribers: dict[str, list[ChangeCallback]] = {}

        # Ensure config directory exists
        os.makedirs(os.path.dirname(self.config_path), exist_ok=True)

        # Load or create configuration
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file or create default."""
        if os.path.exists(self.config_path):
            try:
                with open(self.config_path, encoding="utf-8") as f:
                    self._config = json.load(f)
                logger.info("Configuration loaded from JSON")

                # Upgrade config if needed
                self._upgrade_config()

            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Error loading config: {e}")
                self._config = self._get_default_config()
        else:
            self._config = self._get_default_config()
            self.save()

    def _get_default_config(self) -> dict[str, Any]:
        """Get a copy of the default configuration.

        Returns:
            Deep copy of default configuration dictionary.
        """
        return copy.deepcopy(DEFAULT_CONFIG)

    def _upgrade_config(self) -> None:
        """Fill in keys added to DEFAULT_CONFIG since the file was written."""
        current_version = self._config.get("version", 0)

        self._merge_defaults(self._config, DEFAULT_CONFIG)
        if current_version < DEFAULT_CONFIG["version"]:
            self._config["version"] = DEFAULT_CONFIG["version"]
            logger.info(f"Configuration upgraded to version {DEFAULT_CONFIG['version']}")

    def _merge_defaults(self, config: dict, defaults: dict) -> None:
        """Merge default values into config for missing keys.

        Args:
            config: Current configuration dictionary.
            defaults: Default configuration dictionary.
        """
        for key, value in defaults.items():
            if key not in config:
                config[key] = copy.deepcopy(value)
            elif isinstance(value, dict) and isinstance(config.get(key), dict):
                self._merge_defaults(config[key], value)

    def save(self) -> bool:
        """Save configuration to file.

        Returns:
            True if save was successful, False otherwise.
        """
        with self._lock:
            try:
                with open(self.config_path, "w", encoding="utf-8") as f:
                    json.dump(self._config, f, indent=2, ensure_ascii=False)
                logger.debug("Configuration saved to JSON")
                return True
            except OSError as e:
                logger.error(f"Error saving config: {e}")
                return False

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get a configuration value by dot-separated path.

        Args:
            key_path: Dot-separated path to the config value (e.g., "ocr.backend_mode")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split(".")
        with self._lock:
            value = self._config
            for key in keys:
                if isinstance(value, dict) and key in value:
                    value = value[key]
                else:
                    return default
            return value

    def set(self, key_path: str, value: Any, save_immediately: bool = True) -> None:
        """Set a configuration value by dot-separated path.

        Subscribers of ``key_path`` are notified after the value is stored,
        outside the internal lock, and only when the value actually changed.

        Args:
            key_path: Dot-separated path to the config value
            value: Value to set
            save_immediately: Whether to save to file immediately
        """
        keys = key_path.split(".")
        with self._lock:
            old_value = self.get(key_path)
            config = self._config

            # Navigate to parent key
            for key in keys[:-1]:
                if not isinstance(config.get(key), dict):
                    config[key] = {}
                config = config[key]

            config[keys[-1]] = value
            callbacks = list(self._subscribers.get(key_path, ()))

        if save_immediately:
            self.save()

        if old_value != value:
            self._notify(key_path, callbacks, old_value, value)

    def subscribe(self, key_path: str, callback: ChangeCallback) -> Callable[[], None]:
        """Register a change callback for a dot-separated key.

        Args:
            key_path: Key to observe
            callback: Called as ``callback(old_value, new_value)``

        Returns:
            A function that removes the subscription.
        """
        with self._lock:
            self._subscribers.setdefault(key_path, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(key_path, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def _notify(
        self,
        key_path: str,
        callbacks: list[ChangeCallback],
        old_value: Any,
        new_value: Any,
    ) -> None:
        for callback in callbacks:
            try:
                callback(old_value, new_value)
            except Exception as e:
                logger.error(f"Config subscriber for '{key_path}' failed: {e}")


# Singleton instance for global access
_config_manager: ConfigManager | None = None


def get_config_manager() -> ConfigManager:
    """Get the global configuration manager instance.

    Returns:
        The singleton ConfigManager instance
    """
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager
