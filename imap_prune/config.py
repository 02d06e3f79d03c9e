"""
Configuration management for IMAP Mail Prune.

Handles loading of configuration files with support for local overrides,
per-provider server and folder settings, and automatic CPU core detection.
"""

import copy
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union


@dataclass(frozen=True)
class ProviderSettings:
    """Server endpoint and well-known folder names of one mail provider."""

    name: str
    imap_host: str
    imap_port: int
    inbox_folder: str
    spam_folder: str
    trash_folder: str

    def resolve_folder(self, folder: str) -> str:
        """Map a well-known folder name to this provider's folder.

        Args:
            folder: "inbox", "spam", "trash" or a literal folder name

        Returns:
            The provider's folder name, or folder unchanged if not well-known
        """
        well_known = {
            "inbox": self.inbox_folder,
            "spam": self.spam_folder,
            "trash": self.trash_folder,
        }
        return well_known.get(folder.lower(), folder)


class ConfigManager:
    """Handles configuration loading and validation."""

    DEFAULT_CONFIG = {
        "mail_settings": {
            "provider": "gmx"
        },
        "providers": {
            "gmx": {
                "imap_host": "imap.gmx.net",
                "imap_port": 993,
                "folders": {"inbox": "INBOX", "spam": "Spamverdacht", "trash": "Trash"}
            },
            "icloud": {
                "imap_host": "imap.mail.me.com",
                "imap_port": 993,
                "folders": {"inbox": "INBOX", "spam": "Junk", "trash": "Deleted Messages"}
            }
        },
        "prune_settings": {
            "permanent": False,
            "verbose": True,
            "timeout": 30,
            "max_workers": "auto",
            "fetch_batch_size": 50,
            "fetch_buffer_size": 500,
            "stop_on_error": False
        },
        "targets": [
            {"folder": "spam", "addresses": []}
        ]
    }

    def __init__(self, config_file: str = "config.json", local_config_file: str = "config.local.json"):
        """Initialize configuration manager.

        Args:
            config_file: Main configuration file path
            local_config_file: Local overrides configuration file path
        """
        self.config_file = config_file
        self.local_config_file = local_config_file
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from files with fallback to defaults."""
        config = copy.deepcopy(self.DEFAULT_CONFIG)

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                user_config = json.load(f)
            self._merge_config(config, user_config)
        except FileNotFoundError:
            print(f"[!] {self.config_file} not found, using default configuration")
        except json.JSONDecodeError as e:
            print(f"[!] Error parsing {self.config_file}: {e}, using default configuration")

        # Load local overrides
        try:
            with open(self.local_config_file, "r", encoding="utf-8") as f:
                local_config = json.load(f)
            self._merge_config(config, local_config)
            print(f"[i] Loaded local configuration overrides from {self.local_config_file}")
        except FileNotFoundError:
            pass
        except json.JSONDecodeError as e:
            print(f"[!] Error parsing {self.local_config_file}: {e}, ignoring local config")

        return config

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> None:
        """Recursively merge configuration dictionaries.

        Args:
            base: Base configuration dictionary to merge into
            override: Override configuration dictionary to merge from
        """
        for section, values in override.items():
            if section not in base:
                base[section] = values
            elif isinstance(values, dict) and isinstance(base[section], dict):
                self._merge_config(base[section], values)
            else:
                base[section] = values

    def get_optimal_workers(self, config_value: Union[str, int],
                           default_ratio: float = 0.5,
                           min_workers: int = 1,
                           max_workers: int = 20) -> int:
        """Calculate optimal number of workers based on CPU cores.

        Args:
            config_value: Either "auto" or specific number of workers
            default_ratio: Ratio of CPU cores to use when "auto"
            min_workers: Minimum number of workers
            max_workers: Maximum number of workers

        Returns:
            Optimal number of worker threads
        """
        if isinstance(config_value, int) and config_value > 0:
            return min(max(config_value, min_workers), max_workers)

        cpu_count = os.cpu_count() or 4
        optimal = max(int(cpu_count * default_ratio), min_workers)
        return min(optimal, max_workers)

    def get_provider(self, name: Optional[str] = None) -> ProviderSettings:
        """Get settings of a mail provider.

        Args:
            name: Provider key, defaults to mail_settings.provider

        Returns:
            ProviderSettings for the provider

        Raises:
            KeyError: If the provider is not configured
        """
        name = name or self.config["mail_settings"]["provider"]
        try:
            provider = self.config["providers"][name]
        except KeyError:
            raise KeyError(f"Unknown mail provider {name!r}, configured: "
                           f"{', '.join(sorted(self.config['providers']))}") from None

        folders = provider.get("folders", {})
        return ProviderSettings(
            name=name,
            imap_host=provider["imap_host"],
            imap_port=int(provider.get("imap_port", 993)),
            inbox_folder=folders.get("inbox", "INBOX"),
            spam_folder=folders.get("spam", "Spam"),
            trash_folder=folders.get("trash", "Trash"),
        )

    def get_prune_settings(self) -> Dict[str, Any]:
        """Get prune processing settings."""
        return self.config["prune_settings"]

    def get_targets(self) -> List[Dict[str, Any]]:
        """Get configured targets with folder names resolved for the provider.

        Returns:
            List of {"folder": str, "addresses": List[str]} dictionaries
        """
        provider = self.get_provider()
        targets = []
        for target in self.config["targets"]:
            targets.append({
                "folder": provider.resolve_folder(target["folder"]),
                "addresses": [a for a in target.get("addresses", []) if a],
            })
        return targets
