"""
Configuration management for IMAP Search.

Decodes untyped step configuration into a SearchConfig and loads step files
with support for local overrides and credentials from the environment.
"""

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigurationError, StepDecodeError

NO_CRITERIA_MESSAGE = (
    "you have to use one of searchfrom, searchto, searchsubject or subjectbody parameters"
)

# step key -> (SearchConfig field, accepted types)
STEP_FIELDS = {
    "imaphost": ("imap_host", (str,)),
    "imapport": ("imap_port", (str, int)),
    "imapuser": ("imap_user", (str,)),
    "imappassword": ("imap_password", (str,)),
    "mbox": ("mbox", (str,)),
    "mboxonsuccess": ("mbox_on_success", (str,)),
    "deleteonsuccess": ("delete_on_success", (bool,)),
    "searchfrom": ("search_from", (str,)),
    "searchto": ("search_to", (str,)),
    "searchsubject": ("search_subject", (str,)),
    "searchbody": ("search_body", (str,)),
    "imapdebug": ("imap_debug", (int,)),
}


@dataclass(frozen=True)
class SearchConfig:
    """Typed fields of one IMAP search step."""

    imap_host: str = ""
    imap_port: str = ""
    imap_user: str = ""
    imap_password: str = ""
    mbox: str = ""
    mbox_on_success: str = ""
    delete_on_success: bool = False
    search_from: str = ""
    search_to: str = ""
    search_subject: str = ""
    search_body: str = ""
    imap_debug: int = 0

    @classmethod
    def from_step(cls, step: Mapping[str, Any]) -> "SearchConfig":
        """Decode an untyped step mapping.

        Keys match case-insensitively and unknown keys are ignored.

        Args:
            step: Raw step configuration

        Returns:
            Decoded SearchConfig

        Raises:
            StepDecodeError: If the step is not a mapping or a value has the wrong type
        """
        if not isinstance(step, Mapping):
            raise StepDecodeError(f"step must be a mapping, got {type(step).__name__}")

        values: Dict[str, Any] = {}
        for key, value in step.items():
            if not isinstance(key, str) or key.lower() not in STEP_FIELDS:
                continue
            field_name, types = STEP_FIELDS[key.lower()]
            if value is None:
                continue
            # bool is an int subclass, only deleteonsuccess takes one
            if not isinstance(value, types) or (isinstance(value, bool) and bool not in types):
                raise StepDecodeError(
                    f"'{key}' expected type {types[0].__name__}, got {type(value).__name__}"
                )
            if field_name == "imap_port":
                value = str(value)
            values[field_name] = value

        return cls(**values)

    def has_search_criteria(self) -> bool:
        return any((self.search_from, self.search_to, self.search_subject, self.search_body))

    def validate(self) -> None:
        """Reject a configuration without any search pattern.

        Raises:
            ConfigurationError: If all four search patterns are empty
        """
        if not self.has_search_criteria():
            raise ConfigurationError(NO_CRITERIA_MESSAGE)


class ConfigManager:
    """Handles step file loading and decoding."""

    DEFAULT_CONFIG = {
        "imaphost": "",
        "imapport": "",
        "imapuser": "",
        "imappassword": "",
        "mbox": "INBOX",
        "mboxonsuccess": "",
        "deleteonsuccess": False,
        "searchfrom": "",
        "searchto": "",
        "searchsubject": "",
        "searchbody": "",
        "imapdebug": 0,
    }

    def __init__(self, config_file: str = "step.json", local_config_file: str = "step.local.json",
                 verbose: bool = False):
        """Initialize configuration manager.

        Args:
            config_file: Main step file path
            local_config_file: Local overrides step file path
            verbose: Whether to print loading notices
        """
        self.config_file = config_file
        self.local_config_file = local_config_file
        self.verbose = verbose
        self.config = self._load_config()
        self._setup_credentials()

    def _load_config(self) -> Dict[str, Any]:
        """Load step configuration from files with fallback to defaults."""
        config = dict(self.DEFAULT_CONFIG)

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                user_config = json.load(f)
            if not isinstance(user_config, dict):
                raise json.JSONDecodeError("step file must hold a JSON object", "", 0)
            self._merge_config(config, user_config)
        except FileNotFoundError:
            if self.verbose:
                print(f"[!] {self.config_file} not found, using default configuration")
        except json.JSONDecodeError as e:
            print(f"[!] Error parsing {self.config_file}: {e}, using default configuration")

        try:
            with open(self.local_config_file, "r", encoding="utf-8") as f:
                local_config = json.load(f)
            self._merge_config(config, local_config)
            if self.verbose:
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
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def _setup_credentials(self) -> None:
        """Fill missing IMAP credentials from the environment or a .env file."""
        load_dotenv(find_dotenv(usecwd=True))
        if not self.config.get("imapuser"):
            self.config["imapuser"] = os.getenv("IMAP_USER", "")
        if not self.config.get("imappassword"):
            self.config["imappassword"] = os.getenv("IMAP_PASS", "")

    def get_search_config(self) -> SearchConfig:
        """Decode the loaded step.

        Raises:
            StepDecodeError: If a value has the wrong type
        """
        return SearchConfig.from_step(self.config)
