"""Configuration module for loading project settings, theme tickers and secrets."""

import json
import os
from pathlib import Path
from typing import Any, Dict, List

import yaml
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_CONFIG: Dict[str, Any] = {
    "tickers_file": "theme_tickers.json",
    "data_dir": "data",
    "site_data_dir": "site/public/data",
    "max_tickers_per_theme": 5,
    "fetch": {
        "max_attempts": 4,
        "base_delay_ms": 500,
        "max_delay_ms": 8000,
        "min_spacing_ms": 1100,
        "timeout_seconds": 30,
    },
    "news": {
        "page_size": 50,
        "language": "en",
    },
    "llm": {
        "endpoint": "https://router.huggingface.co/v1/chat/completions",
        "default_model": "mistralai/Mistral-7B-Instruct-v0.2",
        "temperature": 0.2,
        "max_tokens": 900,
        "min_spacing_ms": 1300,
    },
}


class ConfigError(ValueError):
    """Raised when required configuration or credentials are missing or malformed."""


def _merge_defaults(defaults: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(defaults.get(key), dict):
            merged[key] = _merge_defaults(defaults[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str | Path = "config.yaml") -> Dict[str, Any]:
    """
    Load configuration from the specified YAML file, filling gaps from ``DEFAULT_CONFIG``.

    Args:
        config_path (str | Path): Path to the configuration file. Defaults to "config.yaml".

    Returns:
        Dict[str, Any]: A dictionary containing the configuration settings.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigError: If the file is empty or not a mapping.
    """
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found at {config_path}")

    with open(config_file, "r", encoding="utf-8") as file:
        config_data = yaml.safe_load(file)

    if not config_data:
        raise ConfigError(f"Configuration file {config_path} is empty or invalid.")
    if not isinstance(config_data, dict):
        raise ConfigError(f"Configuration file {config_path} must contain a mapping.")

    return _merge_defaults(DEFAULT_CONFIG, config_data)


def load_theme_tickers(tickers_path: str | Path) -> Dict[str, List[str]]:
    """
    Load the ordered theme → ticker list mapping.

    Key order is preserved; it decides the order in which themes are processed.

    Args:
        tickers_path (str | Path): Path to the JSON mapping file.

    Returns:
        Dict[str, List[str]]: Theme name to ticker symbols.
    """
    path = Path(tickers_path)
    if not path.exists():
        raise FileNotFoundError(f"Theme tickers file not found at {tickers_path}")

    with open(path, "r", encoding="utf-8") as file:
        data = json.load(file)

    if not isinstance(data, dict):
        raise ConfigError(f"Theme tickers file {tickers_path} must contain an object.")

    tickers_by_theme: Dict[str, List[str]] = {}
    for theme, tickers in data.items():
        if tickers is None:
            tickers = []
        if not isinstance(tickers, list) or not all(isinstance(t, str) for t in tickers):
            raise ConfigError(f"Tickers for theme '{theme}' must be a list of strings.")
        tickers_by_theme[theme] = tickers
    return tickers_by_theme


def require_env(name: str) -> str:
    """Return the value of environment variable ``name`` or raise ``ConfigError``."""
    value = os.getenv(name)
    if not value:
        raise ConfigError(f"Missing env var: {name}")
    return value
