"""
Configuration loading and persistence.

Settings come from a JSON file saved by :class:`ConfigStore`, or from
``LLMRELAY_*`` environment variables (a ``.env`` file is honored).
"""
import json
import logging
import os
from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import dotenv

from .types import ProviderConfig
from .utils import sanitize_config

logger = logging.getLogger(__name__)

ENV_PREFIX = "LLMRELAY_"

_FLOAT_FIELDS = {"temperature", "top_p", "presence_penalty", "frequency_penalty"}
_INT_FIELDS = {"max_tokens", "image_count"}
_BOOL_FIELDS = {"enable_streaming", "enable_tools"}


def _coerce(name: str, raw: str) -> Any:
    if name in _FLOAT_FIELDS:
        return float(raw) if raw.strip() else None
    if name in _INT_FIELDS:
        return int(raw) if raw.strip() else None
    if name in _BOOL_FIELDS:
        return raw.strip().lower() in ("1", "true", "yes", "on")
    return raw


def config_from_env(env_file: Optional[Union[str, Path]] = ".env") -> ProviderConfig:
    """
    Build a ProviderConfig from ``LLMRELAY_<FIELD>`` environment variables.

    Values in ``env_file`` are loaded first without overriding variables that
    are already set. Unset fields keep their defaults.

    Example:
        LLMRELAY_PROVIDER=gemini
        LLMRELAY_ENDPOINT=https://generativelanguage.googleapis.com/v1beta
        LLMRELAY_CHAT_PATH=/models/{model}:generateContent
    """
    if env_file:
        dotenv.load_dotenv(env_file)

    values: Dict[str, Any] = {}
    for field in fields(ProviderConfig):
        raw = os.environ.get(f"{ENV_PREFIX}{field.name.upper()}")
        if raw is not None:
            values[field.name] = _coerce(field.name, raw)
    return ProviderConfig.from_dict(values)


class ConfigStore:
    """
    Holds the current ProviderConfig and persists it to a JSON file.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, defaults: Optional[ProviderConfig] = None):
        self.path = Path(path) if path else None
        self.defaults = defaults or ProviderConfig()
        self._config = self.defaults
        if self.path and self.path.exists():
            self._load()

    @property
    def current(self) -> ProviderConfig:
        return self._config

    def save(self, changes: Union[ProviderConfig, Dict[str, Any]]) -> ProviderConfig:
        """
        Replace the configuration, filling unspecified fields from the defaults.

        Args:
            changes: A full config, or a mapping of field names to new values.

        Returns:
            ProviderConfig: The new current configuration.
        """
        if isinstance(changes, ProviderConfig):
            changes = changes.to_dict()
        known = {f.name for f in fields(ProviderConfig)}
        self._config = replace(self.defaults, **{k: v for k, v in changes.items() if k in known})

        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self._config.to_dict(), indent=2), encoding="utf-8")
        logger.debug("Saved configuration: %s", sanitize_config(self._config))
        return self._config

    def clear(self) -> None:
        self._config = self.defaults
        if self.path is not None and self.path.exists():
            self.path.unlink()

    def is_configured(self) -> bool:
        """Whether endpoint, model and token are all set."""
        return bool(self._config.endpoint and self._config.model and self._config.token)

    def _load(self) -> None:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Failed to load configuration from %s: %s", self.path, exc)
            return
        if isinstance(data, dict):
            known = {f.name for f in fields(ProviderConfig)}
            self._config = replace(self.defaults, **{k: v for k, v in data.items() if k in known})
