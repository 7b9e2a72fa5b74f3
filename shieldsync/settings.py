from __future__ import annotations

import copy
import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from .storage import KeyValueStore

logger = logging.getLogger(__name__)

SETTINGS_KEY = "settings"
MODES = ("block", "flag")


class InvalidSettingsError(ValueError):
    pass


@dataclass
class Settings:
    enabled: bool = True
    mode: str = "block"
    # Classifier confidence required before acting on an item.
    threshold: float = 0.7
    show_stats: bool = True
    whitelisted_accounts: list[str] = field(default_factory=list)
    custom_rules: list[Any] = field(default_factory=list)
    telemetry_enabled: bool = False

    def validate(self) -> None:
        if self.mode not in MODES:
            raise InvalidSettingsError(f"mode must be one of {', '.join(MODES)}: {self.mode!r}")
        if isinstance(self.threshold, bool) or not isinstance(self.threshold, (int, float)):
            raise InvalidSettingsError(f"threshold must be a number: {self.threshold!r}")
        if not 0.0 <= self.threshold <= 1.0:
            raise InvalidSettingsError(f"threshold must be within [0, 1]: {self.threshold!r}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        known = {key: copy.deepcopy(value) for key, value in data.items() if key in _FIELDS}
        settings = cls(**known)
        settings.validate()
        return settings


_FIELDS = frozenset(Settings.__dataclass_fields__)

# Written once on first activation.
INSTALL_DEFAULTS = Settings()


def default_settings() -> Settings:
    return copy.deepcopy(INSTALL_DEFAULTS)


def fallback_settings() -> Settings:
    """Defaults the popup uses before (or instead of) a stored answer."""
    return Settings(enabled=True, mode="block", threshold=0.7, whitelisted_accounts=[])


class SettingsStore:
    """Whole-object settings persisted under one key in the ``sync`` partition.

    There is no field-level merge: concurrent writers race and the last
    ``write`` wins.
    """

    def __init__(self, store: KeyValueStore):
        self._store = store

    def ensure_defaults(self) -> bool:
        if self._store.get(SETTINGS_KEY) is not None:
            return False
        self._store.set(SETTINGS_KEY, default_settings().to_dict())
        return True

    def read(self) -> Settings:
        stored = self._store.get(SETTINGS_KEY)
        if not isinstance(stored, dict):
            return fallback_settings()
        try:
            return Settings.from_dict(stored)
        except (InvalidSettingsError, TypeError) as exc:
            logger.warning("stored settings rejected; using fallback", exc_info=exc)
            return fallback_settings()

    def write(self, settings: Settings) -> None:
        settings.validate()
        self._store.set(SETTINGS_KEY, settings.to_dict())
