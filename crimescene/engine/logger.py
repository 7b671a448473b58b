"""Logging for the scene generator and evidence tracker.

Every component logs through a named channel (``crimescene.<channel>``).
Channels are switched on or off in ``settings.json`` under ``logChannels``;
the level comes from ``logLevel``. A disabled channel drops its records
before they reach :mod:`logging`.
"""
from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

DEFAULT_CHANNELS = {
    # One line per placement attempt outcome; noisy on large rule sets.
    "placement": False,
    # Cycle summaries, skipped placements, pruned and missing collaborators.
    "generation": True,
    # Snapshot differences and debounced regenerations.
    "monitor": True,
    # Ledger marks and checklist progress.
    "evidence": True,
    # Per-tick fingerprint reconciliation.
    "scanner": False,
    # Rule corrections made while validating configuration.
    "config": True,
    # Hand-placed objects registered, hidden and restored.
    "existing": True,
}


@dataclass
class LoggerConfig:
    """Level plus the on/off flag of each channel."""

    level: int = logging.INFO
    channels: Dict[str, bool] = field(default_factory=DEFAULT_CHANNELS.copy)

    @classmethod
    def from_settings(cls, settings_path: Path) -> "LoggerConfig":
        if not settings_path.exists():
            return cls(level=logging.INFO, channels=DEFAULT_CHANNELS.copy())
        try:
            data = json.loads(settings_path.read_text())
        except json.JSONDecodeError:
            return cls(level=logging.INFO, channels=DEFAULT_CHANNELS.copy())
        level_name = str(data.get("logLevel", "INFO")).upper()
        level = getattr(logging, level_name, logging.INFO)
        if not isinstance(level, int):
            level = logging.INFO
        channels = DEFAULT_CHANNELS.copy()
        for name, enabled in data.get("logChannels", {}).items():
            channels[name] = bool(enabled)
        return cls(level=level, channels=channels)


class ChannelLogger:
    """One subsystem's view of the log; silent while its channel is off."""

    def __init__(self, name: str, logger: logging.Logger, enabled: bool) -> None:
        self._logger = logger
        self._enabled = enabled
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value

    def debug(self, msg: str, *args, **kwargs) -> None:
        if self._enabled:
            self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        if self._enabled:
            self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        if self._enabled:
            self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs) -> None:
        if self._enabled:
            self._logger.error(msg, *args, **kwargs)


class GameLogger:
    """Owns the channel loggers handed out through :class:`EngineContext`."""

    def __init__(self, config: LoggerConfig) -> None:
        logging.basicConfig(
            level=config.level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            stream=sys.stdout,
        )
        self._root = logging.getLogger("crimescene")
        self._root.setLevel(config.level)
        self._channels: Dict[str, ChannelLogger] = {}
        for name, enabled in config.channels.items():
            self._channels[name] = ChannelLogger(
                name,
                logging.getLogger(f"crimescene.{name}"),
                enabled,
            )

    def channel(self, name: str) -> ChannelLogger:
        if name not in self._channels:
            # Unknown channels start disabled until explicitly enabled.
            self._channels[name] = ChannelLogger(
                name,
                logging.getLogger(f"crimescene.{name}"),
                False,
            )
        return self._channels[name]

    def set_enabled(self, name: str, enabled: bool) -> None:
        self.channel(name).enabled = enabled


def init_logger(settings_path: Optional[Path] = None) -> GameLogger:
    """Build the channel registry from ``settings.json`` (defaults when absent)."""

    settings_path = settings_path or Path("settings.json")
    config = LoggerConfig.from_settings(settings_path)
    return GameLogger(config)


__all__ = ["DEFAULT_CHANNELS", "GameLogger", "LoggerConfig", "ChannelLogger", "init_logger"]
