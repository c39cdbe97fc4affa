# services/settings_service.py
# A simple service for persisting simulator settings.

from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import dataclass, asdict

from utils.constants import (
    COMPLETION_TOLERANCE,
    DERIVED_COUPLING,
    MAX_SAMPLES,
    TICK_RATE_HZ,
)

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())

SIMULATION_SECTION = "simulation"


@dataclass(frozen=True)
class SimulationSettings:
    tick_rate_hz: float = TICK_RATE_HZ
    max_samples: int = MAX_SAMPLES
    derived_coupling: float = DERIVED_COUPLING
    completion_tolerance: float = COMPLETION_TOLERANCE

    @property
    def tick_seconds(self) -> float:
        return 1.0 / self.tick_rate_hz

    @property
    def tick_interval_ms(self) -> int:
        return max(1, round(1000.0 / self.tick_rate_hz))

    def to_dict(self):
        return asdict(self)


class SettingsService:
    """
    Manages loading and saving simulator settings from a JSON file.
    The ``"simulation"`` section overrides engine timing and coupling.
    """
    def __init__(self, file_name="simulator_settings.json"):
        """
        Initializes the service and loads existing settings from the file.
        """
        self.file_path = file_name
        self.settings = self._load()

    def _load(self):
        """
        Loads the settings from the JSON file.
        Returns an empty dictionary if the file doesn't exist or is invalid.
        """
        try:
            if os.path.exists(self.file_path):
                with open(self.file_path, 'r') as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    return data
                logger.warning("Ignoring settings file %s: top level is not an object", self.file_path)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not load settings: %s", e)
        return {}

    def save(self):
        """Saves the current settings dictionary to the JSON file."""
        try:
            with open(self.file_path, 'w') as f:
                json.dump(self.settings, f, indent=4)
        except OSError as e:
            logger.warning("Could not save settings: %s", e)

    def get_value(self, key, default=None):
        """
        Retrieves a value from the settings for a given key.

        Args:
            key (str): The key for the setting.
            default: The value to return if the key is not found.

        Returns:
            The setting value or the default.
        """
        return self.settings.get(key, default)

    def set_value(self, key, value):
        """
        Sets a value in the settings for a given key.
        """
        self.settings[key] = value

    def simulation_settings(self) -> SimulationSettings:
        """
        Builds :class:`SimulationSettings` from the ``"simulation"`` section.

        Missing, non-numeric, non-finite or non-positive values fall back to
        defaults; ``derived_coupling`` may be zero or negative.
        """
        section = self.get_value(SIMULATION_SECTION, {}) or {}
        if not isinstance(section, dict):
            logger.warning("Ignoring non-object %r settings section", SIMULATION_SECTION)
            section = {}
        defaults = SimulationSettings()

        def _number(key, default, positive=True, integer=False):
            raw = section.get(key, default)
            if isinstance(raw, bool) or not isinstance(raw, (int, float)):
                logger.warning("Invalid %s setting %r, using %r", key, raw, default)
                return default
            if not math.isfinite(raw):
                logger.warning("Non-finite %s setting %r, using %r", key, raw, default)
                return default
            if positive and (raw <= 0 or (integer and int(raw) < 1)):
                logger.warning("Non-positive %s setting %r, using %r", key, raw, default)
                return default
            return int(raw) if integer else float(raw)

        return SimulationSettings(
            tick_rate_hz=_number("tick_rate_hz", defaults.tick_rate_hz),
            max_samples=_number("max_samples", defaults.max_samples, integer=True),
            derived_coupling=_number("derived_coupling", defaults.derived_coupling, positive=False),
            completion_tolerance=_number("completion_tolerance", defaults.completion_tolerance),
        )

    def set_simulation_settings(self, sim: SimulationSettings):
        self.set_value(SIMULATION_SECTION, sim.to_dict())
