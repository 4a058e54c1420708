"""
Die Hard settings.

World-level configuration: the per-policy enable flags, the fudge pause
flag, debug logging, the primary die size, karma configuration and the
actors karma is switched off for. Settings are plain dataclasses persisted
as settings.json.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union
import logging
import math

from diehard.data_models import (
    PRIMARY_DIE_FACES,
    AverageKarmaConfig,
    KarmaConfig,
    SimpleKarmaConfig,
)
from diehard.storage.json_store import JsonDocument, malformed_data

logger = logging.getLogger(__name__)


def coerce_int(value: Any, default: int, name: str = "") -> int:
    """
    Coerce a stored value to a finite integer.

    Booleans, non-numeric values and NaN/infinity fall back to the default.
    """
    if isinstance(value, bool):
        value = None
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = math.nan
    if not math.isfinite(number):
        if value is not None:
            logger.warning(f"Setting {name or '?'}={value!r} is not a finite integer; using {default}")
        return default
    return int(number)


_TRUE_STRINGS = frozenset({"true", "yes", "on", "1"})
_FALSE_STRINGS = frozenset({"false", "no", "off", "0"})


def coerce_bool(value: Any, default: bool, name: str = "") -> bool:
    """
    Coerce a stored value to a boolean.

    Accepts booleans, the integers 0 and 1, and the usual true/false words
    in any case. Anything else falls back to the default.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_STRINGS:
            return True
        if word in _FALSE_STRINGS:
            return False
    logger.warning(f"Setting {name or '?'}={value!r} is not a boolean; using {default}")
    return default


def coerce_actor_ids(value: Any) -> set[str]:
    """Actor ids from a stored list; a missing list means none."""
    if value is None:
        return set()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"karma_disabled_actors must be a list of actor ids, got {value!r}")
    return set(value)


def karma_config_to_dict(config: KarmaConfig) -> dict[str, Any]:
    return {
        "simple": {
            "enabled": config.simple.enabled,
            "history_size": config.simple.history_size,
            "threshold": config.simple.threshold,
            "min_value": config.simple.min_value,
        },
        "average": {
            "enabled": config.average.enabled,
            "history_size": config.average.history_size,
            "threshold": config.average.threshold,
            "adjustment": config.average.adjustment,
            "cumulative": config.average.cumulative,
        },
    }


def karma_config_from_dict(data: dict[str, Any]) -> KarmaConfig:
    """Build a KarmaConfig, defaulting anything missing or invalid."""
    simple_data = data.get("simple") or {}
    average_data = data.get("average") or {}
    simple_default = SimpleKarmaConfig()
    average_default = AverageKarmaConfig()

    simple = SimpleKarmaConfig(
        enabled=coerce_bool(simple_data.get("enabled"), simple_default.enabled, "simple.enabled"),
        history_size=coerce_int(simple_data.get("history_size"), simple_default.history_size, "simple.history_size"),
        threshold=coerce_int(simple_data.get("threshold"), simple_default.threshold, "simple.threshold"),
        min_value=coerce_int(simple_data.get("min_value"), simple_default.min_value, "simple.min_value"),
    )
    average = AverageKarmaConfig(
        enabled=coerce_bool(average_data.get("enabled"), average_default.enabled, "average.enabled"),
        history_size=coerce_int(average_data.get("history_size"), average_default.history_size, "average.history_size"),
        threshold=coerce_int(average_data.get("threshold"), average_default.threshold, "average.threshold"),
        adjustment=coerce_int(average_data.get("adjustment"), average_default.adjustment, "average.adjustment"),
        cumulative=coerce_bool(average_data.get("cumulative"), average_default.cumulative, "average.cumulative"),
    )
    return KarmaConfig(simple=simple, average=average)


@dataclass
class DieHardSettings:
    """Configuration for the roll adjustment engine."""

    enable_fudge: bool = True
    enable_karma: bool = True
    fudges_paused: bool = False
    debug_logging: bool = False
    primary_die_faces: int = PRIMARY_DIE_FACES
    karma: KarmaConfig = field(default_factory=KarmaConfig)

    # Actors karma is switched off for; everyone else is eligible
    karma_disabled_actors: set[str] = field(default_factory=set)

    def is_karma_enabled_for(self, actor_id: str) -> bool:
        return actor_id not in self.karma_disabled_actors

    def set_karma_for_actor(self, actor_id: str, enabled: bool) -> None:
        if enabled:
            self.karma_disabled_actors.discard(actor_id)
        else:
            self.karma_disabled_actors.add(actor_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "enable_fudge": self.enable_fudge,
            "enable_karma": self.enable_karma,
            "fudges_paused": self.fudges_paused,
            "debug_logging": self.debug_logging,
            "primary_die_faces": self.primary_die_faces,
            "karma": karma_config_to_dict(self.karma),
            "karma_disabled_actors": sorted(self.karma_disabled_actors),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DieHardSettings":
        faces = coerce_int(data.get("primary_die_faces"), PRIMARY_DIE_FACES, "primary_die_faces")
        if faces < 1:
            logger.warning(f"primary_die_faces={faces} is invalid; using d{PRIMARY_DIE_FACES}")
            faces = PRIMARY_DIE_FACES
        return cls(
            enable_fudge=coerce_bool(data.get("enable_fudge"), True, "enable_fudge"),
            enable_karma=coerce_bool(data.get("enable_karma"), True, "enable_karma"),
            fudges_paused=coerce_bool(data.get("fudges_paused"), False, "fudges_paused"),
            debug_logging=coerce_bool(data.get("debug_logging"), False, "debug_logging"),
            primary_die_faces=faces,
            karma=karma_config_from_dict(data.get("karma") or {}),
            karma_disabled_actors=coerce_actor_ids(data.get("karma_disabled_actors")),
        )


class SettingsStore:
    """Loads and saves DieHardSettings as settings.json in a data directory."""

    def __init__(self, data_dir: Union[str, Path]):
        self._doc = JsonDocument(Path(data_dir) / "settings.json", default={})

    @property
    def path(self) -> Path:
        return self._doc.path

    def load(self) -> DieHardSettings:
        data = self._doc.read()
        with malformed_data(self.path):
            return DieHardSettings.from_dict(data)

    def save(self, settings: DieHardSettings) -> None:
        self._doc.update(lambda data: settings.to_dict())
        logger.info(f"Settings saved to {self.path}")
