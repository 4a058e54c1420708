"""World-level configuration for fudge and karma."""

from diehard.settings.settings import (
    DieHardSettings,
    SettingsStore,
    coerce_int,
    karma_config_from_dict,
    karma_config_to_dict,
)

__all__ = [
    "DieHardSettings",
    "SettingsStore",
    "coerce_int",
    "karma_config_from_dict",
    "karma_config_to_dict",
]
