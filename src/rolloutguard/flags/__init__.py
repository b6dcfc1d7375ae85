"""Rollout flag resolution and persistence."""

from rolloutguard.flags.static_defaults import StaticDefaults
from rolloutguard.flags.store import (
    DEFAULT_CONFIG_TTL_S,
    ConfigCache,
    FlagStore,
    config_key,
)
from rolloutguard.flags.write_back import (
    CacheOnlyWriteBack,
    ConfigWriteBack,
    PlatformEnvWriteBack,
)

__all__ = [
    "DEFAULT_CONFIG_TTL_S",
    "CacheOnlyWriteBack",
    "ConfigCache",
    "ConfigWriteBack",
    "FlagStore",
    "PlatformEnvWriteBack",
    "StaticDefaults",
    "config_key",
]
