"""
Static per-rollout defaults.

Second-priority config source, consulted when the cache has no entry. Values
come from an optional YAML rollout file and from per-rollout environment
variables; the environment wins over the file.

YAML layout::

    rollouts:
      checkout-v2:
        enabled: true
        percentage: 10
        stop_loss:
          error_rate_threshold: 0.02
          p95_latency_threshold_ms: 800

Environment keys for ``checkout-v2`` (with an empty prefix)::

    CHECKOUT_V2_ENABLED=true
    CHECKOUT_V2_PERCENTAGE=10
    CHECKOUT_V2_ERROR_RATE_THRESHOLD=0.02
    CHECKOUT_V2_P95_LATENCY_MS=800
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from rolloutguard.contracts.models import SAFE_DEFAULT_CONFIG, RolloutConfig
from rolloutguard.utils.env import get_env_bool, get_env_float, get_env_int, rollout_env_key
from rolloutguard.utils.errors import ErrorCode

logger = logging.getLogger(__name__)


class StaticDefaults:
    """Resolves a rollout's baseline config from YAML and the environment.

    Args:
        env: Mapping read for per-rollout keys (defaults to ``os.environ``,
            read on every call so live changes are picked up)
        prefix: Prefix prepended to every per-rollout env key
        flags_file: Optional YAML rollout file, loaded once on first use
    """

    def __init__(
        self,
        env: Mapping[str, str] | None = None,
        prefix: str = "",
        flags_file: Path | str | None = None,
    ) -> None:
        self._env = env
        self.prefix = prefix
        self.flags_file = Path(flags_file) if flags_file else None
        self._file_rollouts: dict[str, Any] | None = None
        self._load_lock = threading.Lock()

    def resolve(self, rollout_id: str) -> RolloutConfig | None:
        """Return the static config for ``rollout_id``, or None if unknown."""
        partial: dict[str, Any] = {}

        file_entry = self._file_entry(rollout_id)
        if file_entry:
            partial.update(file_entry)

        env_entry = self._env_entry(rollout_id)
        if env_entry:
            file_stop_loss = partial.pop("stop_loss", None)
            stop_loss = dict(file_stop_loss) if isinstance(file_stop_loss, Mapping) else {}
            stop_loss.update(env_entry.pop("stop_loss", {}))
            partial.update(env_entry)
            if stop_loss:
                partial["stop_loss"] = stop_loss

        if not partial:
            return None
        return SAFE_DEFAULT_CONFIG.merge(partial)

    def _env_entry(self, rollout_id: str) -> dict[str, Any]:
        source = os.environ if self._env is None else self._env
        entry: dict[str, Any] = {}

        enabled = get_env_bool(rollout_env_key(rollout_id, "ENABLED", self.prefix), source)
        if enabled is not None:
            entry["enabled"] = enabled

        percentage = get_env_int(rollout_env_key(rollout_id, "PERCENTAGE", self.prefix), source)
        if percentage is not None:
            entry["percentage"] = percentage

        stop_loss: dict[str, Any] = {}
        error_rate = get_env_float(
            rollout_env_key(rollout_id, "ERROR_RATE_THRESHOLD", self.prefix), source
        )
        if error_rate is not None:
            stop_loss["error_rate_threshold"] = error_rate
        p95 = get_env_float(rollout_env_key(rollout_id, "P95_LATENCY_MS", self.prefix), source)
        if p95 is not None:
            stop_loss["p95_latency_threshold_ms"] = p95
        if stop_loss:
            entry["stop_loss"] = stop_loss

        return entry

    def _file_entry(self, rollout_id: str) -> dict[str, Any] | None:
        rollouts = self._load_file()
        entry = rollouts.get(rollout_id)
        if entry is None:
            return None
        if not isinstance(entry, Mapping):
            logger.warning("Ignoring non-mapping entry for rollout %s in %s", rollout_id, self.flags_file)
            return None
        return dict(entry)

    def _load_file(self) -> dict[str, Any]:
        if self._file_rollouts is not None:
            return self._file_rollouts

        with self._load_lock:
            if self._file_rollouts is not None:
                return self._file_rollouts
            self._file_rollouts = self._read_file()
            return self._file_rollouts

    def _read_file(self) -> dict[str, Any]:
        if self.flags_file is None:
            return {}

        if not self.flags_file.exists():
            logger.warning("Rollout file not found at %s, using environment only", self.flags_file)
            return {}

        try:
            with open(self.flags_file, encoding="utf-8") as f:
                document = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(
                "Failed to load rollout file %s: %s",
                self.flags_file,
                e,
                extra={"error_code": ErrorCode.E801_INVALID_CONFIG_FILE.value},
            )
            return {}

        rollouts = document.get("rollouts") if isinstance(document, Mapping) else None
        if not isinstance(rollouts, Mapping):
            logger.error(
                "Rollout file %s has no 'rollouts' mapping",
                self.flags_file,
                extra={"error_code": ErrorCode.E801_INVALID_CONFIG_FILE.value},
            )
            return {}

        logger.info("Loaded %d rollout defaults from %s", len(rollouts), self.flags_file)
        return {str(k): v for k, v in rollouts.items()}

    def reload(self) -> None:
        """Forget the loaded file so the next lookup re-reads it."""
        with self._load_lock:
            self._file_rollouts = None
