"""
Config write-back to the deployment platform.

The cache entry written by ``FlagStore.update_config`` expires after its TTL.
A write-back makes the change durable by also updating the static defaults
at their source, so an automatic disable survives cache expiry and restarts.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import requests

from rolloutguard.contracts.models import RolloutConfig
from rolloutguard.utils.env import rollout_env_key

logger = logging.getLogger(__name__)


@runtime_checkable
class ConfigWriteBack(Protocol):
    """Persists a rollout config beyond the cache."""

    def write_back(self, rollout_id: str, config: RolloutConfig) -> bool: ...


class CacheOnlyWriteBack:
    """No durable write-back; the cache entry is the only record."""

    def write_back(self, rollout_id: str, config: RolloutConfig) -> bool:
        logger.debug("Cache-only write-back for %s", rollout_id)
        return True


class PlatformEnvWriteBack:
    """Writes ``<ROLLOUT_ID>_ENABLED`` / ``<ROLLOUT_ID>_PERCENTAGE`` through a
    deployment platform's environment-variable API.

    The request is a ``PATCH`` of ``{"variables": {KEY: "value", ...}}`` with a
    bearer token. Changes take effect for new processes on the next deploy;
    running processes keep reading the cache.

    Args:
        api_url: Environment-variable endpoint of the platform
        token: Bearer token for the platform API
        prefix: Prefix for the per-rollout env keys
        timeout: Request timeout in seconds
        session: Optional requests session
    """

    def __init__(
        self,
        api_url: str,
        token: str,
        prefix: str = "",
        timeout: float = 2.0,
        session: requests.Session | None = None,
    ) -> None:
        self.api_url = api_url
        self.prefix = prefix
        self.timeout = timeout
        self._token = token
        self._session = session

    def variables_for(self, rollout_id: str, config: RolloutConfig) -> dict[str, str]:
        return {
            rollout_env_key(rollout_id, "ENABLED", self.prefix): "true" if config.enabled else "false",
            rollout_env_key(rollout_id, "PERCENTAGE", self.prefix): str(config.percentage),
        }

    def write_back(self, rollout_id: str, config: RolloutConfig) -> bool:
        payload = {"variables": self.variables_for(rollout_id, config)}
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }
        patch = self._session.patch if self._session is not None else requests.patch

        try:
            response = patch(self.api_url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("Platform write-back failed for %s: %s", rollout_id, e)
            return False

        logger.info("Platform variables updated for %s: %s", rollout_id, payload["variables"])
        return True
