"""
Routing decision for canary traffic.

Combines the resolved rollout config with deterministic bucketing: the same
identifier always lands in the same bucket, so a user either sees the canary
on every request or on none of them (until the percentage changes).
"""

from __future__ import annotations

from rolloutguard.bucketing import is_in_rollout
from rolloutguard.contracts.models import RolloutConfig, RoutingVerdict
from rolloutguard.flags.store import FlagStore


def routes_to_canary(config: RolloutConfig, identifier: str) -> bool:
    """Apply an already-resolved config to one identifier."""
    if not config.enabled or config.percentage == 0:
        return False
    return is_in_rollout(identifier, config.percentage)


class RoutingDecision:
    """Decides whether one unit of work takes the canary path.

    Example:
        >>> routing = RoutingDecision(flag_store)
        >>> if routing.should_route_to_canary("checkout-v2", user_id):
        ...     ...
    """

    def __init__(self, flag_store: FlagStore) -> None:
        self.flag_store = flag_store

    def should_route_to_canary(self, rollout_id: str, identifier: str) -> bool:
        """Return True if ``identifier`` falls inside the canary slice.

        Disabled rollouts and 0% rollouts route everyone to stable; 100%
        routes everyone to the canary.
        """
        return routes_to_canary(self.flag_store.get_config(rollout_id), identifier)

    def verdict(self, rollout_id: str, identifier: str) -> RoutingVerdict:
        if self.should_route_to_canary(rollout_id, identifier):
            return RoutingVerdict.CANARY
        return RoutingVerdict.STABLE
