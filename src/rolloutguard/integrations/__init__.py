"""
rolloutguard Integrations Module

Integration layers for the external collaborators of the rollout controller:
1. Redis Cache - shared config cache for multi-instance deployments
2. Webhook Notifications - operator alerts on automatic rollback
"""

from rolloutguard.integrations.redis_cache import RedisCache
from rolloutguard.integrations.webhook_client import (
    LoggingNotifier,
    Notifier,
    WebhookEvent,
    WebhookEventType,
    WebhookNotifier,
)

__all__ = [
    # Redis Cache
    "RedisCache",
    # Notifications
    "LoggingNotifier",
    "Notifier",
    "WebhookEvent",
    "WebhookEventType",
    "WebhookNotifier",
]
