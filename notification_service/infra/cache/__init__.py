"""Redis client construction shared by the counter store, pub/sub bus and preferences cache."""

from notification_service.infra.cache.redis import create_redis_client, ping

__all__ = ["create_redis_client", "ping"]
