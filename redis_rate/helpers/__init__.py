from .redis_client import async_redis_client, redis_client

__all__ = ["async_redis_client", "redis_client"]
