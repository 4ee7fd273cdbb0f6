import os
from typing import Optional
from urllib.parse import urlparse

import redis
import redis.asyncio as redis_async

#: The environment variable read when no url is given.
URL_ENV_VAR = "REDIS_RATE_URL"


def _socket_parameters(socket_timeout: Optional[float]) -> dict:
    if socket_timeout is None:
        return {}
    return {
        "socket_timeout": socket_timeout,
        "socket_connect_timeout": socket_timeout,
        "socket_keepalive": True,
    }


def _sentinel_service(url_parsed) -> str:
    return os.path.normpath(url_parsed.path).split("/")[1]


def redis_client(url: Optional[str], socket_timeout: Optional[float] = None, **parameters):
    """Build a :class:`redis.Redis` from a ``redis://`` or ``sentinel://`` url.

    Falls back on the ``REDIS_RATE_URL`` environment variable and returns
    None when there is no url at all.
    """
    url = url or os.getenv(URL_ENV_VAR)
    socket_parameters = _socket_parameters(socket_timeout)
    if url:
        url_parsed = urlparse(url)
        if url_parsed.scheme == "sentinel":
            sentinel_kwargs = {"password": url_parsed.password, **socket_parameters}
            sentinel = redis.Sentinel([(url_parsed.hostname, url_parsed.port)], sentinel_kwargs=sentinel_kwargs)
            return sentinel.master_for(
                service_name=_sentinel_service(url_parsed),
                password=url_parsed.password,
                **socket_parameters,
            )
        else:
            parameters["connection_pool"] = redis.ConnectionPool.from_url(url, **socket_parameters)  # type: ignore
            return redis.Redis(**parameters)
    return None


def async_redis_client(url: Optional[str], socket_timeout: Optional[float] = None, **parameters):
    """Same as :func:`redis_client`, for :mod:`redis.asyncio`."""
    url = url or os.getenv(URL_ENV_VAR)
    socket_parameters = _socket_parameters(socket_timeout)
    if url:
        url_parsed = urlparse(url)
        if url_parsed.scheme == "sentinel":
            sentinel_kwargs = {"password": url_parsed.password, **socket_parameters}
            sentinel = redis_async.Sentinel([(url_parsed.hostname, url_parsed.port)], sentinel_kwargs=sentinel_kwargs)
            return sentinel.master_for(  # type: ignore
                service_name=_sentinel_service(url_parsed),
                password=url_parsed.password,
                **socket_parameters,
            )
        else:
            parameters["connection_pool"] = redis_async.ConnectionPool.from_url(url, **socket_parameters)
            return redis_async.Redis(**parameters)
    return None
