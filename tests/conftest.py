import logging
import os
import uuid

import pytest
import redis

from redis_rate import Limiter

from .common import ScriptedRedis

logfmt = "[%(asctime)s] [%(threadName)s] [%(name)s] [%(levelname)s] %(message)s"
logging.basicConfig(level=logging.INFO, format=logfmt)

CI = os.getenv("CI") == "true"


def check_redis(client):
    try:
        client.ping()
    except redis.ConnectionError as e:
        raise e from e if CI else pytest.skip("No connection to Redis server.")
    client.flushall()


@pytest.fixture
def redis_client():
    redis_url = os.getenv("REDIS_RATE_TEST_REDIS_URL") or "redis://localhost:6481/0"
    client = redis.Redis.from_url(redis_url)
    check_redis(client)
    yield client
    client.close()


@pytest.fixture
def limiter(redis_client):
    return Limiter(redis_client)


@pytest.fixture
def scripted_redis():
    return ScriptedRedis()


@pytest.fixture
def scripted_limiter(scripted_redis):
    return Limiter(scripted_redis)


@pytest.fixture
def key():
    return f"test-{uuid.uuid4()}"
