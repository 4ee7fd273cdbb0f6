import time

from redis_rate import ConcurrencyLimit


def test_take_and_release(limiter, key):
    # Given a limit of one request at a time
    limit = ConcurrencyLimit(max=1, request_max_duration=5)

    # A first request gets a lease
    r1 = limiter.take(key, "req1", limit)
    assert r1.allowed is True
    assert r1.used == 1
    assert r1.remaining == 0
    assert r1.key == key

    # A second one does not
    r2 = limiter.take(key, "req2", limit)
    assert r2.allowed is False
    assert r2.used == 1
    assert r2.remaining == 0

    # Unless the limit is raised
    r3 = limiter.take(key, "req3", ConcurrencyLimit(max=2, request_max_duration=5))
    assert r3.allowed is True
    assert r3.used == 2
    assert r3.remaining == 0

    # Releasing the first lease still leaves the third one
    limiter.release(key, "req1")
    r4 = limiter.take(key, "req4", limit)
    assert r4.allowed is False
    assert r4.used == 1
    assert r4.remaining == 0


def test_take_is_idempotent_for_a_held_lease(limiter, key):
    limit = ConcurrencyLimit(max=1, request_max_duration=5)
    limiter.take(key, "req1", limit)

    again = limiter.take(key, "req1", limit)

    assert again.allowed is True
    assert again.used == 1
    assert again.remaining == 0


def test_release_of_an_unknown_request(limiter, key):
    limit = ConcurrencyLimit(max=2, request_max_duration=5)
    limiter.take(key, "req1", limit)

    limiter.release(key, "unknown")
    limiter.release("never-used", "req1")

    assert limiter.take(key, "req2", limit).used == 2


def test_leases_expire(limiter, key):
    limit = ConcurrencyLimit(max=1, request_max_duration=0.2)
    assert limiter.take(key, "req1", limit).allowed

    time.sleep(0.3)

    result = limiter.take(key, "req2", limit)
    assert result.allowed
    assert result.used == 1


def test_lease_record_layout(limiter, redis_client, key):
    limiter.take(key, "req1", ConcurrencyLimit(max=3, request_max_duration=10))

    record = redis_client.hgetall(f"concurrency:{key}")
    assert list(record) == [b"req1"]
    assert int(record[b"req1"]) > time.time() * 1000
    assert 0 < redis_client.pttl(f"concurrency:{key}") <= 10000


def test_take_many(limiter):
    limits = {"many-a": ConcurrencyLimit(max=1), "many-b": ConcurrencyLimit(max=1)}
    limiter.take("many-a", "other", limits["many-a"])

    results = limiter.take_many("req1", limits)

    assert results["many-a"].allowed is False
    assert results["many-b"].allowed is True

    limiter.release_many("other", ["many-a"])
    assert limiter.take("many-a", "req1", limits["many-a"]).allowed is True


def test_pipeline_take_and_release(limiter, key):
    limit = ConcurrencyLimit(max=1, request_max_duration=5)
    limiter.take(key, "req1", limit)

    pipe = limiter.pipeline()
    pipe.release(key, "req1")
    lease = pipe.take(key, "req2", limit)
    pipe.execute()

    # Releases are sent after the scripts
    assert lease.allowed is False

    assert limiter.take(key, "req2", limit).allowed is True


def test_take_refreshes_the_lease_of_a_held_request(limiter, key):
    limit = ConcurrencyLimit(max=1, request_max_duration=0.3)
    assert limiter.take(key, "req1", limit).allowed

    # Taking again before expiry pushes the expiry further
    time.sleep(0.2)
    assert limiter.take(key, "req1", limit).allowed

    # So the lease outlives its first deadline
    time.sleep(0.2)
    result = limiter.take(key, "req2", limit)
    assert result.allowed is False
    assert result.used == 1


def test_limit_of_zero_denies_everything(limiter, key):
    result = limiter.take(key, "req1", ConcurrencyLimit(max=0))

    assert result.allowed is False
    assert result.used == 0
    assert result.remaining == 0
    assert not limiter.client.exists(f"concurrency:{key}")
