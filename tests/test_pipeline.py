import pytest

from redis_rate import (
    ConcurrencyLimit,
    DeadlineExceeded,
    Limit,
    Limiter,
    LimiterConfig,
    ResultNotReady,
    TooManyRetries,
    per_second,
)

from .common import ScriptedRedis


def test_batch_probes_each_script_family_once():
    redis_client = ScriptedRedis(loaded=True)
    limiter = Limiter(redis_client)

    # Given a pipeline mixing every kind of operation
    pipe = limiter.pipeline()
    first = pipe.allow("a", per_second(10))
    second = pipe.allow("b", per_second(10), n=2)
    partial = pipe.allow_at_most("c", per_second(10), 5)
    lease = pipe.take("d", "req1", ConcurrencyLimit(max=2))
    pipe.release("e", "req0")
    assert len(pipe) == 5

    # When I execute it
    pipe.execute()

    # Then it is sent in one round trip, probes first, releases last
    assert len(redis_client.round_trips) == 1
    names = [command[0] for command in redis_client.round_trips[0]]
    assert names == ["SCRIPT EXISTS"] * 3 + ["EVALSHA"] * 4 + ["HDEL"]

    # And every handle is populated
    assert first.ready and second.ready and partial.ready and lease.ready
    assert partial.allowed == 3
    assert partial.retry_after == 0.25
    assert lease.allowed is True
    assert lease.used == 1
    assert lease.remaining == 1


def test_release_only_batch_has_no_probe():
    redis_client = ScriptedRedis()
    limiter = Limiter(redis_client)

    pipe = limiter.pipeline()
    pipe.release("a", "req1")
    pipe.release("b", "req1")
    pipe.execute()

    assert redis_client.round_trips == [[("HDEL", "concurrency:a", "req1"), ("HDEL", "concurrency:b", "req1")]]


def test_empty_batch_does_nothing(scripted_redis, scripted_limiter):
    scripted_limiter.pipeline().execute()

    assert scripted_redis.round_trips == []


def test_keys_are_prefixed():
    redis_client = ScriptedRedis(loaded=True)
    limiter = Limiter(redis_client, config=LimiterConfig(rate_prefix="r/", concurrency_prefix="c/"))

    pipe = limiter.pipeline()
    pipe.allow("a", Limit(rate=5, burst=10, period=2.5), n=3)
    pipe.take("b", "req1", ConcurrencyLimit(max=2, request_max_duration=1.5))
    pipe.execute()

    rate_call, take_call = redis_client.commands_named("EVALSHA")
    assert rate_call[2:] == (1, "r/a", 10, 5, 2.5, 3)
    assert take_call[2:] == (1, "c/b", "req1", 2, 1500)

    limiter.reset("a")
    assert redis_client.deleted == ["r/a"]


def test_handles_are_not_ready_before_execute(scripted_limiter):
    pipe = scripted_limiter.pipeline()
    result = pipe.allow("a", per_second(1))
    lease = pipe.take("b", "req1", ConcurrencyLimit(max=1))

    assert not result.ready
    assert result.key == "a"
    with pytest.raises(ResultNotReady):
        result.remaining
    with pytest.raises(ResultNotReady):
        lease.used


def test_pipeline_reset_forgets_queued_operations(scripted_redis, scripted_limiter):
    pipe = scripted_limiter.pipeline()
    pipe.allow("a", per_second(1))
    pipe.release("a", "req1")
    pipe.reset()

    assert len(pipe) == 0
    pipe.execute()
    assert scripted_redis.round_trips == []


@pytest.mark.parametrize("n", [-1, 1.5, True, "2"])
def test_invalid_counts_are_rejected(scripted_limiter, n):
    with pytest.raises(ValueError):
        scripted_limiter.pipeline().allow("a", per_second(1), n=n)


def test_elapsed_deadline_sends_nothing(scripted_redis, scripted_limiter):
    with pytest.raises(DeadlineExceeded):
        scripted_limiter.allow("a", per_second(1), timeout=0)

    assert scripted_redis.round_trips == []


def test_take_many_and_release_many():
    redis_client = ScriptedRedis(loaded=True)
    limiter = Limiter(redis_client)

    results = limiter.take_many("req1", {"a": ConcurrencyLimit(max=1), "b": ConcurrencyLimit(max=3)})
    assert set(results) == {"a", "b"}
    assert all(result.allowed for result in results.values())
    assert results["b"].remaining == 2
    assert len(redis_client.commands_named("SCRIPT EXISTS")) == 1

    limiter.release_many("req1", ["a", "b"])
    assert redis_client.commands_named("HDEL") == [("HDEL", "concurrency:a", "req1"), ("HDEL", "concurrency:b", "req1")]


def test_limiter_requires_a_client(monkeypatch):
    monkeypatch.delenv("REDIS_RATE_URL", raising=False)

    with pytest.raises(ValueError):
        Limiter()


def test_script_reloads_share_the_callers_deadline():
    # Given a Redis which keeps forgetting the scripts and answers slowly
    redis_client = ScriptedRedis(forgetful=True, latency=0.05)
    limiter = Limiter(redis_client)

    pipe = limiter.pipeline()
    result = pipe.allow("a", per_second(10))

    # When the budget runs out while reloading
    with pytest.raises(DeadlineExceeded):
        pipe.execute(timeout=0.3)

    # Then the call stops before exhausting its reloads
    assert len(redis_client.round_trips) < 21
    assert not result.ready


def test_reset_and_load_scripts_take_a_timeout(scripted_redis, scripted_limiter):
    with pytest.raises(DeadlineExceeded):
        scripted_limiter.reset("a", timeout=0)
    with pytest.raises(DeadlineExceeded):
        scripted_limiter.load_scripts(timeout=0)

    assert scripted_redis.deleted == []
    assert scripted_redis.round_trips == []

    scripted_limiter.reset("a", timeout=1)
    scripted_limiter.load_scripts(timeout=1)

    assert scripted_redis.deleted == ["rate:a"]
    assert len(scripted_redis.round_trips) == 1


def test_negative_reload_bound_is_rejected():
    with pytest.raises(ValueError):
        LimiterConfig(max_script_reloads=-1)


def test_zero_reload_bound_sends_a_single_attempt():
    redis_client = ScriptedRedis(forgetful=True)
    limiter = Limiter(redis_client, config=LimiterConfig(max_script_reloads=0))

    with pytest.raises(TooManyRetries):
        limiter.allow("a", per_second(1))

    assert len(redis_client.round_trips) == 1
