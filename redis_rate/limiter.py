# This file is a part of redis_rate.
#
# Copyright (C) 2017,2018 WIREMIND SAS <dev@wiremind.fr>
#
# redis_rate is free software; you can redistribute it and/or modify it
# under the terms of the GNU Lesser General Public License as published by
# the Free Software Foundation, either version 3 of the License, or (at
# your option) any later version.
#
# redis_rate is distributed in the hope that it will be useful, but WITHOUT
# ANY WARRANTY; without even the implied warranty of MERCHANTABILITY or
# FITNESS FOR A PARTICULAR PURPOSE. See the GNU Lesser General Public
# License for more details.
#
# You should have received a copy of the GNU Lesser General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.
from typing import Dict, Iterable, Optional

import attr
import redis

from .common import Deadline
from .errors import TransportError
from .helpers.redis_client import redis_client
from .limits import ConcurrencyLimit, Limit, _non_negative
from .pipeline import Pipeline
from .recovery import MAX_SCRIPT_RELOADS, Executor
from .results import ConcurrencyResult, Result
from .scripts import ScriptRegistry

DEFAULT_RATE_PREFIX = "rate:"
DEFAULT_CONCURRENCY_PREFIX = "concurrency:"


@attr.s(frozen=True, slots=True)
class LimiterConfig:
    """How a limiter lays its state out in Redis.

    Parameters:
      rate_prefix(str): Prepended to keys holding rate limit state.
      concurrency_prefix(str): Prepended to keys holding lease records.
      max_script_reloads(int): The maximum number of times the scripts
        are reloaded during a single call before giving up.
    """

    rate_prefix = attr.ib(default=DEFAULT_RATE_PREFIX)
    concurrency_prefix = attr.ib(default=DEFAULT_CONCURRENCY_PREFIX)
    max_script_reloads = attr.ib(default=MAX_SCRIPT_RELOADS, validator=_non_negative)

    def rate_key(self, key: str) -> str:
        return f"{self.rate_prefix}{key}"

    def concurrency_key(self, key: str) -> str:
        return f"{self.concurrency_prefix}{key}"


class BaseLimiter:
    """State shared by the synchronous and asynchronous limiters."""

    def __init__(self, client, *, config: Optional[LimiterConfig] = None, metrics=None) -> None:
        if client is None:
            raise ValueError("A redis client or url must be provided")
        self.client = client
        self.config = config or LimiterConfig()
        self.metrics = metrics
        self.scripts = ScriptRegistry()


class Limiter(BaseLimiter):
    """Distributed rate and concurrency limiter backed by Redis_.

    Every check runs as a Lua script inside Redis, so any number of
    processes sharing the same Redis agree on the outcome.  Single calls
    are one-operation pipelines: they behave exactly like their
    :class:`Pipeline` counterparts.

    Parameters:
      client(Redis): An optional client.  If this is passed,
        then all other connection parameters are ignored.
      url(str): An optional connection URL, ``sentinel://`` URLs
        included.  Defaults to the ``REDIS_RATE_URL`` environment variable.
      config(LimiterConfig): Key prefixes and retry bound.
      metrics(LimiterMetrics): Optional Prometheus metrics.
      socket_timeout(float): Socket timeout of a client built from a url.
      **parameters(dict): Connection parameters are passed directly
        to :class:`redis.Redis`.

    .. _redis: https://redis.io
    """

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        *,
        url: Optional[str] = None,
        config: Optional[LimiterConfig] = None,
        metrics=None,
        socket_timeout: Optional[float] = 5.0,
        **parameters,
    ) -> None:
        client = client or redis_client(url=url, socket_timeout=socket_timeout, **parameters)
        super().__init__(client, config=config, metrics=metrics)
        self.executor = Executor(
            self.client, self.scripts, max_reloads=self.config.max_script_reloads, metrics=self.metrics
        )

    def pipeline(self) -> Pipeline:
        """Start a batch of operations sent in a single round trip."""
        return Pipeline(self)

    def load_scripts(self, *, timeout: Optional[float] = None) -> None:
        """Register every script with Redis right away instead of on the
        first cache miss.
        """
        Deadline(timeout).check()
        self.executor.load_scripts()

    def allow(self, key: str, limit: Limit, *, timeout: Optional[float] = None) -> Result:
        """Shortcut for ``allow_n(key, limit, 1)``."""
        return self.allow_n(key, limit, 1, timeout=timeout)

    def allow_n(self, key: str, limit: Limit, n: int, *, timeout: Optional[float] = None) -> Result:
        """Admit ``n`` events for ``key`` if all of them fit in the bucket,
        none otherwise.
        """
        pipe = self.pipeline()
        result = pipe.allow(key, limit, n)
        pipe.execute(timeout=timeout)
        return result

    def allow_at_most(self, key: str, limit: Limit, n: int, *, timeout: Optional[float] = None) -> Result:
        """Admit as many of ``n`` events for ``key`` as fit in the bucket."""
        pipe = self.pipeline()
        result = pipe.allow_at_most(key, limit, n)
        pipe.execute(timeout=timeout)
        return result

    def reset(self, key: str, *, timeout: Optional[float] = None) -> None:
        """Forget the rate limit state of ``key``: its bucket is full again."""
        Deadline(timeout).check()
        try:
            self.client.delete(self.config.rate_key(key))
        except redis.RedisError as e:
            raise TransportError(f"failed to reset {key!r}: {e}") from e

    def take(
        self, key: str, request_id: str, limit: ConcurrencyLimit, *, timeout: Optional[float] = None
    ) -> ConcurrencyResult:
        """Try to acquire, or refresh, the lease of ``request_id`` on ``key``."""
        return self.take_many(request_id, {key: limit}, timeout=timeout)[key]

    def take_many(
        self, request_id: str, limits: Dict[str, ConcurrencyLimit], *, timeout: Optional[float] = None
    ) -> Dict[str, ConcurrencyResult]:
        """Try to acquire a lease on several keys in one round trip.
        Every key is checked independently of the others.
        """
        pipe = self.pipeline()
        results = {key: pipe.take(key, request_id, limit) for key, limit in limits.items()}
        pipe.execute(timeout=timeout)
        return results

    def release(self, key: str, request_id: str, *, timeout: Optional[float] = None) -> None:
        """Release the lease of ``request_id`` on ``key``.  Releasing a
        lease that is not held does nothing.
        """
        self.release_many(request_id, [key], timeout=timeout)

    def release_many(self, request_id: str, keys: Iterable[str], *, timeout: Optional[float] = None) -> None:
        pipe = self.pipeline()
        for key in keys:
            pipe.release(key, request_id)
        pipe.execute(timeout=timeout)
