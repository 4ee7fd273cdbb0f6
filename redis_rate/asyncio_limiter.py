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
import asyncio
import time
from typing import Dict, Iterable, Optional

import redis
import redis.asyncio as redis_async

from .common import Deadline
from .errors import DeadlineExceeded, ScriptCacheMiss, TooManyRetries, TransportError
from .helpers.redis_client import async_redis_client
from .limiter import BaseLimiter, LimiterConfig
from .limits import ConcurrencyLimit, Limit
from .logging import get_logger
from .pipeline import BasePipeline
from .recovery import MAX_SCRIPT_RELOADS
from .results import ConcurrencyResult, Result


class AsyncExecutor:
    """The :class:`redis.asyncio` flavor of :class:`~redis_rate.recovery.Executor`.

    Each round trip is also bounded by what is left of the deadline, so
    an elapsed deadline cancels the round trip in flight.  Whether Redis
    applied a cancelled batch is unknown.
    """

    def __init__(self, client, scripts, *, max_reloads=MAX_SCRIPT_RELOADS, metrics=None):
        self.client = client
        self.scripts = scripts
        self.max_reloads = max_reloads
        self.metrics = metrics
        self.logger = get_logger(__name__, type(self))

    async def run(self, batch, deadline: Deadline) -> None:
        for attempt in range(self.max_reloads + 1):
            deadline.check()
            replies = await self._bounded(self._round_trip(batch), deadline)
            try:
                batch.resolve(replies)
                return
            except ScriptCacheMiss as e:
                self.logger.debug("Script cache miss on attempt %d: %s", attempt + 1, e)
                if attempt == self.max_reloads:
                    break

            deadline.check()
            await self._bounded(self.load_scripts(), deadline)

        self.logger.warning("Giving up after %d script reloads", self.max_reloads)
        raise TooManyRetries(f"scripts still missing after {self.max_reloads} reloads")

    async def load_scripts(self) -> None:
        try:
            async with self.client.pipeline(transaction=False) as pipe:
                self.scripts.queue_load(pipe)
                replies = await pipe.execute()
        except redis.RedisError as e:
            raise TransportError(f"failed to load scripts: {e}") from e

        self.scripts.check_loaded(replies)
        self.logger.debug("Loaded %d scripts", len(self.scripts))
        if self.metrics is not None:
            self.metrics.script_reloads.inc()

    async def _round_trip(self, batch) -> list:
        start = time.monotonic()
        try:
            async with self.client.pipeline(transaction=False) as pipe:
                batch.build(pipe)
                return await pipe.execute(raise_on_error=False)
        except redis.RedisError as e:
            raise TransportError(f"pipeline failed: {e}") from e
        finally:
            if self.metrics is not None:
                self.metrics.observe_round_trip((time.monotonic() - start) * 1000)

    @staticmethod
    async def _bounded(coroutine, deadline: Deadline):
        remaining = deadline.remaining()
        if remaining is None:
            return await coroutine
        try:
            return await asyncio.wait_for(coroutine, remaining)
        except asyncio.TimeoutError:
            raise DeadlineExceeded("deadline exceeded during a round trip to Redis") from None


class AsyncPipeline(BasePipeline):
    """A batch run with a :class:`redis.asyncio.Redis` client."""

    async def execute(self, *, timeout: Optional[float] = None, deadline: Optional[Deadline] = None) -> None:
        if not self:
            return
        await self.limiter.executor.run(self, deadline or Deadline(timeout))


class AsyncLimiter(BaseLimiter):
    """Same as :class:`~redis_rate.limiter.Limiter`, for asyncio code.

    Parameters:
      client(redis.asyncio.Redis): An optional client.  If this is passed,
        then all other connection parameters are ignored.
      url(str): An optional connection URL.  Defaults to the
        ``REDIS_RATE_URL`` environment variable.
      config(LimiterConfig): Key prefixes and retry bound.
      metrics(LimiterMetrics): Optional Prometheus metrics.
      socket_timeout(float): Socket timeout of a client built from a url.
      **parameters(dict): Connection parameters are passed directly
        to :class:`redis.asyncio.Redis`.
    """

    def __init__(
        self,
        client: Optional[redis_async.Redis] = None,
        *,
        url: Optional[str] = None,
        config: Optional[LimiterConfig] = None,
        metrics=None,
        socket_timeout: Optional[float] = 5.0,
        **parameters,
    ) -> None:
        client = client or async_redis_client(url=url, socket_timeout=socket_timeout, **parameters)
        super().__init__(client, config=config, metrics=metrics)
        self.executor = AsyncExecutor(
            self.client, self.scripts, max_reloads=self.config.max_script_reloads, metrics=self.metrics
        )

    def pipeline(self) -> AsyncPipeline:
        return AsyncPipeline(self)

    async def load_scripts(self, *, timeout: Optional[float] = None) -> None:
        deadline = Deadline(timeout)
        deadline.check()
        await self.executor._bounded(self.executor.load_scripts(), deadline)

    async def allow(self, key: str, limit: Limit, *, timeout: Optional[float] = None) -> Result:
        return await self.allow_n(key, limit, 1, timeout=timeout)

    async def allow_n(self, key: str, limit: Limit, n: int, *, timeout: Optional[float] = None) -> Result:
        pipe = self.pipeline()
        result = pipe.allow(key, limit, n)
        await pipe.execute(timeout=timeout)
        return result

    async def allow_at_most(self, key: str, limit: Limit, n: int, *, timeout: Optional[float] = None) -> Result:
        pipe = self.pipeline()
        result = pipe.allow_at_most(key, limit, n)
        await pipe.execute(timeout=timeout)
        return result

    async def reset(self, key: str, *, timeout: Optional[float] = None) -> None:
        deadline = Deadline(timeout)
        deadline.check()
        try:
            await self.executor._bounded(self.client.delete(self.config.rate_key(key)), deadline)
        except redis.RedisError as e:
            raise TransportError(f"failed to reset {key!r}: {e}") from e

    async def take(
        self, key: str, request_id: str, limit: ConcurrencyLimit, *, timeout: Optional[float] = None
    ) -> ConcurrencyResult:
        results = await self.take_many(request_id, {key: limit}, timeout=timeout)
        return results[key]

    async def take_many(
        self, request_id: str, limits: Dict[str, ConcurrencyLimit], *, timeout: Optional[float] = None
    ) -> Dict[str, ConcurrencyResult]:
        pipe = self.pipeline()
        results = {key: pipe.take(key, request_id, limit) for key, limit in limits.items()}
        await pipe.execute(timeout=timeout)
        return results

    async def release(self, key: str, request_id: str, *, timeout: Optional[float] = None) -> None:
        await self.release_many(request_id, [key], timeout=timeout)

    async def release_many(self, request_id: str, keys: Iterable[str], *, timeout: Optional[float] = None) -> None:
        pipe = self.pipeline()
        for key in keys:
            pipe.release(key, request_id)
        await pipe.execute(timeout=timeout)
