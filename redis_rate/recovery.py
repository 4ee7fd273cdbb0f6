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
import time

import redis

from .common import Deadline
from .errors import ScriptCacheMiss, TooManyRetries, TransportError
from .logging import get_logger

#: The maximum number of times scripts are reloaded for a single call.
MAX_SCRIPT_RELOADS = 10


class Executor:
    """Runs batches against Redis and recovers from script cache misses.

    A batch is sent optimistically with ``EVALSHA``, along with a
    ``SCRIPT EXISTS`` probe per script family.  If Redis lost any of the
    scripts, every reply of that round trip is discarded, all scripts
    are loaded again and the identical batch is resent.  After
    ``max_reloads`` reload cycles the call fails with
    :class:`TooManyRetries` and nothing more is sent.

    Parameters:
      client(Redis): The Redis client.
      scripts(ScriptRegistry): The scripts to reload on a cache miss.
      max_reloads(int): The maximum number of reload cycles per call.
      metrics(LimiterMetrics): Optional metrics.
    """

    def __init__(self, client, scripts, *, max_reloads=MAX_SCRIPT_RELOADS, metrics=None):
        self.client = client
        self.scripts = scripts
        self.max_reloads = max_reloads
        self.metrics = metrics
        self.logger = get_logger(__name__, type(self))

    def run(self, batch, deadline: Deadline) -> None:
        for attempt in range(self.max_reloads + 1):
            deadline.check()
            replies = self._round_trip(batch)
            try:
                batch.resolve(replies)
                return
            except ScriptCacheMiss as e:
                self.logger.debug("Script cache miss on attempt %d: %s", attempt + 1, e)
                if attempt == self.max_reloads:
                    break

            deadline.check()
            self.load_scripts()

        self.logger.warning("Giving up after %d script reloads", self.max_reloads)
        raise TooManyRetries(f"scripts still missing after {self.max_reloads} reloads")

    def load_scripts(self) -> None:
        try:
            self.scripts.load(self.client)
        except redis.RedisError as e:
            raise TransportError(f"failed to load scripts: {e}") from e

        self.logger.debug("Loaded %d scripts", len(self.scripts))
        if self.metrics is not None:
            self.metrics.script_reloads.inc()

    def _round_trip(self, batch) -> list:
        start = time.monotonic()
        try:
            with self.client.pipeline(transaction=False) as pipe:
                batch.build(pipe)
                return pipe.execute(raise_on_error=False)
        except redis.RedisError as e:
            raise TransportError(f"pipeline failed: {e}") from e
        finally:
            if self.metrics is not None:
                self.metrics.observe_round_trip((time.monotonic() - start) * 1000)
