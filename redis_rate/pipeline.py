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
from typing import List, Optional, Tuple

from .common import Deadline
from .errors import MalformedReply, ScriptCacheMiss
from .limits import ConcurrencyLimit, Limit
from .replies import decode_exists_reply, decode_rate_reply, decode_take_reply, raise_for_error
from .results import ConcurrencyResult, Result
from .scripts import ALLOW_AT_MOST, ALLOW_N, CONCURRENCY_TAKE


def _check_count(n) -> int:
    if isinstance(n, bool) or not isinstance(n, int) or n < 0:
        raise ValueError(f"n must be a non-negative integer, got {n!r}")
    return n


class BasePipeline:
    """Accumulates rate checks, lease attempts and lease releases so
    they can be sent to Redis in a single round trip.

    Queuing methods return a handle right away.  Handles are filled in
    by a successful ``execute``; if it fails, none of them is.  Each key
    is still checked by its own atomic script: a pipeline is a latency
    optimisation, not a transaction across keys.

    The round trip is laid out as one ``SCRIPT EXISTS`` probe per script
    family in use, then every ``EVALSHA``, then every ``HDEL``.
    """

    def __init__(self, limiter) -> None:
        self.limiter = limiter
        self._rate_commands: List[Tuple[str, Result]] = []
        self._take_commands: List[ConcurrencyResult] = []
        self._release_commands: List[Tuple[str, str]] = []

    def __len__(self) -> int:
        return len(self._rate_commands) + len(self._take_commands) + len(self._release_commands)

    def allow(self, key: str, limit: Limit, n: int = 1) -> Result:
        """Queue an all-or-nothing check of ``n`` events."""
        return self._queue_rate(ALLOW_N, key, limit, n)

    def allow_at_most(self, key: str, limit: Limit, n: int) -> Result:
        """Queue a check admitting as many of ``n`` events as possible."""
        return self._queue_rate(ALLOW_AT_MOST, key, limit, n)

    def take(self, key: str, request_id: str, limit: ConcurrencyLimit) -> ConcurrencyResult:
        """Queue a lease attempt for ``request_id``."""
        result = ConcurrencyResult(key=key, request_id=request_id, limit=limit)
        self._take_commands.append(result)
        return result

    def release(self, key: str, request_id: str) -> None:
        """Queue the release of the lease held by ``request_id``, if any."""
        self._release_commands.append((key, request_id))

    def reset(self) -> None:
        """Forget every queued operation."""
        self._rate_commands = []
        self._take_commands = []
        self._release_commands = []

    def _queue_rate(self, family: str, key: str, limit: Limit, n: int) -> Result:
        result = Result(key=key, limit=limit, requested=_check_count(n))
        self._rate_commands.append((family, result))
        return result

    @property
    def families(self) -> List[str]:
        """The script families used by the queued operations, in probe order."""
        used = {family for family, _ in self._rate_commands}
        if self._take_commands:
            used.add(CONCURRENCY_TAKE)
        return [family for family in (ALLOW_N, ALLOW_AT_MOST, CONCURRENCY_TAKE) if family in used]

    def build(self, pipe) -> None:
        """Queue the whole batch on a redis pipeline."""
        config = self.limiter.config
        scripts = self.limiter.scripts

        for family in self.families:
            pipe.script_exists(scripts[family].sha)

        for family, result in self._rate_commands:
            limit = result.limit
            pipe.evalsha(
                scripts[family].sha,
                1,
                config.rate_key(result.key),
                limit.burst,
                limit.rate,
                limit.period,
                result.requested,
            )

        take_sha = scripts[CONCURRENCY_TAKE].sha
        for result in self._take_commands:
            pipe.evalsha(
                take_sha,
                1,
                config.concurrency_key(result.key),
                result.request_id,
                result.limit.max,
                result.limit.effective_ttl_ms,
            )

        for key, request_id in self._release_commands:
            pipe.hdel(config.concurrency_key(key), request_id)

    def resolve(self, replies: List) -> None:
        """Check the replies of a round trip built by :meth:`build` and
        fill in the handles.

        Raises:
          ScriptCacheMiss: When a script is missing.  No handle is touched.
          MalformedReply: When a reply does not have the expected shape.
          TransportError: When a command failed for another reason.
        """
        families = self.families
        expected = len(families) + len(self)
        if len(replies) != expected:
            raise MalformedReply(f"expected {expected} replies from the pipeline, got {len(replies)}")

        probes = [decode_exists_reply(reply) for reply in replies[: len(families)]]
        missing = [family for family, exists in zip(families, probes) if not exists]
        if missing:
            raise ScriptCacheMiss(f"scripts missing from Redis: {', '.join(missing)}")

        offset = len(families)
        rate_replies = [
            decode_rate_reply(reply, f"EVALSHA {family}")
            for (family, _), reply in zip(self._rate_commands, replies[offset:])
        ]
        offset += len(self._rate_commands)
        take_replies = [
            decode_take_reply(reply, f"EVALSHA {CONCURRENCY_TAKE}")
            for reply in replies[offset : offset + len(self._take_commands)]
        ]
        offset += len(self._take_commands)
        for reply in replies[offset:]:
            raise_for_error(reply, "HDEL")

        for (_, result), rate_reply in zip(self._rate_commands, rate_replies):
            result.populate(*rate_reply)
        for result, take_reply in zip(self._take_commands, take_replies):
            result.populate(*take_reply)

        metrics = self.limiter.metrics
        if metrics is not None:
            metrics.observe_results([result for _, result in self._rate_commands], self._take_commands)


class Pipeline(BasePipeline):
    """A batch run with a synchronous :class:`redis.Redis` client."""

    def execute(self, *, timeout: Optional[float] = None, deadline: Optional[Deadline] = None) -> None:
        """Send the batch in one round trip, reloading the scripts and
        resending it when Redis lost them.

        Parameters:
          timeout(float): The time budget of the call in seconds, retries
            included.
          deadline(Deadline): An existing budget to draw from instead.

        Raises:
          TransportError, TooManyRetries, MalformedReply, DeadlineExceeded
        """
        if not self:
            return
        self.limiter.executor.run(self, deadline or Deadline(timeout))
