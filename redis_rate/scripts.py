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
import hashlib
from typing import Dict, Iterator, List, Optional

import attr

from .errors import MalformedReply

# Both rate scripts implement GCRA: the key holds the theoretical arrival
# time (TAT) of the next token, relative to Jan 1, 2017 to keep enough
# float precision for microseconds.  The bucket is full when TAT <= now,
# and every token pushes TAT one emission interval further.  Durations
# are returned as strings because Redis truncates Lua numbers to integers.
ALLOW_N_LUA = """
redis.replicate_commands()

local rate_limit_key = KEYS[1]
local burst = tonumber(ARGV[1])
local rate = tonumber(ARGV[2])
local period = tonumber(ARGV[3])
local cost = tonumber(ARGV[4])

local emission_interval = period / rate
local epsilon = 1e-6

local jan_1_2017 = 1483228800
local now = redis.call('TIME')
now = (tonumber(now[1]) - jan_1_2017) + (tonumber(now[2]) / 1000000)

local tat = tonumber(redis.call('GET', rate_limit_key))
if not tat or tat < now then
  tat = now
end

local debt = tat - now
local available = burst - debt / emission_interval

if available + epsilon < cost then
  local remaining = math.max(0, math.floor(available + epsilon))
  local retry_after = (cost - available) * emission_interval
  return {0, remaining, tostring(retry_after), tostring(debt)}
end

local new_tat = tat + cost * emission_interval
local reset_after = new_tat - now
if reset_after > 0 then
  redis.call('SET', rate_limit_key, new_tat, 'EX', math.ceil(reset_after))
end

local remaining = math.max(0, math.floor(available - cost + epsilon))
return {cost, remaining, '-1', tostring(reset_after)}
"""

# Same bucket as ALLOW_N_LUA, but admits as many tokens as are available
# up to the requested count instead of all or nothing.
ALLOW_AT_MOST_LUA = """
redis.replicate_commands()

local rate_limit_key = KEYS[1]
local burst = tonumber(ARGV[1])
local rate = tonumber(ARGV[2])
local period = tonumber(ARGV[3])
local cost = tonumber(ARGV[4])

local emission_interval = period / rate
local epsilon = 1e-6

local jan_1_2017 = 1483228800
local now = redis.call('TIME')
now = (tonumber(now[1]) - jan_1_2017) + (tonumber(now[2]) / 1000000)

local tat = tonumber(redis.call('GET', rate_limit_key))
if not tat or tat < now then
  tat = now
end

local available = burst - (tat - now) / emission_interval
local allowed = math.min(cost, math.max(0, math.floor(available + epsilon)))
local remaining = math.max(0, math.floor(available - allowed + epsilon))

local new_tat = tat + allowed * emission_interval
local reset_after = new_tat - now
if allowed > 0 and reset_after > 0 then
  redis.call('SET', rate_limit_key, new_tat, 'EX', math.ceil(reset_after))
end

local retry_after = -1
if allowed < cost then
  retry_after = math.max(0, (allowed + 1 - available) * emission_interval)
end

return {allowed, remaining, tostring(retry_after), tostring(reset_after)}
"""

# The lease record is a hash of request id -> expiry in milliseconds.  The
# take script first purges expired leases, then either refreshes the lease
# already held by the request, grants a new one if the limit has not been
# reached, or denies without touching anything.  The hash expires with its
# last lease.
CONCURRENCY_TAKE_LUA = """
redis.replicate_commands()

local key = KEYS[1]
local request_id = ARGV[1]
local max = tonumber(ARGV[2])
local ttl = tonumber(ARGV[3])

local time = redis.call('TIME')
local now = tonumber(time[1]) * 1000 + math.floor(tonumber(time[2]) / 1000)

local leases = redis.call('HGETALL', key)
local count = 0
local held = false
local last_expiry = 0
for i = 1, #leases, 2 do
  local expires_at = tonumber(leases[i + 1])
  if not expires_at or expires_at <= now then
    redis.call('HDEL', key, leases[i])
  else
    count = count + 1
    if leases[i] == request_id then
      held = true
    elseif expires_at > last_expiry then
      last_expiry = expires_at
    end
  end
end

if not held and count >= max then
  return {0, count}
end

local expires_at = now + ttl
redis.call('HSET', key, request_id, expires_at)
if not held then
  count = count + 1
end
redis.call('PEXPIREAT', key, math.max(expires_at, last_expiry))
return {1, count}
"""

#: Script family names.
ALLOW_N = "allow_n"
ALLOW_AT_MOST = "allow_at_most"
CONCURRENCY_TAKE = "concurrency_take"


def _sha1(source: str) -> str:
    return hashlib.sha1(source.encode("utf-8")).hexdigest()  # noqa: S324


@attr.s(frozen=True, slots=True)
class Script:
    """A Lua script addressed by the SHA1 of its source, the way
    ``EVALSHA`` and ``SCRIPT EXISTS`` address it.
    """

    name = attr.ib()
    source = attr.ib(repr=False)
    sha = attr.ib(init=False)

    @sha.default
    def _compute_sha(self):
        return _sha1(self.source)


class ScriptRegistry:
    """The set of scripts a limiter relies on.

    Scripts are identified locally by their SHA1 so they can be invoked
    with ``EVALSHA`` without knowing whether Redis still has them.
    :meth:`queue_load` and :meth:`check_loaded` register all of them in
    a single round trip, whatever client flavor runs it.

    Parameters:
      scripts(dict): An optional mapping of family name to Lua source.
        Defaults to the three limiting scripts.
    """

    def __init__(self, scripts: Optional[Dict[str, str]] = None) -> None:
        if scripts is None:
            scripts = {
                ALLOW_N: ALLOW_N_LUA,
                ALLOW_AT_MOST: ALLOW_AT_MOST_LUA,
                CONCURRENCY_TAKE: CONCURRENCY_TAKE_LUA,
            }
        self._scripts = {name: Script(name=name, source=source) for name, source in scripts.items()}

    def __getitem__(self, name: str) -> Script:
        return self._scripts[name]

    def __iter__(self) -> Iterator[Script]:
        return iter(self._scripts.values())

    def __len__(self) -> int:
        return len(self._scripts)

    def queue_load(self, pipe) -> None:
        for script in self:
            pipe.script_load(script.source)

    def check_loaded(self, replies: List) -> None:
        if len(replies) != len(self):
            raise MalformedReply(f"expected {len(self)} SCRIPT LOAD replies, got {len(replies)}")

        for script, sha in zip(self, replies):
            if isinstance(sha, bytes):
                sha = sha.decode("ascii")
            if sha != script.sha:
                raise MalformedReply(f"SCRIPT LOAD of {script.name!r} returned {sha!r}, expected {script.sha!r}")

    def load(self, client) -> None:
        """Register every script with Redis in one round trip."""
        with client.pipeline(transaction=False) as pipe:
            self.queue_load(pipe)
            replies = pipe.execute()
        self.check_loaded(replies)
