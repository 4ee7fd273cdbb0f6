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


class RedisRateError(Exception):  # pragma: no cover
    """Base class for all redis_rate errors."""

    def __init__(self, message: str) -> None:
        self.message = message

    def __str__(self) -> str:
        return str(self.message) or repr(self.message)


class TransportError(RedisRateError):
    """Raised when a round trip to Redis fails for a reason unrelated
    to the script cache.
    """


class ScriptCacheMiss(RedisRateError):
    """Raised internally when Redis no longer knows one of the scripts
    used by a batch.  Recovered from by reloading the scripts.
    """


class TooManyRetries(RedisRateError):
    """Raised when the scripts could not be loaded after the maximum
    number of reload cycles.
    """


class MalformedReply(RedisRateError):
    """Raised when Redis returns a reply with an unexpected shape."""


class DeadlineExceeded(RedisRateError):
    """Raised when the time budget of a call ran out before its final
    round trip completed.
    """


class ResultNotReady(RedisRateError):
    """Raised when reading a result handle whose pipeline has not been
    executed successfully.
    """
