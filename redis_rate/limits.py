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
import attr

#: The lease TTL used when a concurrency limit has no positive request duration.
DEFAULT_REQUEST_MAX_DURATION = 60


def _positive(instance, attribute, value):
    if value <= 0:
        raise ValueError(f"{attribute.name} must be positive, got {value!r}")


def _non_negative(instance, attribute, value):
    if value < 0:
        raise ValueError(f"{attribute.name} must not be negative, got {value!r}")


def _format_period(period: float) -> str:
    if period == 1:
        return "s"
    elif period == 60:
        return "m"
    elif period == 3600:
        return "h"
    return f"{period:g}s"


@attr.s(frozen=True, slots=True)
class Limit:
    """A token bucket of capacity ``burst`` refilled continuously at
    ``rate`` tokens every ``period`` seconds.

    Parameters:
      rate(int): The number of admissions per period.
      burst(int): The maximum number of admissions at a given instant.
      period(float): The period in seconds.  Fractions of a second are kept.
    """

    rate = attr.ib(validator=_positive)
    burst = attr.ib(validator=_positive)
    period = attr.ib(default=1.0, converter=float, validator=_positive)

    @property
    def emission_interval(self) -> float:
        """Seconds between two tokens."""
        return self.period / self.rate

    def __str__(self) -> str:
        return f"{self.rate} req/{_format_period(self.period)} (burst {self.burst})"


def per_second(rate: int) -> Limit:
    return Limit(rate=rate, burst=rate, period=1)


def per_minute(rate: int) -> Limit:
    return Limit(rate=rate, burst=rate, period=60)


def per_hour(rate: int) -> Limit:
    return Limit(rate=rate, burst=rate, period=3600)


@attr.s(frozen=True, slots=True)
class ConcurrencyLimit:
    """At most ``max`` requests may hold a lease at the same time.

    Parameters:
      max(int): The maximum number of simultaneous leases.  Zero denies
        every request.
      request_max_duration(float): The lease time-to-live in seconds.  A
        lease that is not released expires after that time.  Zero or a
        negative value means 60 seconds.
    """

    max = attr.ib(validator=_non_negative)
    request_max_duration = attr.ib(default=0.0, converter=float)

    @property
    def effective_ttl_ms(self) -> int:
        duration = self.request_max_duration
        if duration <= 0:
            duration = DEFAULT_REQUEST_MAX_DURATION
        return max(1, int(round(duration * 1000)))
