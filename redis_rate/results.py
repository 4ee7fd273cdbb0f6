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

from .errors import ResultNotReady
from .limits import ConcurrencyLimit, Limit


def _outcome(name):
    private = "_" + name

    def getter(self):
        if not self.ready:
            raise ResultNotReady(f"{type(self).__name__} for key {self.key!r} has not been executed")
        return getattr(self, private)

    return property(getter)


@attr.s(slots=True, eq=False)
class Result:
    """The outcome of a rate limit check.

    A result is handed out as soon as the check is queued on a pipeline
    and is only filled in once the pipeline executed successfully:
    ``ready`` tells whether it was.  Reading any outcome before that
    raises :class:`ResultNotReady`.

    Attributes:
      allowed(int): The number of events admitted, between 0 and ``requested``.
      used(int): The number of tokens missing from the bucket.
      remaining(int): The number of events that could be admitted right now.
      retry_after(float): -1 if every requested event was admitted, else the
        number of seconds until the next one could be.
      reset_after(float): The number of seconds until the bucket is full again.
    """

    key = attr.ib()
    limit = attr.ib(type=Limit)
    requested = attr.ib(default=1)
    ready = attr.ib(default=False, init=False)
    _allowed = attr.ib(default=None, init=False, repr=False)
    _used = attr.ib(default=None, init=False, repr=False)
    _remaining = attr.ib(default=None, init=False, repr=False)
    _retry_after = attr.ib(default=None, init=False, repr=False)
    _reset_after = attr.ib(default=None, init=False, repr=False)

    allowed = _outcome("allowed")
    used = _outcome("used")
    remaining = _outcome("remaining")
    retry_after = _outcome("retry_after")
    reset_after = _outcome("reset_after")

    def populate(self, allowed: int, remaining: int, retry_after: float, reset_after: float) -> None:
        self._allowed = allowed
        self._remaining = remaining
        self._used = max(0, self.limit.burst - remaining)
        self._retry_after = retry_after
        self._reset_after = reset_after
        self.ready = True


@attr.s(slots=True, eq=False)
class ConcurrencyResult:
    """The outcome of a lease attempt.

    Same contract as :class:`Result`: outcomes can only be read once
    ``ready`` is true.
    """

    key = attr.ib()
    request_id = attr.ib()
    limit = attr.ib(type=ConcurrencyLimit)
    ready = attr.ib(default=False, init=False)
    _allowed = attr.ib(default=None, init=False, repr=False)
    _used = attr.ib(default=None, init=False, repr=False)
    _remaining = attr.ib(default=None, init=False, repr=False)

    allowed = _outcome("allowed")
    used = _outcome("used")
    remaining = _outcome("remaining")

    def populate(self, allowed: bool, used: int) -> None:
        self._allowed = allowed
        self._used = used
        self._remaining = max(0, self.limit.max - used)
        self.ready = True
