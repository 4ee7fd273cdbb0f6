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
"""Decoding of the replies of the limiting scripts.

Scripts reply with fixed-arity arrays.  Every decoder checks the arity
and the type of each position and raises :class:`MalformedReply` on any
mismatch.  A reply that is itself an error, which is how a pipeline run
with ``raise_on_error=False`` reports per-command failures, is turned
into :class:`ScriptCacheMiss` for ``NOSCRIPT`` and into
:class:`TransportError` otherwise.
"""
from typing import NamedTuple

from redis.exceptions import NoScriptError

from .errors import MalformedReply, ScriptCacheMiss, TransportError


class RateReply(NamedTuple):
    allowed: int
    remaining: int
    retry_after: float
    reset_after: float


class TakeReply(NamedTuple):
    allowed: bool
    used: int


def raise_for_error(reply, command: str) -> None:
    if isinstance(reply, NoScriptError):
        raise ScriptCacheMiss(f"{command}: {reply}")
    if isinstance(reply, Exception):
        raise TransportError(f"{command} failed: {reply}") from reply


def _array(reply, command: str, arity: int) -> list:
    raise_for_error(reply, command)
    if not isinstance(reply, (list, tuple)):
        raise MalformedReply(f"{command}: expected an array reply, got {type(reply).__name__}")
    if len(reply) != arity:
        raise MalformedReply(f"{command}: expected {arity} values, got {len(reply)}")
    return list(reply)


def _integer(value, command: str, position: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedReply(f"{command}: expected an integer at position {position}, got {value!r}")
    return value


def _duration(value, command: str, position: int) -> float:
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="replace")
    if not isinstance(value, str):
        raise MalformedReply(f"{command}: expected a string at position {position}, got {value!r}")
    try:
        return float(value)
    except ValueError:
        raise MalformedReply(f"{command}: expected a duration at position {position}, got {value!r}") from None


def decode_rate_reply(reply, command: str = "EVALSHA") -> RateReply:
    """Decode ``{allowed, remaining, retry_after, reset_after}``."""
    values = _array(reply, command, 4)
    allowed = _integer(values[0], command, 0)
    remaining = _integer(values[1], command, 1)
    retry_after = _duration(values[2], command, 2)
    reset_after = _duration(values[3], command, 3)
    if allowed < 0:
        raise MalformedReply(f"{command}: negative allowed count {allowed}")
    return RateReply(allowed, max(0, remaining), retry_after, reset_after)


def decode_take_reply(reply, command: str = "EVALSHA") -> TakeReply:
    """Decode ``{allowed (0 or 1), used}``."""
    values = _array(reply, command, 2)
    allowed = _integer(values[0], command, 0)
    used = _integer(values[1], command, 1)
    if allowed not in (0, 1):
        raise MalformedReply(f"{command}: expected 0 or 1 at position 0, got {allowed}")
    return TakeReply(allowed == 1, used)


def decode_exists_reply(reply) -> bool:
    """Decode the reply of ``SCRIPT EXISTS`` for a single script."""
    values = _array(reply, "SCRIPT EXISTS", 1)
    exists = values[0]
    if isinstance(exists, int):
        return bool(exists)
    raise MalformedReply(f"SCRIPT EXISTS: expected a boolean, got {exists!r}")
