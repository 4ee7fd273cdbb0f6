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

from .asyncio_limiter import AsyncLimiter, AsyncPipeline
from .common import Deadline
from .errors import (
    DeadlineExceeded,
    MalformedReply,
    RedisRateError,
    ResultNotReady,
    ScriptCacheMiss,
    TooManyRetries,
    TransportError,
)
from .limiter import Limiter, LimiterConfig
from .limits import ConcurrencyLimit, Limit, per_hour, per_minute, per_second
from .logging import get_logger
from .metrics import LimiterMetrics
from .pipeline import Pipeline
from .results import ConcurrencyResult, Result
from .scripts import Script, ScriptRegistry

__all__ = [
    # Limiters
    "AsyncLimiter",
    "AsyncPipeline",
    "Limiter",
    "LimiterConfig",
    "LimiterMetrics",
    "Pipeline",
    # Limits and results
    "ConcurrencyLimit",
    "ConcurrencyResult",
    "Deadline",
    "Limit",
    "Result",
    "per_hour",
    "per_minute",
    "per_second",
    # Scripts
    "Script",
    "ScriptRegistry",
    # Errors
    "DeadlineExceeded",
    "MalformedReply",
    "RedisRateError",
    "ResultNotReady",
    "ScriptCacheMiss",
    "TooManyRetries",
    "TransportError",
    "get_logger",
]

__version__ = "1.0.0"
