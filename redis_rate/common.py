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
from typing import Optional

from .errors import DeadlineExceeded


class Deadline:
    """The time budget of one logical call.  Every round trip of the
    call, retries included, draws from the same budget.

    Parameters:
      timeout(float): The budget in seconds.  None means no deadline.
    """

    def __init__(self, timeout: Optional[float] = None) -> None:
        if timeout is not None and timeout < 0:
            raise ValueError("timeout must be positive")
        self.expires_at = None if timeout is None else time.monotonic() + timeout

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None if unbounded."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and time.monotonic() >= self.expires_at

    def check(self) -> None:
        if self.expired:
            raise DeadlineExceeded("deadline exceeded before the call completed")
