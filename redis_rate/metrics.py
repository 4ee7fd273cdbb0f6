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
import prometheus_client as prom


class LimiterMetrics:
    """Prometheus_ metrics of a limiter.

    Parameters:
      registry(CollectorRegistry): the prometheus registry to use, if None, use a new registry.
      namespace(str): The prefix of every metric name.

    .. _Prometheus: https://prometheus.io
    """

    def __init__(self, *, registry=None, namespace="redis_rate"):
        if registry is None:
            registry = prom.CollectorRegistry()
        self.registry = registry
        self.round_trips = prom.Counter(
            f"{namespace}_round_trips_total",
            "The total number of pipelines sent to Redis.",
            registry=registry,
        )
        self.round_trip_durations = prom.Summary(
            f"{namespace}_round_trip_duration_milliseconds",
            "The time spent waiting for Redis pipelines.",
            registry=registry,
        )
        self.script_reloads = prom.Counter(
            f"{namespace}_script_reloads_total",
            "The total number of times the scripts were loaded into Redis.",
            registry=registry,
        )
        self.decisions = prom.Counter(
            f"{namespace}_decisions_total",
            "The total number of admission decisions.",
            ["kind", "outcome"],
            registry=registry,
        )
        for kind in ("rate", "concurrency"):
            for outcome in ("allowed", "denied"):
                self.decisions.labels(kind, outcome)

    def observe_round_trip(self, duration_ms: float) -> None:
        self.round_trips.inc()
        self.round_trip_durations.observe(duration_ms)

    def observe_results(self, rate_results, concurrency_results) -> None:
        for result in rate_results:
            outcome = "allowed" if result.allowed == result.requested else "denied"
            self.decisions.labels("rate", outcome).inc()
        for result in concurrency_results:
            outcome = "allowed" if result.allowed else "denied"
            self.decisions.labels("concurrency", outcome).inc()
