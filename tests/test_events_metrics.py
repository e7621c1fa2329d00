"""
Tests for the event log, subscriber fan-out, log filtering, and metrics.
"""

import numpy as np
import pytest

from archsim.simulation import (
    Node,
    NodeType,
    Edge,
    SimulationEventType,
    Severity,
    EventLog,
    Subscribers,
    LogFilter,
    filter_events,
    NodeMetrics,
    EdgeMetrics,
    SystemMetrics,
    MetricsCollector,
)


# =============================================================================
# Event Log Tests
# =============================================================================


class TestEventLog:
    def test_append_assigns_sequential_ids(self):
        log = EventLog()
        first = log.append(SimulationEventType.REQUEST_SENT, 100, "sent")
        second = log.append(SimulationEventType.REQUEST_FAILED, 200, "failed", Severity.ERROR)

        assert first.id == "evt-0"
        assert second.id == "evt-1"
        assert len(log) == 2
        assert log[1] is second
        assert [e.id for e in log] == ["evt-0", "evt-1"]

    def test_paths_are_frozen_copies(self):
        log = EventLog()
        path = ["c", "s"]
        event = log.append(SimulationEventType.REQUEST_PROCESSED, 0, "x", source_path=path)
        path.append("db")
        assert event.source_path == ("c", "s")

    def test_of_type(self):
        log = EventLog()
        log.append(SimulationEventType.CACHE_HIT, 0, "hit")
        log.append(SimulationEventType.CACHE_MISS, 0, "miss")
        log.append(SimulationEventType.CACHE_HIT, 0, "hit")
        assert len(log.of_type(SimulationEventType.CACHE_HIT)) == 2

    def test_to_dict(self):
        log = EventLog()
        event = log.append(
            SimulationEventType.NODE_SCALED,
            1000,
            "scaled",
            Severity.SUCCESS,
            node_id="svc",
            target_path=["db"],
            metadata={"instances": 2},
        )
        data = event.to_dict()
        assert data["type"] == "node_scaled"
        assert data["severity"] == "success"
        assert data["target_path"] == ["db"]
        assert data["source_path"] is None
        assert data["metadata"] == {"instances": 2}


class TestSubscribers:
    def test_delivery_in_subscription_order(self):
        subscribers = Subscribers()
        received = []
        subscribers.subscribe(lambda x: received.append(("a", x)))
        subscribers.subscribe(lambda x: received.append(("b", x)))

        subscribers.notify(1)

        assert received == [("a", 1), ("b", 1)]

    def test_unsubscribe(self):
        subscribers = Subscribers()
        received = []
        unsubscribe = subscribers.subscribe(received.append)
        unsubscribe()
        unsubscribe()  # idempotent
        subscribers.notify(1)
        assert received == []
        assert len(subscribers) == 0

    def test_unsubscribe_during_delivery(self):
        subscribers = Subscribers()
        received = []
        handles = {}

        def once(payload):
            received.append(("once", payload))
            handles["once"]()

        handles["once"] = subscribers.subscribe(once)
        subscribers.subscribe(lambda p: received.append(("always", p)))

        subscribers.notify(1)
        subscribers.notify(2)

        assert received == [("once", 1), ("always", 1), ("always", 2)]


class TestFilterEvents:
    @staticmethod
    def make_log() -> EventLog:
        log = EventLog()
        log.append(SimulationEventType.REQUEST_SENT, 0, "sent")
        log.append(SimulationEventType.REQUEST_FAILED, 0, "failed", Severity.ERROR)
        log.append(SimulationEventType.CACHE_HIT, 0, "hit", Severity.SUCCESS)
        log.append(SimulationEventType.DB_QUERY, 0, "query")
        log.append(SimulationEventType.BACKLOG_WARNING, 0, "backlog", Severity.WARNING)
        log.append(SimulationEventType.NODE_OVERLOAD, 0, "chaos", Severity.WARNING)
        log.append(SimulationEventType.NODE_SCALED, 0, "scaled", Severity.SUCCESS)
        log.append(SimulationEventType.NODE_FAILURE, 0, "down", Severity.ERROR)
        return log

    def test_all(self):
        assert len(filter_events(self.make_log(), LogFilter.ALL)) == 8

    def test_errors_by_severity(self):
        events = filter_events(self.make_log(), "errors")
        assert [e.message for e in events] == ["failed", "down"]

    def test_performance(self):
        events = filter_events(self.make_log(), LogFilter.PERFORMANCE)
        assert [e.message for e in events] == ["hit", "query", "backlog", "chaos"]

    def test_scaling(self):
        events = filter_events(self.make_log(), LogFilter.SCALING)
        assert [e.message for e in events] == ["scaled"]

    def test_unknown_filter(self):
        with pytest.raises(ValueError):
            filter_events([], "verbose")


# =============================================================================
# Metrics Tests
# =============================================================================


class TestNodeMetrics:
    def test_optional_fields_by_type(self):
        cache = NodeMetrics.for_node(Node("c", NodeType.CACHE), cache_hit_ratio=0.85)
        db = NodeMetrics.for_node(Node("d", NodeType.DATABASE), cache_hit_ratio=0.85)
        svc = NodeMetrics.for_node(Node("s", NodeType.SERVICE), cache_hit_ratio=0.85)

        assert cache.cache_hit_rate == 0.85
        assert cache.query_rate is None
        assert db.query_rate == 0
        assert db.cache_hit_rate is None
        assert svc.cache_hit_rate is None and svc.query_rate is None
        assert svc.instances == 1

    def test_record_processed_updates_load(self):
        metrics = NodeMetrics("s")
        for _ in range(50):
            metrics.record_processed(current_time=1000, hop_latency=20)

        assert metrics.throughput == 50
        assert metrics.requests_per_second == 50
        assert metrics.cpu_utilization == pytest.approx(0.5)
        assert metrics.average_latency == pytest.approx(20)

    def test_cpu_scales_with_instances_and_caps(self):
        metrics = NodeMetrics("s", instances=3)
        for _ in range(50):
            metrics.record_processed(current_time=1000, hop_latency=10)
        assert metrics.cpu_utilization == 1.0

    def test_error_and_success_rates(self):
        metrics = NodeMetrics("s")
        for _ in range(3):
            metrics.record_processed(current_time=100, hop_latency=10)
        metrics.record_failure()
        metrics.refresh()

        assert metrics.error_rate == pytest.approx(0.25)
        assert metrics.success_rate == pytest.approx(0.75)

    def test_success_rate_untouched_without_traffic(self):
        metrics = NodeMetrics("s")
        metrics.refresh()
        assert metrics.success_rate == 1.0

    def test_observed_cache_hit_rate(self):
        metrics = NodeMetrics("c", cache_hit_rate=0.85)
        metrics.record_cache_lookup(True)
        metrics.record_cache_lookup(False)
        assert metrics.cache_hit_rate == 0.5


class TestEdgeMetrics:
    def test_record_traversal(self):
        metrics = EdgeMetrics("a->b")
        metrics.record_traversal(current_time=2000, latency=10, payload=10, lost=False)
        metrics.record_traversal(current_time=2000, latency=20, payload=10, lost=True)

        assert metrics.traversals == 2
        assert metrics.latency == pytest.approx(15)
        assert metrics.packet_loss == pytest.approx(0.5)
        assert metrics.throughput == pytest.approx(1.0)
        assert metrics.bandwidth == pytest.approx(10.0)


class TestSystemMetrics:
    def test_running_mean_latency(self):
        system = SystemMetrics(total_requests=3)
        system.record_completion(100)
        system.record_completion(200)
        system.record_completion(300)
        assert system.average_latency == pytest.approx(200)
        assert system.success_rate == 1.0

    def test_success_rate_without_requests(self):
        assert SystemMetrics().success_rate == 1.0

    def test_copy_is_independent(self):
        system = SystemMetrics(total_requests=1)
        copied = system.copy()
        system.total_requests = 5
        assert copied.total_requests == 1


class TestMetricsCollector:
    @staticmethod
    def make_collector() -> MetricsCollector:
        return MetricsCollector.for_nodes(
            [Node("q1", NodeType.QUEUE), Node("q2", NodeType.QUEUE), Node("s", NodeType.SERVICE)],
            cache_hit_ratio=0.85,
        )

    def test_refresh_aggregates(self):
        collector = self.make_collector()
        collector.system.total_requests = 20
        collector.system.failed_requests = 5
        collector.nodes["q1"].queue_depth = 3
        collector.nodes["q2"].queue_depth = 4

        collector.refresh(current_time=2000, active_requests=7)

        system = collector.system
        assert system.timestamp == 2000
        assert system.active_requests == 7
        assert system.requests_per_second == 10
        assert system.error_rate == 0.25
        assert system.total_queue_depth == 7

    def test_error_rate_guarded(self):
        collector = self.make_collector()
        collector.refresh(current_time=100, active_requests=0)
        assert collector.system.error_rate == 0.0

    def test_snapshot_is_deep_copy(self):
        collector = self.make_collector()
        collector.system.total_requests = 1
        snapshot = collector.take_snapshot(1000)

        collector.system.total_requests = 99
        collector.nodes["s"].throughput = 99

        assert snapshot.system.total_requests == 1
        assert snapshot.nodes["s"].throughput == 0
        assert collector.history == [snapshot]
        assert snapshot.to_dict()["system"]["total_requests"] == 1

    def test_edge_metrics_created_lazily(self):
        collector = self.make_collector()
        assert collector.edges == {}
        edge = Edge("q1", "s")
        assert collector.edge(edge) is collector.edge(edge)
        assert list(collector.edges) == ["q1->s"]

    def test_peak_rps(self):
        collector = self.make_collector()
        assert collector.peak_requests_per_second() == 0.0
        for rps in (10.0, 30.0, 20.0):
            collector.system.requests_per_second = rps
            collector.take_snapshot(1000)
        assert collector.peak_requests_per_second() == 30.0

    def test_history_series(self):
        collector = self.make_collector()
        assert collector.history_series() == {}
        for t, total in ((1000, 10), (2000, 25)):
            collector.system.timestamp = t
            collector.system.total_requests = total
            collector.take_snapshot(t)

        series = collector.history_series()

        np.testing.assert_array_equal(series["timestamp"], [1000, 2000])
        np.testing.assert_array_equal(series["total_requests"], [10, 25])
