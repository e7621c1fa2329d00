"""
Tests for the simulation session host.
"""

import logging

import pytest

from archsim.session import SimulationSession
from archsim.simulation import (
    Node,
    NodeType,
    Edge,
    SimulationConfig,
    SimulationEventType,
    Severity,
    SimulationStatus,
    LogFilter,
    ManualTickScheduler,
    PRESETS,
)


def make_session(**config) -> SimulationSession:
    return SimulationSession(
        [Node("c", NodeType.CLIENT, "Client"), Node("db", NodeType.DATABASE, "DB")],
        [Edge("c", "db")],
        SimulationConfig(**config),
        seed=11,
        scheduler_factory=ManualTickScheduler,
    )


def run_until_done(session: SimulationSession) -> None:
    while session.engine.status == SimulationStatus.RUNNING:
        session.engine.scheduler.advance(1)


class TestSessionLifecycle:
    def test_start_initializes_engine(self):
        session = make_session()
        assert session.engine is None

        session.start()

        assert session.engine is not None
        assert session.status == SimulationStatus.RUNNING
        assert session.engine.status == SimulationStatus.RUNNING

    def test_initialize_without_nodes_warns(self, caplog):
        session = SimulationSession(scheduler_factory=ManualTickScheduler)
        with caplog.at_level(logging.WARNING, logger="archsim.session"):
            assert session.initialize() is False
        assert "No nodes in design" in caplog.text

        session.start()
        assert session.engine is None
        assert session.status == SimulationStatus.IDLE

    def test_events_and_metrics_forwarded(self):
        session = make_session()
        session.start()
        session.engine.scheduler.advance(5)

        assert session.events == list(session.engine.state.event_log)
        assert session.current_time == 500
        assert session.metrics.timestamp == 500

    def test_pause_resume(self):
        session = make_session()
        session.start()
        session.pause()
        assert session.status == SimulationStatus.PAUSED
        session.resume()
        assert session.status == SimulationStatus.RUNNING

    def test_pause_before_start_is_noop(self):
        session = make_session()
        session.pause()
        assert session.status == SimulationStatus.IDLE

    def test_completion_captures_result_once(self):
        session = make_session(duration=1)
        session.start()
        run_until_done(session)

        assert session.status == SimulationStatus.COMPLETED
        assert session.show_summary is True
        assert session.result is session.engine.get_result()
        assert session.result.end_status == SimulationStatus.COMPLETED

    def test_request_completions_do_not_end_session(self):
        session = make_session(error_rate=0)
        session.start()
        session.engine.scheduler.advance(3)

        assert any("completed" in e.message for e in session.events)
        assert session.status == SimulationStatus.RUNNING
        assert session.result is None

    def test_stop_captures_result(self):
        session = make_session()
        session.start()
        session.engine.scheduler.advance(10)

        session.stop()

        assert session.status == SimulationStatus.STOPPED
        assert session.show_summary is True
        assert session.result.end_status == SimulationStatus.STOPPED
        assert session.result is session.engine.get_result()

    def test_stop_after_completion_keeps_summary_state(self):
        session = make_session(duration=1)
        session.start()
        run_until_done(session)
        session.show_summary = False

        session.stop()

        assert session.status == SimulationStatus.COMPLETED
        assert session.show_summary is False

    def test_reset_builds_fresh_engine(self):
        session = make_session()
        session.start()
        session.engine.scheduler.advance(5)
        old_engine = session.engine

        session.reset()

        assert session.engine is not old_engine
        assert old_engine.status == SimulationStatus.STOPPED
        assert session.status == SimulationStatus.IDLE
        assert session.events == []
        assert session.result is None
        assert session.current_time == 0

    def test_old_engine_detached_after_reset(self):
        session = make_session()
        session.start()
        old_engine = session.engine
        session.reset()
        count = len(session.events)

        old_engine.start()
        old_engine.scheduler.advance(2)

        assert len(session.events) == count

    def test_set_speed(self):
        session = make_session()
        session.set_speed(3)
        session.start()
        assert session.engine.state.speed == 3
        assert session.engine.scheduler.interval_ms == pytest.approx(100 / 3)

        with pytest.raises(ValueError):
            session.set_speed(0)
        with pytest.raises(ValueError):
            make_session().set_speed(-2)

    def test_update_config_applies_on_next_initialize(self):
        session = make_session()
        session.start()
        session.update_config(requests_per_second=7)

        assert session.engine.config.requests_per_second == 100
        session.reset()
        assert session.engine.config.requests_per_second == 7

    def test_update_config_validates(self):
        session = make_session()
        with pytest.raises(ValueError):
            session.update_config(error_rate=5)


class TestSessionPresets:
    def test_builtin_presets_available(self):
        session = make_session()
        assert set(PRESETS) <= set(session.presets)

    def test_load_preset(self):
        session = make_session()
        config = session.load_preset("high-traffic")
        assert config.requests_per_second == 1000
        assert session.config is config
        assert session.current_preset == "high-traffic"

    def test_load_unknown_preset(self):
        with pytest.raises(KeyError):
            make_session().load_preset("nope")

    def test_save_and_delete_preset(self):
        session = make_session(requests_per_second=321)
        preset = session.save_preset("Mine", "custom", ["team"])

        assert preset.id == "preset-1"
        assert preset.config.requests_per_second == 321
        assert preset.tags == ("team",)
        assert session.presets[preset.id] is preset

        session.load_preset(preset.id)
        session.delete_preset(preset.id)
        assert preset.id not in session.presets
        assert session.current_preset is None

    def test_presets_are_per_session(self):
        first = make_session()
        first.delete_preset("chaos-mode")
        assert "chaos-mode" in make_session().presets
        assert "chaos-mode" in PRESETS


class TestSessionLogFilter:
    def test_visible_events(self):
        session = make_session(error_rate=0.5)
        session.start()
        session.engine.scheduler.advance(10)

        session.set_log_filter("errors")
        visible = session.visible_events()

        assert session.log_filter == LogFilter.ERRORS
        assert visible
        assert all(e.severity == Severity.ERROR for e in visible)
        assert len(visible) < len(session.events)

    def test_scaling_filter(self):
        session = make_session()
        session.start()
        session.engine.scheduler.advance(5)
        session.set_log_filter(LogFilter.SCALING)
        assert all(e.type == SimulationEventType.NODE_SCALED for e in session.visible_events())
