"""Tests for GovernanceController."""

import logging

import pytest

from antibeaver.audit import AuditTracker
from antibeaver.config import GovernanceSettings
from antibeaver.controller import GovernanceController
from antibeaver.models import GovernanceMode, Outcome, SystemState
from antibeaver.storage import ThoughtStore
from antibeaver.validation import MAX_LATENCY_MS


class TestControllerLatency:
    """Tests for record_latency()."""

    async def test_record_latency_returns_average(self, controller, storage):
        """Test latency is recorded and averaged."""
        await controller.record_latency(100)
        result = await controller.record_latency(300)

        assert result.recorded is True
        assert result.average == 200
        assert result.outcome is Outcome.OK
        assert len(await storage.recent_metrics()) == 2

    async def test_record_latency_normalizes_input(self, controller, monitor):
        """Test non-finite and negative input become 0."""
        await controller.record_latency(float("nan"))
        await controller.record_latency(-50)
        await controller.record_latency("fast")

        assert monitor.sample_count() == 3
        assert monitor.max() == 0

    async def test_high_latency_enters_buffering(self, controller):
        """Test a spike moves the controller into BUFFERING."""
        await controller.record_latency(6000)
        assert controller.mode is GovernanceMode.BUFFERING

    async def test_record_latency_huge_value(self, controller, monitor, storage):
        """Test an out-of-range latency is clamped and persisted."""
        result = await controller.record_latency(1e20)

        assert result.recorded is True
        assert result.outcome is Outcome.OK
        assert monitor.max() == MAX_LATENCY_MS
        assert (await storage.recent_metrics())[0]["latency_ms"] == MAX_LATENCY_MS
        assert controller.mode is GovernanceMode.BUFFERING


class TestControllerBuffering:
    """Tests for buffer_attempt() and send_attempt()."""

    async def test_buffer_attempt(self, controller):
        """Test a buffered thought returns a synthetic success."""
        result = await controller.buffer_attempt("main", "slack", "#ops", "Hello", "P1")

        assert result.ok is True
        assert result.outcome is Outcome.BUFFERED
        assert result.id is not None
        assert result.pending == 1
        assert result.warning is None
        assert result.hint == "Thought buffered. Do not retry."

    async def test_buffer_attempt_rejects_blank(self, controller):
        """Test blank content is rejected without raising."""
        result = await controller.buffer_attempt("main", "slack", "", "   ")

        assert result.ok is False
        assert result.outcome is Outcome.REJECTED
        assert result.error

    async def test_capacity_warning(self, storage, monitor, tracker):
        """Test the warning appears once pending reaches capacity."""
        controller = GovernanceController(
            storage=storage,
            monitor=monitor,
            tracker=tracker,
            settings=GovernanceSettings(db_path=":memory:", max_buffer_size=2),
        )

        first = await controller.buffer_attempt("main", "slack", "", "one")
        second = await controller.buffer_attempt("main", "slack", "", "two")

        assert first.warning is None
        assert second.warning == "Buffer at capacity (2)."
        assert "Buffer at capacity" in second.hint

    async def test_send_attempt_passes_through_when_healthy(self, controller, transport, storage):
        """Test healthy sends go to the transport."""
        result = await controller.send_attempt("main", "slack", "#ops", "Hello")

        assert result.outcome is Outcome.PASSED
        transport.assert_awaited_once_with("main", "slack", "#ops", "Hello")
        assert await storage.pending_count() == 0

    async def test_send_attempt_buffers_when_degraded(self, controller, transport, storage):
        """Test degraded sends are buffered."""
        await controller.record_latency(9000)
        result = await controller.send_attempt("main", "slack", "#ops", "Hello")

        assert result.outcome is Outcome.BUFFERED
        transport.assert_not_awaited()
        assert await storage.pending_count("main") == 1


class TestControllerFlush:
    """Tests for flush()."""

    async def test_flush_scenario(self, controller, storage):
        """Test P2, P0, P1 inserts flush as one ordered synthesis."""
        await controller.buffer_attempt("main", "slack", "", "low thing", "P2")
        await controller.buffer_attempt("main", "slack", "", "critical thing", "P0")
        await controller.buffer_attempt("main", "slack", "", "normal thing", "P1")

        pending = await storage.pending("main")
        assert [t.priority.value for t in pending] == ["P0", "P1", "P2"]

        result = await controller.flush("main")

        assert result.outcome is Outcome.OK
        assert len(result.syntheses) == 1
        text = result.syntheses[0].text
        assert "3 messages" in text
        assert "[CRITICAL]" in text
        assert "1 CRITICAL thought(s)" in text
        assert "preserve unless clearly obsolete" in text
        assert text.index("critical thing") < text.index("normal thing") < text.index("low thing")

        events = await storage.synthesis_events("main")
        assert len(events) == 1
        assert events[0].thought_count == 3
        assert events[0].final_output == text

    async def test_flush_nothing_pending(self, controller):
        """Test flushing an empty queue reports no pending thoughts."""
        result = await controller.flush("main")

        assert result.syntheses == []
        assert result.message == "no pending thoughts"
        assert result.render() == "no pending thoughts"

    async def test_flush_twice(self, controller):
        """Test a second flush consumes nothing."""
        await controller.buffer_attempt("main", "slack", "", "a")
        await controller.flush("main")
        second = await controller.flush("main")

        assert second.message == "no pending thoughts"

    async def test_flush_all(self, controller, storage, on_synthesis):
        """Test flushing every agent with pending thoughts."""
        await controller.buffer_attempt("main", "slack", "", "a")
        await controller.buffer_attempt("helper", "slack", "", "b")
        await controller.buffer_attempt("helper", "slack", "", "c")

        result = await controller.flush("all")

        assert {s.agent_id: s.thought_count for s in result.syntheses} == {
            "helper": 2,
            "main": 1,
        }
        assert await storage.pending_count() == 0
        assert on_synthesis.await_count == 2
        assert "### helper (2 thoughts)" in result.render()

    async def test_flush_handler_failure_is_contained(self, controller, on_synthesis, storage):
        """Test a failing synthesis handler does not break the flush."""
        on_synthesis.side_effect = RuntimeError("downstream gone")
        await controller.buffer_attempt("main", "slack", "", "a")

        result = await controller.flush("main")

        assert result.outcome is Outcome.OK
        assert await storage.pending_count() == 0

    async def test_flush_logs_partially_consumed_batch(
        self, controller, storage, monkeypatch, caplog
    ):
        """Test a batch shrunk by a concurrent flush is counted and logged."""
        for content in ("a", "b", "c"):
            await controller.buffer_attempt("main", "slack", "", content)
        original_pending = storage.pending

        async def pending_then_concurrent_flush(agent_id):
            thoughts = await original_pending(agent_id)
            await storage.mark_synthesized(agent_id, "other", through_id=thoughts[0].id)
            return thoughts

        monkeypatch.setattr(storage, "pending", pending_then_concurrent_flush)

        with caplog.at_level(logging.WARNING, logger="antibeaver.controller.controller"):
            result = await controller.flush("main")

        assert result.syntheses[0].thought_count == 2
        assert "lists 3 thoughts but 2 were still pending" in caplog.text
        assert await storage.pending_count("main") == 0


class TestControllerRecovery:
    """Tests for automatic drain on recovery."""

    async def test_recovery_flushes_all_agents(self, controller, clock, storage, on_synthesis):
        """Test BUFFERING -> NORMAL synthesizes every queue."""
        await controller.record_latency(8000)
        assert controller.mode is GovernanceMode.BUFFERING

        await controller.send_attempt("main", "slack", "", "queued")
        await controller.send_attempt("helper", "slack", "", "also queued")

        clock.advance(61000)
        await controller.record_latency(100)

        assert controller.mode is GovernanceMode.NORMAL
        assert await storage.pending_count() == 0
        assert on_synthesis.await_count == 2
        agents = {call.args[0] for call in on_synthesis.await_args_list}
        assert agents == {"main", "helper"}

    async def test_check_recovery_without_transition(self, controller):
        """Test no flush happens while still healthy."""
        assert await controller.check_recovery() is None

    async def test_buffer_off_recovers(self, controller, storage):
        """Test clearing overrides drains the queue."""
        await controller.set_forced_buffering(True)
        assert controller.mode is GovernanceMode.BUFFERING
        await controller.send_attempt("main", "slack", "", "queued")

        state = await controller.buffer_off()

        assert state == SystemState()
        assert controller.mode is GovernanceMode.NORMAL
        assert await storage.pending_count() == 0


class TestControllerKillSwitch:
    """Tests for halt() and resume()."""

    async def test_halt_forces_buffering(self, controller, transport, storage):
        """Test halted sends are always buffered."""
        await controller.halt(actor="alice")
        await controller.set_forced_buffering(False)

        result = await controller.send_attempt("main", "slack", "", "hold this")

        assert result.outcome is Outcome.BUFFERED
        transport.assert_not_awaited()
        assert controller.decide().reason == "halted"
        assert controller.mode is GovernanceMode.HALTED

    async def test_halt_survives_other_overrides(self, controller):
        """Test only resume clears halt."""
        await controller.halt()
        await controller.set_simulated_latency(0)
        await controller.buffer_off()

        assert controller.state.halted is True
        assert controller.decide().buffering is True

    async def test_halt_is_idempotent(self, controller, storage):
        """Test repeated halt only repeats the audit entry."""
        first = await controller.halt(actor="alice")
        second = await controller.halt(actor="alice")

        assert first == second
        halts = await storage.get_audit_events(event_types=["halt"])
        assert len(halts) == 2
        assert halts[0].data == {"already_halted": True}
        assert halts[1].data == {"already_halted": False}

    async def test_resume_clears_everything(self, controller):
        """Test resume resets all overrides."""
        await controller.set_forced_buffering(True)
        await controller.set_simulated_latency(20000)
        await controller.halt()

        state = await controller.resume(actor="bob")

        assert state == SystemState()
        assert controller.mode is GovernanceMode.NORMAL
        assert controller.decide().buffering is False


class TestControllerOverrides:
    """Tests for simulated latency and status."""

    async def test_simulated_latency_scenario(self, controller):
        """Test simulated 20000ms on an idle monitor buffers."""
        await controller.set_simulated_latency(20000)
        decision = controller.decide()

        assert decision.buffering is True
        assert "simulated" in decision.reason
        assert "20000" in decision.reason

    async def test_simulated_latency_clamps(self, controller):
        """Test negative simulated latency turns simulation off."""
        state = await controller.set_simulated_latency(-5)
        assert state.simulated_latency_ms == 0

    async def test_status(self, controller):
        """Test status report fields."""
        await controller.record_latency(200)
        await controller.record_latency(400)
        await controller.buffer_attempt("main", "slack", "", "a")
        await controller.buffer_attempt("helper", "slack", "", "b")

        report = await controller.status()

        assert report.buffering is False
        assert report.reason == "healthy"
        assert report.mode == "normal"
        assert report.halted is False
        assert report.pending == 2
        assert report.agents == {"helper": 1, "main": 1}
        assert report.avg_latency == 300
        assert report.max_latency == 400
        assert report.threshold == 5000
        assert report.hint == "Queue healthy."

    async def test_status_when_halted(self, controller):
        """Test status reflects the kill switch."""
        await controller.halt()
        report = await controller.status()

        assert report.halted is True
        assert report.mode == "halted"
        assert report.hint == "Use buffer_thought instead of direct messages."

    async def test_purge(self, controller, storage):
        """Test purge discards without synthesis."""
        await controller.buffer_attempt("main", "slack", "", "a")
        await controller.buffer_attempt("main", "slack", "", "b")

        result = await controller.purge("main")

        assert result.outcome is Outcome.OK
        assert result.discarded == 2
        assert await storage.synthesis_events() == []

    async def test_operator_actions_are_audited(self, controller, storage):
        """Test overrides leave audit entries."""
        await controller.set_forced_buffering(True, actor="alice")
        await controller.buffer_off(actor="alice")

        events = await storage.get_audit_events(actor="alice")
        types = [e.event_type for e in events]
        assert "buffer_on" in types
        assert "buffer_off" in types
        assert "mode_changed" in types


class TestControllerStoreUnavailable:
    """Tests for degraded operation without a store."""

    @pytest.fixture
    def degraded(self, monitor):
        store = ThoughtStore(":memory:")  # never initialized
        return GovernanceController(
            storage=store,
            monitor=monitor,
            tracker=AuditTracker(store),
            settings=GovernanceSettings(db_path=":memory:"),
        )

    async def test_buffer_attempt_degrades(self, degraded):
        """Test writes report failure instead of raising."""
        result = await degraded.buffer_attempt("main", "slack", "", "a")

        assert result.ok is False
        assert result.outcome is Outcome.DEGRADED
        assert "unavailable" in result.error

    async def test_reads_and_status_degrade(self, degraded):
        """Test status and flush keep working."""
        report = await degraded.status()
        assert report.pending == 0
        assert report.outcome is Outcome.DEGRADED

        flushed = await degraded.flush("all")
        assert flushed.message == "no pending thoughts"

    async def test_latency_and_halt_still_work(self, degraded):
        """Test the monitor and kill switch do not depend on the store."""
        result = await degraded.record_latency(100)
        assert result.recorded is True
        assert result.outcome is Outcome.DEGRADED

        await degraded.halt()
        assert degraded.decide().reason == "halted"
