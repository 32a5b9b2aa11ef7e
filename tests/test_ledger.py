"""
Tests for the in-memory SessionLedger.
"""

import pytest

from campaign_keeper.locations.store import LocationStateStore
from campaign_keeper.session.ledger import SessionLedger

pytestmark = pytest.mark.anyio


@pytest.fixture
def ledger() -> SessionLedger:
    return SessionLedger()


class TestLifecycle:

    def test_start(self, ledger: SessionLedger) -> None:
        result = ledger.start("village")

        assert result.success
        assert len(result.data.session_id) == 8
        assert result.data.current_location_id == "village"
        assert result.data.visited_locations == ["village"]
        assert ledger.is_active

    def test_start_twice_fails(self, ledger: SessionLedger) -> None:
        ledger.start("village")
        result = ledger.start("tser-pool")
        assert not result.success
        assert "already active" in result.error

    def test_start_requires_location(self, ledger: SessionLedger) -> None:
        assert not ledger.start("").success
        assert not ledger.is_active

    def test_end_summary(self, ledger: SessionLedger) -> None:
        ledger.start("village")
        ledger.record("Talk to Ismark")
        ledger.record("Open the gate")

        result = ledger.end()

        assert result.success
        assert result.data.action_count == 2
        assert result.data.locations_visited == 1
        assert result.data.final_location_id == "village"
        assert result.data.duration_minutes == 0
        assert not ledger.is_active
        assert ledger.recent().data == []

    def test_end_without_session(self, ledger: SessionLedger) -> None:
        result = ledger.end()
        assert not result.success
        assert result.error == "No active session to end"

    def test_capacity_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            SessionLedger(capacity=0)


class TestActions:

    def test_record_without_session(self, ledger: SessionLedger) -> None:
        result = ledger.record("Look around")
        assert not result.success
        assert result.error == "No active session"

    def test_record_entry(self, ledger: SessionLedger) -> None:
        ledger.start("village")
        entry = ledger.record("Attack the wolf", result="hit", narration="Steel bites.").data
        assert entry.location_id == "village"
        assert entry.description == "Attack the wolf"
        assert entry.result == "hit"
        assert entry.narration == "Steel bites."

    def test_buffer_keeps_last_ten(self, ledger: SessionLedger) -> None:
        ledger.start("village")
        for i in range(12):
            ledger.record(f"action {i}")

        everything = ledger.recent(50).data
        assert [e.description for e in everything] == [f"action {i}" for i in range(2, 12)]

        recent = ledger.recent().data
        assert [e.description for e in recent] == [f"action {i}" for i in range(7, 12)]

        stats = ledger.stats().data
        assert stats["action_count"] == 12
        assert stats["buffered_actions"] == 10

    def test_recent_non_positive(self, ledger: SessionLedger) -> None:
        ledger.start("village")
        ledger.record("x")
        assert ledger.recent(0).data == []

    def test_custom_capacity(self) -> None:
        ledger = SessionLedger(capacity=3)
        ledger.start("village")
        for i in range(5):
            ledger.record(f"action {i}")
        assert [e.description for e in ledger.recent(10).data] == ["action 2", "action 3", "action 4"]

    def test_stats_inactive(self, ledger: SessionLedger) -> None:
        result = ledger.stats()
        assert result.success
        assert result.data is None


class TestMoveTo:

    async def test_move_without_session(self, ledger: SessionLedger) -> None:
        assert not (await ledger.move_to("village")).success

    async def test_move_tracks_unique_locations(self, ledger: SessionLedger) -> None:
        ledger.start("village")
        await ledger.move_to("tser-pool")
        await ledger.move_to("village")
        ledger.record("Return to the church")

        stats = ledger.stats().data
        assert stats["current_location"] == "village"
        assert stats["locations_visited"] == 2
        assert ledger.recent(1).data[0].location_id == "village"

    async def test_move_marks_visited_in_store(self, config) -> None:
        store = LocationStateStore(config.locations_path)
        ledger = SessionLedger(state_store=store)
        ledger.start("village")

        result = await ledger.move_to("tser-pool")

        assert result.success
        assert (await store.load_state("tser-pool")).visited is True

    async def test_move_store_failure_is_warning(self, config) -> None:
        ledger = SessionLedger(state_store=LocationStateStore(config.locations_path))
        ledger.start("village")

        result = await ledger.move_to("krezk")

        assert result.success
        assert result.degraded
        assert ledger.stats().data["current_location"] == "krezk"
