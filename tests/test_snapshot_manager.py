"""
Tests for session/snapshot.py: SessionSnapshotManager lifecycle and merges.
"""

import asyncio
from datetime import date
from pathlib import Path

import pytest
import yaml

from campaign_keeper.checkpoint.git import GitCheckpoints
from campaign_keeper.config import KeeperConfig
from campaign_keeper.locations.store import LocationStateStore
from campaign_keeper.session.history import SessionHistory
from campaign_keeper.session.snapshot import SessionSnapshotManager, deep_merge

pytestmark = pytest.mark.anyio


@pytest.fixture
def state_store(config: KeeperConfig) -> LocationStateStore:
    return LocationStateStore(config.locations_path)


@pytest.fixture
def manager(config: KeeperConfig, state_store: LocationStateStore, fake_git) -> SessionSnapshotManager:
    return SessionSnapshotManager(
        config,
        state_store=state_store,
        checkpoints=GitCheckpoints(config, runner=fake_git),
    )


def _today() -> str:
    return date.today().isoformat()


class TestDeepMerge:

    def test_nested_maps_merge(self) -> None:
        target = {"calendar": {"current_date": "735-10-3", "current_time": "14:30"}, "log_file": None}
        merged = deep_merge(target, {"calendar": {"current_time": "18:00"}})
        assert merged == {
            "calendar": {"current_date": "735-10-3", "current_time": "18:00"},
            "log_file": None,
        }

    def test_lists_and_scalars_replace(self) -> None:
        target = {"events": {"triggered_this_session": ["a", "b"]}, "log_file": "x"}
        merged = deep_merge(target, {"events": {"triggered_this_session": ["c"]}, "log_file": "y"})
        assert merged == {"events": {"triggered_this_session": ["c"]}, "log_file": "y"}

    def test_target_not_mutated(self) -> None:
        target = {"a": {"b": 1}}
        deep_merge(target, {"a": {"c": 2}})
        assert target == {"a": {"b": 1}}

    def test_map_replaces_scalar(self) -> None:
        assert deep_merge({"a": 1}, {"a": {"b": 2}}) == {"a": {"b": 2}}


class TestStartSession:

    async def test_start_writes_snapshot(
        self, manager: SessionSnapshotManager, config: KeeperConfig, character_path: str
    ) -> None:
        result = await manager.start_session(character_path, "village")

        assert result.success
        snapshot = result.data
        assert snapshot.session_id == f"{_today()}-1"
        assert snapshot.character.file_path == character_path
        assert snapshot.character.initial_level == 3
        assert snapshot.character.initial_xp == 900
        assert len(snapshot.character.snapshot_hash) == 32
        assert snapshot.location.current_location_id == "village"
        assert [v.location_id for v in snapshot.location.visited_this_session] == ["village"]
        assert snapshot.calendar.session_start_date == "735-10-3"
        assert snapshot.calendar.current_time == "14:30"
        assert config.snapshot_file.exists()
        assert manager.is_active

        current = await manager.get_current_session()
        assert current.data.session_id == snapshot.session_id

    async def test_xp_baseline_override(self, manager: SessionSnapshotManager, character_path: str) -> None:
        result = await manager.start_session(character_path, "village", xp_baseline=500)
        assert result.data.character.initial_xp == 500

    async def test_second_start_rejected(self, manager: SessionSnapshotManager, character_path: str) -> None:
        first = await manager.start_session(character_path, "village")
        second = await manager.start_session(character_path, "tser-pool")

        assert first.success
        assert not second.success
        assert "already active" in second.error
        current = await manager.get_current_session()
        assert current.data.location.current_location_id == "village"

    async def test_concurrent_starts_only_one_wins(
        self, manager: SessionSnapshotManager, character_path: str
    ) -> None:
        results = await asyncio.gather(
            manager.start_session(character_path, "village"),
            manager.start_session(character_path, "tser-pool"),
        )
        assert sorted(r.success for r in results) == [False, True]

    async def test_active_flag_survives_new_manager(
        self, manager: SessionSnapshotManager, config: KeeperConfig, character_path: str
    ) -> None:
        await manager.start_session(character_path, "village")

        restarted = SessionSnapshotManager(config)
        result = await restarted.start_session(character_path, "village")

        assert not result.success
        assert "already active" in result.error

    @pytest.mark.parametrize("location_id, message", [
        ("krezk", "Location directory not found"),
        ("../outside", "Invalid location ID"),
        ("", "Location ID is required"),
    ])
    async def test_invalid_location(
        self, manager: SessionSnapshotManager, config: KeeperConfig, character_path: str,
        location_id: str, message: str,
    ) -> None:
        result = await manager.start_session(character_path, location_id)
        assert not result.success
        assert message in result.error
        assert not config.snapshot_file.exists()

    async def test_missing_character(self, manager: SessionSnapshotManager, config: KeeperConfig) -> None:
        result = await manager.start_session("game-data/characters/ghost.yaml", "village")
        assert not result.success
        assert "Failed to load character file" in result.error
        assert not config.snapshot_file.exists()

    async def test_missing_calendar_uses_placeholder(
        self, manager: SessionSnapshotManager, config: KeeperConfig, character_path: str
    ) -> None:
        config.calendar_path.unlink()
        result = await manager.start_session(character_path, "village")
        assert result.data.calendar.session_start_date == "735-10-1"
        assert result.data.calendar.session_start_time == "08:00"


class TestUpdateSession:

    async def test_no_session(self, manager: SessionSnapshotManager) -> None:
        result = await manager.update_session({"log_file": "x"})
        assert not result.success
        assert "No active session" in result.error

    async def test_partial_merge_keeps_siblings(
        self, manager: SessionSnapshotManager, character_path: str
    ) -> None:
        await manager.start_session(character_path, "village")

        await manager.update_session({"npcs": {"active_npcs": ["ismark", "ireena"]}})
        result = await manager.update_session({"calendar": {"current_time": "18:00"}})

        assert result.success
        snapshot = (await manager.get_current_session()).data
        assert snapshot.npcs.active_npcs == ["ismark", "ireena"]
        assert snapshot.calendar.current_time == "18:00"
        assert snapshot.calendar.current_date == "735-10-3"
        assert snapshot.location.current_location_id == "village"

    async def test_update_stamps_last_activity(
        self, manager: SessionSnapshotManager, character_path: str
    ) -> None:
        started = (await manager.start_session(character_path, "village")).data
        await asyncio.sleep(0.01)
        updated = (await manager.update_session({"events": {"pending_events": ["storm"]}})).data
        assert updated.last_activity > started.last_activity

    async def test_unknown_field_rejected(self, manager: SessionSnapshotManager, character_path: str) -> None:
        await manager.start_session(character_path, "village")
        result = await manager.update_session({"weather": "fog"})
        assert not result.success
        assert "weather" in result.error

    async def test_invalid_value_rejected(self, manager: SessionSnapshotManager, character_path: str) -> None:
        await manager.start_session(character_path, "village")
        result = await manager.update_session({"performance": {"autosave_count": -1}})
        assert not result.success
        snapshot = (await manager.get_current_session()).data
        assert snapshot.performance.autosave_count == 0

    async def test_concurrent_events_not_lost(
        self, manager: SessionSnapshotManager, character_path: str
    ) -> None:
        await manager.start_session(character_path, "village")

        events = [f"event-{i}" for i in range(20)]
        results = await asyncio.gather(*(manager.record_event(e) for e in events))

        assert all(r.success for r in results)
        snapshot = (await manager.get_current_session()).data
        assert sorted(snapshot.events.triggered_this_session) == sorted(events)

    async def test_change_location_marks_visited(
        self, manager: SessionSnapshotManager, state_store: LocationStateStore, character_path: str
    ) -> None:
        await manager.start_session(character_path, "village")

        result = await manager.change_location("tser-pool")

        assert result.success
        assert not result.degraded
        assert result.data.location.current_location_id == "tser-pool"
        assert [v.location_id for v in result.data.location.visited_this_session] == ["village", "tser-pool"]
        assert (await state_store.load_state("tser-pool")).visited is True

    async def test_change_location_without_directory_degrades(
        self, manager: SessionSnapshotManager, character_path: str
    ) -> None:
        await manager.start_session(character_path, "village")

        result = await manager.change_location("krezk")

        assert result.success
        assert result.degraded
        assert "krezk" in result.warnings[0]

    async def test_change_location_rejects_unsafe_id(
        self, manager: SessionSnapshotManager, character_path: str
    ) -> None:
        await manager.start_session(character_path, "village")
        result = await manager.change_location("../../etc")
        assert not result.success

    async def test_npc_and_timing_records(self, manager: SessionSnapshotManager, character_path: str) -> None:
        await manager.start_session(character_path, "village")
        await manager.record_npc_interaction("ismark")
        await manager.record_context_load(0.5)
        result = await manager.record_context_load(1.5)

        assert [i.npc_id for i in result.data.npcs.interacted_with] == ["ismark"]
        assert result.data.performance.avg_context_load_time == 1.0


class TestCorruptSnapshot:

    async def test_corrupt_file_reads_as_none_but_blocks_start(
        self, manager: SessionSnapshotManager, config: KeeperConfig, character_path: str
    ) -> None:
        config.session_path.mkdir(parents=True)
        config.snapshot_file.write_text("session_id: [broken\n", encoding="utf-8")

        assert (await manager.get_current_session()).data is None
        assert not (await manager.start_session(character_path, "village")).success

        assert (await manager.abandon_session()).success
        assert (await manager.start_session(character_path, "village")).success

    async def test_missing_required_keys(self, manager: SessionSnapshotManager, config: KeeperConfig) -> None:
        config.session_path.mkdir(parents=True)
        config.snapshot_file.write_text(yaml.safe_dump({"session_id": "x"}), encoding="utf-8")
        assert (await manager.get_current_session()).data is None

    async def test_abandon_without_session(self, manager: SessionSnapshotManager) -> None:
        assert not (await manager.abandon_session()).success


class TestEndSession:

    async def test_no_session(self, manager: SessionSnapshotManager) -> None:
        result = await manager.end_session("Nothing happened")
        assert not result.success
        assert "No active session" in result.error

    async def test_end_writes_log_commit_and_history(
        self, manager: SessionSnapshotManager, config: KeeperConfig, character_path: str, fake_git
    ) -> None:
        await manager.start_session(character_path, "village")
        await manager.change_location("tser-pool")
        await manager.record_npc_interaction("madam-eva")

        result = await manager.end_session("Met Madam Eva")

        assert result.success
        assert not result.degraded
        ended = result.data
        assert ended.commit == "1a2b3c4"
        assert ended.log_path == f"game-data/session/logs/{_today()}-session-1.md"
        assert "Met Madam Eva" in ended.summary
        assert (config.project_root / ended.log_path).read_text(encoding="utf-8") == ended.summary
        assert not config.snapshot_file.exists()
        assert not manager.is_active

        entry = ended.history_entry
        assert entry.session_id == f"{_today()}-1"
        assert entry.locations_visited == 2
        assert entry.npcs_interacted == 1
        assert entry.log_file == ended.log_path
        assert SessionHistory(config.history_file).find(entry.session_id) == entry

        staged = [call[-1] for call in fake_git.commands("add")]
        assert ended.log_path in staged
        assert "game-data/locations/tser-pool/State.md" in staged
        assert fake_git.commands("commit")[0][3].startswith(
            f"[SESSION] {_today()} | tser-pool | Met Madam Eva"
        )

    async def test_next_session_id_increments(
        self, manager: SessionSnapshotManager, character_path: str
    ) -> None:
        await manager.start_session(character_path, "village")
        await manager.end_session("one")
        result = await manager.start_session(character_path, "village")
        assert result.data.session_id == f"{_today()}-2"

    async def test_graceful_close_without_git(
        self, config: KeeperConfig, character_path: str, make_git
    ) -> None:
        manager = SessionSnapshotManager(
            config, checkpoints=GitCheckpoints(config, runner=make_git(installed=False))
        )
        await manager.start_session(character_path, "village")

        result = await manager.end_session("Quiet night")

        assert result.success
        assert result.degraded
        assert result.data.commit is None
        assert "Checkpoint skipped: Git not installed" in result.warnings
        assert (config.project_root / result.data.log_path).exists()
        assert not config.snapshot_file.exists()
        assert SessionHistory(config.history_file).count_for_date(_today()) == 1

    async def test_close_without_checkpoints(self, config: KeeperConfig, character_path: str) -> None:
        manager = SessionSnapshotManager(config)
        await manager.start_session(character_path, "village")
        result = await manager.end_session()
        assert result.success
        assert result.data.commit is None
        assert any("Checkpoint skipped" in w for w in result.warnings)

    async def test_xp_gained_recorded(
        self, manager: SessionSnapshotManager, config: KeeperConfig, campaign_root: Path, character_path: str
    ) -> None:
        await manager.start_session(character_path, "village")
        sheet = campaign_root / character_path
        data = yaml.safe_load(sheet.read_text(encoding="utf-8"))
        data["experience"] = 1150
        sheet.write_text(yaml.safe_dump(data), encoding="utf-8")

        result = await manager.end_session("Fought wolves")

        assert result.data.history_entry.xp_gained == 250
        assert "- **XP Gained:** 250 XP" in result.data.summary


class TestUnreadableFiles:

    async def test_non_utf8_snapshot(
        self, manager: SessionSnapshotManager, config: KeeperConfig, character_path: str
    ) -> None:
        config.session_path.mkdir(parents=True)
        config.snapshot_file.write_bytes(b"\xff\xfe\x00garbage")

        assert (await manager.get_current_session()).data is None
        assert not (await manager.update_session({"log_file": "x"})).success
        assert not (await manager.end_session("Quiet night")).success
        manager.start_autosave(60)
        await manager._autosave_tick()
        manager.stop_autosave()
        assert config.snapshot_file.read_bytes() == b"\xff\xfe\x00garbage"

        assert not (await manager.start_session(character_path, "village")).success
        assert (await manager.abandon_session()).success
        assert (await manager.start_session(character_path, "village")).success

    async def test_change_location_into_undecodable_state(
        self, manager: SessionSnapshotManager, config: KeeperConfig, character_path: str
    ) -> None:
        state_file = config.locations_path / "tser-pool" / "State.md"
        state_file.write_bytes(b"---\nvisited: false\n---\n\xff\xfe\n")
        await manager.start_session(character_path, "village")

        result = await manager.change_location("tser-pool")

        assert result.success
        assert result.degraded
        assert "tser-pool" in result.warnings[0]
        assert result.data.location.current_location_id == "tser-pool"
        assert state_file.read_bytes() == b"---\nvisited: false\n---\n\xff\xfe\n"

    async def test_change_location_with_numeric_npc_keys(
        self, manager: SessionSnapshotManager, state_store: LocationStateStore,
        config: KeeperConfig, character_path: str,
    ) -> None:
        (config.locations_path / "tser-pool" / "State.md").write_text(
            "---\nnpc_states: {7: x}\n---\nVistani camp\n", encoding="utf-8"
        )
        await manager.start_session(character_path, "village")

        result = await manager.change_location("tser-pool")

        assert result.success
        state = await state_store.load_state("tser-pool")
        assert state.visited is True
        assert state.npc_states == {"7": "x"}

    async def test_non_utf8_calendar_uses_placeholder(
        self, manager: SessionSnapshotManager, config: KeeperConfig, character_path: str
    ) -> None:
        config.calendar_path.write_bytes(b"current:\n  date: \xff\n")
        result = await manager.start_session(character_path, "village")
        assert result.success
        assert result.data.calendar.session_start_date == "735-10-1"

    async def test_non_utf8_character_fails_start(
        self, manager: SessionSnapshotManager, config: KeeperConfig, campaign_root: Path, character_path: str
    ) -> None:
        (campaign_root / character_path).write_bytes(b"name: \xff\xfe\n")
        result = await manager.start_session(character_path, "village")
        assert not result.success
        assert not config.snapshot_file.exists()


async def test_response_times_averaged(manager: SessionSnapshotManager, character_path: str) -> None:
    await manager.start_session(character_path, "village")
    await manager.record_response_time(1.0)
    result = await manager.record_response_time(2.0)

    assert result.data.performance.response_times == [1.0, 2.0]
    assert result.data.performance.avg_response_time == 1.5

    ended = await manager.end_session("Quiet night")
    assert "- **Average Response Time:** 1.5 seconds" in ended.data.summary
