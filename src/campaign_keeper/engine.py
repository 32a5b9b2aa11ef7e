"""
Wiring for the campaign-keeper engine.

``build_engine`` assembles every component from one KeeperConfig. The
ledger and the snapshot manager cooperate: the ledger keeps the recent
actions in memory while the snapshot manager owns the durable record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from campaign_keeper.checkpoint.git import GitCheckpoints
from campaign_keeper.checkpoint.runner import CommandRunner
from campaign_keeper.config import KeeperConfig
from campaign_keeper.locations.store import LocationStateStore
from campaign_keeper.results import OperationResult
from campaign_keeper.session.history import SessionHistory
from campaign_keeper.session.ledger import SessionLedger
from campaign_keeper.session.log_compiler import SessionLogCompiler
from campaign_keeper.session.snapshot import SessionSnapshotManager

logger = logging.getLogger(__name__)


@dataclass
class CampaignEngine:
    """All engine components sharing one configuration."""

    config: KeeperConfig
    state_store: LocationStateStore
    checkpoints: GitCheckpoints
    log_compiler: SessionLogCompiler
    history: SessionHistory
    snapshots: SessionSnapshotManager
    ledger: SessionLedger

    async def start_session(
        self,
        character_path: str,
        location_id: str,
        xp_baseline: int | None = None,
    ) -> OperationResult:
        """Start the durable session, then the in-memory ledger."""
        result = await self.snapshots.start_session(character_path, location_id, xp_baseline)
        if not result.success:
            return result

        if self.ledger.is_active:
            logger.warning("Resetting a ledger left over from a previous session")
            self.ledger.end()
        self.ledger.start(location_id)
        return result

    async def travel(self, location_id: str) -> OperationResult:
        """Move both layers to a new location."""
        result = await self.snapshots.change_location(location_id)
        if result.success and self.ledger.is_active:
            await self.ledger.move_to(location_id)
        return result

    async def end_session(self, player_summary: str | None = None) -> OperationResult:
        """End the durable session; the ledger is cleared once that succeeds."""
        result = await self.snapshots.end_session(player_summary)
        if result.success and self.ledger.is_active:
            self.ledger.end()
        return result


def build_engine(
    config: KeeperConfig | None = None,
    runner: CommandRunner | None = None,
) -> CampaignEngine:
    """Build an engine from ``config`` (defaults to the environment)."""
    config = config or KeeperConfig.from_env()
    state_store = LocationStateStore(config.locations_path)
    checkpoints = GitCheckpoints(config, runner=runner)
    log_compiler = SessionLogCompiler(config)
    history = SessionHistory(config.history_file)
    snapshots = SessionSnapshotManager(
        config,
        state_store=state_store,
        log_compiler=log_compiler,
        checkpoints=checkpoints,
        history=history,
    )
    ledger = SessionLedger(capacity=config.ledger_capacity)
    return CampaignEngine(
        config=config,
        state_store=state_store,
        checkpoints=checkpoints,
        log_compiler=log_compiler,
        history=history,
        snapshots=snapshots,
        ledger=ledger,
    )


__all__ = ["CampaignEngine", "build_engine"]
