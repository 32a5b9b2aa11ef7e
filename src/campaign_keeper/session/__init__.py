"""Session lifecycle: ledger, snapshot manager, autosave, history and logs."""

from campaign_keeper.session.autosave import AutoSaveTask
from campaign_keeper.session.history import SessionHistory
from campaign_keeper.session.ledger import SessionLedger
from campaign_keeper.session.log_compiler import SessionLogCompiler
from campaign_keeper.session.snapshot import SessionSnapshotManager, deep_merge

__all__ = [
    "AutoSaveTask",
    "SessionHistory",
    "SessionLedger",
    "SessionLogCompiler",
    "SessionSnapshotManager",
    "deep_merge",
]
