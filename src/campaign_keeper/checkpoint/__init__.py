"""Version-control checkpoints: session commits and named save points."""

from campaign_keeper.checkpoint.git import GitCheckpoints, sanitize_save_name
from campaign_keeper.checkpoint.runner import (
    CommandNotFound,
    CommandOutput,
    CommandRunner,
    SubprocessRunner,
)

__all__ = [
    "GitCheckpoints",
    "sanitize_save_name",
    "CommandRunner",
    "CommandOutput",
    "CommandNotFound",
    "SubprocessRunner",
]
