"""
campaign-keeper: session lifecycle and persistence engine for a
single-player tabletop RPG campaign assistant.
"""

from campaign_keeper.config import KeeperConfig
from campaign_keeper.engine import CampaignEngine, build_engine
from campaign_keeper.results import OperationResult

__version__ = "0.1.0"

__all__ = [
    "CampaignEngine",
    "KeeperConfig",
    "OperationResult",
    "build_engine",
]
