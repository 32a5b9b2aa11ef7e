"""Per-location state embedded as front matter in narrative documents."""

from campaign_keeper.locations.frontmatter import FrontMatterError, join_document, split_document
from campaign_keeper.locations.store import STATE_FILENAME, LocationStateStore, is_valid_location_id

__all__ = [
    "LocationStateStore",
    "is_valid_location_id",
    "STATE_FILENAME",
    "FrontMatterError",
    "split_document",
    "join_document",
]
