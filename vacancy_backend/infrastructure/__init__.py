"""Infrastructure layer exports."""

from .notifications import (
    ChangeEvent,
    ChangeFeed,
    Subscription,
    configure_change_feed,
    event_from_webhook,
    get_change_feed,
)
from .record_store import (
    HttpRecordStore,
    InMemoryRecordStore,
    RecordStore,
    RecordStoreError,
    load_seed_file,
    parse_rows,
    render_query,
)

__all__ = [
    "ChangeEvent",
    "ChangeFeed",
    "HttpRecordStore",
    "InMemoryRecordStore",
    "RecordStore",
    "RecordStoreError",
    "Subscription",
    "configure_change_feed",
    "event_from_webhook",
    "get_change_feed",
    "load_seed_file",
    "parse_rows",
    "render_query",
]
