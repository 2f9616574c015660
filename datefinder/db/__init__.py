from datefinder.db.core import close_pool, get_pool, init_pool
from datefinder.db.events import df_fetch_event, df_insert_event, df_upsert_participant

__all__ = [
    "close_pool",
    "df_fetch_event",
    "df_insert_event",
    "df_upsert_participant",
    "get_pool",
    "init_pool",
]
