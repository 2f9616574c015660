from typing import Optional

import redis.asyncio as redis

from datefinder.bus import EventBus
from datefinder.store import EventStore

# Global runtime state initialized in lifespan.setup_resources
redis_client: Optional[redis.Redis] = None
event_bus: Optional[EventBus] = None
event_store: Optional[EventStore] = None
