import logging

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from datefinder.config import get_settings
from datefinder.controllers.events import router as events_router
from datefinder.controllers.health import router as health_router
from datefinder.controllers.identity import router as identity_router
from datefinder.controllers.ws_events import router as ws_events_router
from datefinder.errors import register_exception_handlers
from datefinder.lifespan import lifespan
from datefinder.middleware import HTTPLogMiddleware

settings = get_settings()

app = FastAPI(title="DateFinder API", version="1.0.0", lifespan=lifespan)
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins,
    allow_origin_regex=settings.cors.origins_regex or None,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.debug.request:
    logging.getLogger("datefinder.http").setLevel(logging.DEBUG)
    app.add_middleware(HTTPLogMiddleware)

if settings.debug.websocket:
    logging.getLogger("datefinder.ws.events").setLevel(logging.INFO)
else:
    logging.getLogger("datefinder.ws.events").setLevel(logging.WARNING)

app.include_router(health_router)
app.include_router(events_router)
app.include_router(identity_router)
app.include_router(ws_events_router)

if settings.features.metrics:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
