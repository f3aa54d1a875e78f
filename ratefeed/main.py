from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from ratefeed.api.routes import router
from ratefeed.config.settings import get_settings
from ratefeed.errors import TransportFailureError
from ratefeed.services.rate_api import connect


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.rate_api = None
    try:
        app.state.rate_api = app.state.connect_rate_api(app.state.get_settings())
    except TransportFailureError as exc:
        # serve 503s until restarted rather than refusing to boot
        print(f"[RATE][connect_failed] error={exc}", flush=True)

    try:
        yield
    finally:
        rate_api = app.state.rate_api
        if rate_api is not None:
            rate_api.disconnect()
        app.state.rate_api = None


app = FastAPI(title="Rate Feed", version="0.1.0", lifespan=lifespan)
app.include_router(router, prefix="/v1")

# NOTE: resolved at startup so tests can swap in offline collaborators.
app.state.get_settings = get_settings
app.state.connect_rate_api = connect
app.state.rate_api = None
