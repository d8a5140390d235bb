"""HTTP control surface for the engine's command protocol."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .browser import PlaywrightHost
from .commands import CommandHandler
from .config import Config
from .engine import EngineController
from .host import ResourceHost
from .store import JsonFileStore, StateStore

logger = structlog.get_logger()


def create_app(
    config: Config,
    state: StateStore | None = None,
    host: ResourceHost | None = None,
) -> FastAPI:
    """
    Build the control app.

    On startup the engine reconciles against the persisted state, so a
    process restarted while the engine was running picks back up on its own.
    """
    state = state or JsonFileStore(config.state_path)
    host = host or PlaywrightHost(config)
    engine = EngineController(config, state, host)
    handler = CommandHandler(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await host.start()
        await engine.reconcile()
        logger.info("control_api_ready", running=engine.running)
        try:
            yield
        finally:
            await engine.shutdown()
            await host.close()

    app = FastAPI(title="Poissonarr", lifespan=lifespan)
    app.state.engine = engine
    app.state.handler = handler

    @app.get("/healthz")
    async def healthz():
        return {
            "ok": True,
            "running": engine.running,
            "inFlight": engine.executor.in_flight,
        }

    @app.post("/command")
    async def command(body: dict):
        response = await handler.handle(body)
        status_code = 400 if "error" in response else 200
        return JSONResponse(response, status_code=status_code)

    return app
