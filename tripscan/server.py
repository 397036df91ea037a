# tripscan/server.py
"""
FastAPI server for the tripscan CLI.
"""

from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles
from starlette.responses import JSONResponse

from tripscan.utils.log import get_logger
from tripscan.storage.db import SessionDatabase
from tripscan.analysis.features import map_features
from tripscan.utils.validate import MapFeature

logger = get_logger(__name__)


def create_app(db: SessionDatabase, static_dir: Optional[str] = None) -> FastAPI:
    """
    Build a FastAPI instance bound to a loaded session database.
    """
    app = FastAPI()
    app.state.db = db

    # mount all API endpoints first
    @app.get("/api/status", response_class=JSONResponse)
    async def status() -> JSONResponse:
        return JSONResponse(status_code=200, content={"status": "ok"})

    @app.get("/api/trips", response_class=JSONResponse)
    async def get_trips(request: Request) -> JSONResponse:
        return JSONResponse(status_code=200, content=sorted(request.app.state.db.trips))

    @app.get("/api/time-range", response_class=JSONResponse)
    async def get_time_range(request: Request) -> JSONResponse:
        """
        return min and max bucket timestamps.
        """
        time_map = request.app.state.db.time_map
        return JSONResponse(
            status_code=200,
            content={
                "min_ts": min(time_map, default=0),
                "max_ts": max(time_map, default=0),
        })

    @app.get("/api/features", response_model=list[MapFeature])
    async def get_features(request: Request):
        return map_features(request.app.state.db.time_map)

    # mount the static UI last
    if static_dir:
        root = Path(static_dir)
        if not root.exists():
            logger.warning("Static directory %s does not exist", root)
        else:
            app.mount("/", StaticFiles(directory=root, html=True), name="webapp")

    return app
