"""
pinpoint/api.py
─────────────────────────────────────────────────────────────────────────────
Pinpoint — dual-mode operator surface

TWO USAGE MODES:
  1. Importable class (device bridge, replay harness, tests):
         from pinpoint.api import PinpointAPI
         api = PinpointAPI.from_config(config, scheduler)
         api.start()
         api.report_authorization("always")
         api.report_fix(44.97, -93.26)

  2. FastAPI HTTP server (device bridge pushes OS events over localhost):
         python -m pinpoint.api                   # default: port 8765
         python -m pinpoint.api --port 9000
         uvicorn pinpoint.api:app --port 8765

ENDPOINTS:
  GET  /health                 — liveness + version
  GET  /status                 — full coordinator snapshot
  GET  /location/last-known    — durable last-known fix (404 if none yet)
  POST /location/request       — user toggles location updates on
  POST /location/stop          — user toggles location updates off
  POST /events/authorization   — OS reports a permission change
  POST /events/services        — OS reports location services on / off
  POST /events/activity        — OS reports a motion sample or category
  POST /events/fix             — OS delivers a raw position fix
  POST /events/lifecycle       — OS reports an app phase change

Events are queued onto the coordinator's dispatcher and applied in order on
the event loop. An accepted POST means "queued", not "applied".

CORS: localhost-only (127.0.0.1 / ::1). Not exposed to network by default.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from pinpoint import __version__
from pinpoint.activity import sample_for
from pinpoint.config import ensure_config
from pinpoint.coordinator import Coordinator, build_coordinator
from pinpoint.dispatch.scheduler import AsyncioScheduler, Scheduler
from pinpoint.models.state import (
    AuthorizationState,
    LifecyclePhase,
    MotionActivity,
    PositionFix,
)
from pinpoint.sources.external import ExternalMotionSource, ExternalPositionSource

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# IMPORTABLE CLASS
# ═══════════════════════════════════════════════════════════════════════════

class PinpointAPI:
    """
    Pure-Python wrapper around one Coordinator and its push-fed sources.
    No HTTP layer required — import and call directly.

    report_* methods validate their input (ValueError on a bad enum value or
    coordinate) and push the event through the same source the OS would use,
    so the usual rules still apply: fixes flow only while updates are
    running and are distance-filtered, motion samples only while monitoring.
    """

    def __init__(self, coordinator: Coordinator):
        self.coordinator = coordinator
        self.position: ExternalPositionSource = coordinator.position_source
        self.motion:   ExternalMotionSource   = coordinator.motion_source

    @classmethod
    def from_config(cls, config: Dict[str, Any], scheduler: Scheduler) -> "PinpointAPI":
        return cls(build_coordinator(
            config, scheduler,
            position_source = ExternalPositionSource(),
            motion_source   = ExternalMotionSource(),
        ))

    @property
    def scheduler(self) -> Scheduler:
        return self.coordinator.scheduler

    # ── LIFETIME ──────────────────────────────────────────────────────────

    def start(self) -> None:
        self.coordinator.start()

    def shutdown(self) -> None:
        self.coordinator.shutdown()

    # ── QUERIES ───────────────────────────────────────────────────────────

    def get_status(self) -> Dict[str, Any]:
        return self.coordinator.status()

    def get_last_known_fix(self) -> Optional[Dict[str, Any]]:
        """Durable last-known fix as {latitude, longitude, timestamp}, or None."""
        fix = self.coordinator.pipeline.last_known_fix()
        return asdict(fix) if fix else None

    # ── OS EVENTS ─────────────────────────────────────────────────────────

    def report_authorization(self, state: str) -> None:
        self.position.report_authorization(AuthorizationState(state))

    def report_services(self, enabled: bool, restored: str = AuthorizationState.UNDETERMINED.value) -> None:
        self.position.report_services(enabled, AuthorizationState(restored))

    def report_activity(
        self,
        category:   Optional[str] = None,
        confidence: str = 'low',
        **flags:    bool,
    ) -> bool:
        """
        Either category="cycling" or raw flags (automotive=True, stationary=True).
        Returns False if motion monitoring is off and the sample was dropped.
        """
        now = self.scheduler.now()
        if category is not None:
            activity = sample_for(category, confidence, now)
        else:
            activity = MotionActivity(confidence=confidence, timestamp=now, **flags)
        return self.motion.push_activity(activity)

    def report_fix(self, latitude: float, longitude: float, timestamp: Optional[float] = None) -> bool:
        """
        Returns True if the fix passed the source (updates running, outside
        the distance filter). Acceptance by the pipeline happens on dispatch.
        """
        ts = self.scheduler.now() if timestamp is None else float(timestamp)
        return self.position.push_fix(PositionFix(float(latitude), float(longitude), ts))

    def report_lifecycle(self, phase: str) -> None:
        self.coordinator.submit_lifecycle(LifecyclePhase(phase))

    # ── USER COMMANDS ─────────────────────────────────────────────────────

    def request_location(self) -> None:
        self.coordinator.request_location_updates()

    def stop_location(self) -> None:
        self.coordinator.stop_location_updates()


# ═══════════════════════════════════════════════════════════════════════════
# FASTAPI HTTP APP
# ═══════════════════════════════════════════════════════════════════════════

class AuthorizationEvent(BaseModel):
    state: str


class ServicesEvent(BaseModel):
    enabled:  bool
    restored: str = AuthorizationState.UNDETERMINED.value


class ActivityEvent(BaseModel):
    category:   Optional[str] = None
    walking:    bool = False
    running:    bool = False
    cycling:    bool = False
    automotive: bool = False
    stationary: bool = False
    unknown:    bool = False
    confidence: str  = 'low'


class FixEvent(BaseModel):
    lat: float
    lon: float
    ts:  Optional[float] = None


class LifecycleEvent(BaseModel):
    phase: str


def _build_app(config: Optional[Dict[str, Any]] = None) -> FastAPI:
    """
    Build the FastAPI application. The coordinator is created inside the
    lifespan, on the running loop, and shut down when the app stops.
    config=None loads pinpoint_config.json from the working directory.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = config if config is not None else ensure_config(Path.cwd())
        api = PinpointAPI.from_config(cfg, AsyncioScheduler(asyncio.get_running_loop()))
        api.start()
        app.state.pinpoint = api
        logger.info(f"Pinpoint API ready (device {api.coordinator.session.identity.device_id})")
        try:
            yield
        finally:
            api.shutdown()
            app.state.pinpoint = None

    _app = FastAPI(
        title       = "Pinpoint API",
        description = "Location reporting coordinator — local device bridge",
        version     = __version__,
        docs_url    = "/docs",
        redoc_url   = None,
        lifespan    = lifespan,
    )

    _app.add_middleware(
        CORSMiddleware,
        allow_origins     = [
            "http://localhost",
            "http://localhost:8765",
            "http://127.0.0.1",
            "http://127.0.0.1:8765",
        ],
        allow_methods     = ["GET", "POST", "OPTIONS"],
        allow_headers     = ["Content-Type"],
        allow_credentials = False,
    )

    def _api(request: Request) -> PinpointAPI:
        api = getattr(request.app.state, "pinpoint", None)
        if api is None:
            raise HTTPException(status_code=503, detail="Coordinator not running")
        return api

    def _queued(**extra) -> Dict[str, Any]:
        return {"status": "queued", **extra}

    # Reads are plain def (threadpool, SQLite off the loop). Event handlers are
    # async so they post from the loop thread that owns the coordinator

    @_app.get("/health", summary="Health check")
    def health(request: Request):
        api = getattr(request.app.state, "pinpoint", None)
        return {
            "status":  "ok" if api is not None else "starting",
            "version": __version__,
        }

    @_app.get("/status", summary="Coordinator snapshot")
    def status(request: Request):
        return _api(request).get_status()

    @_app.get("/location/last-known", summary="Durable last-known fix")
    def last_known(request: Request):
        fix = _api(request).get_last_known_fix()
        if fix is None:
            raise HTTPException(status_code=404, detail="No fix recorded yet")
        return fix

    @_app.post("/location/request", summary="Turn location updates on")
    async def location_request(request: Request):
        _api(request).request_location()
        return _queued()

    @_app.post("/location/stop", summary="Turn location updates off")
    async def location_stop(request: Request):
        _api(request).stop_location()
        return _queued()

    @_app.post("/events/authorization", summary="Permission changed")
    async def event_authorization(req: AuthorizationEvent, request: Request):
        api = _api(request)
        try:
            api.report_authorization(req.state)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return _queued()

    @_app.post("/events/services", summary="Location services toggled")
    async def event_services(req: ServicesEvent, request: Request):
        api = _api(request)
        try:
            api.report_services(req.enabled, req.restored)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return _queued()

    @_app.post("/events/activity", summary="Motion sample")
    async def event_activity(req: ActivityEvent, request: Request):
        api = _api(request)
        flags = req.model_dump(exclude={"category", "confidence"})
        try:
            if req.category is not None:
                delivered = api.report_activity(req.category, req.confidence)
            else:
                delivered = api.report_activity(confidence=req.confidence, **flags)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return _queued(delivered=delivered)

    @_app.post("/events/fix", summary="Raw position fix")
    async def event_fix(req: FixEvent, request: Request):
        api = _api(request)
        try:
            delivered = api.report_fix(req.lat, req.lon, req.ts)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return _queued(delivered=delivered)

    @_app.post("/events/lifecycle", summary="App phase changed")
    async def event_lifecycle(req: LifecycleEvent, request: Request):
        api = _api(request)
        try:
            api.report_lifecycle(req.phase)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return _queued()

    return _app


# Module-level app instance: used by uvicorn pinpoint.api:app
app = _build_app()


# ═══════════════════════════════════════════════════════════════════════════
# CLI ENTRYPOINT: python -m pinpoint.api
# ═══════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(
        prog        = "pinpoint.api",
        description = "Pinpoint API Server — local device bridge",
    )
    parser.add_argument("--port", type=int, default=8765,
                        help="Port to bind (default: 8765)")
    parser.add_argument("--host", type=str, default="127.0.0.1",
                        help="Host to bind — DO NOT change to 0.0.0.0 on shared networks")
    args = parser.parse_args()

    logging.basicConfig(
        level   = logging.INFO,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )
    uvicorn.run(app, host=args.host, port=args.port, log_level="info")
