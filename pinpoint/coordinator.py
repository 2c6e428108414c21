"""
pinpoint/coordinator.py
Composition root. Builds every component explicitly, wires them together
and exposes one intake per event kind. Every intake posts onto the serial
EventDispatcher, so handlers never run concurrently and each event sees the
fully-applied effect of the previous one.

WIRING:
  position source ─auth─▶ AuthorizationStateMachine ─arm/disarm─▶ LocationPipeline
  motion source ────────▶ ActivityClassifierAdapter ─category──▶ SamplingController ─▶ distance filter
  position source ─fix──▶ LocationPipeline ─accepted fix─▶ ConnectivityPolicy ─▶ MessagingSessionManager
  OS lifecycle ─────────▶ LifecycleObserver ─phase────────▶ ConnectivityPolicy
  transport acks ───────▶ MessagingSessionManager

No global state: one Coordinator per process, owned by whoever builds it
(CLI, HTTP app lifespan, replay, tests).
"""

import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from pinpoint.activity import ActivityClassifierAdapter
from pinpoint.authorization import AuthorizationStateMachine, is_granted
from pinpoint.connectivity import ConnectivityPolicy
from pinpoint.dispatch.dispatcher import EventDispatcher, EventPriority
from pinpoint.dispatch.scheduler import Scheduler
from pinpoint.errors import PermissionDenied, ServiceUnavailable
from pinpoint.lifecycle import LifecycleObserver
from pinpoint.messaging.base import BrokerSettings, MessagingTransport, SessionIdentity
from pinpoint.messaging.loopback import LoopbackTransport
from pinpoint.messaging.session import MessagingSessionManager
from pinpoint.models.state import (
    ActivityCategory,
    AuthorizationState,
    LifecyclePhase,
    MotionActivity,
    PositionFix,
)
from pinpoint.pipeline import LocationPipeline
from pinpoint.sampling import SamplingController
from pinpoint.sources.base import MotionSource, PositionSource
from pinpoint.sources.external import ExternalMotionSource, ExternalPositionSource
from pinpoint.store.sqlite_store import SqliteKeyValueStore

logger = logging.getLogger(__name__)


class Coordinator:

    def __init__(
        self,
        scheduler:             Scheduler,
        position_source:       PositionSource,
        motion_source:         MotionSource,
        transport:             MessagingTransport,
        store:                 SqliteKeyValueStore,
        settings:              BrokerSettings,
        identity:              SessionIdentity,
        heartbeat_interval:    float = 5.0,
        reconnect_window:      float = 10.0,
        location_log_interval: float = 2.5,
        auto_request_location: bool  = True,
        motion_detection:      bool  = True,
    ):
        self.scheduler       = scheduler
        self.position_source = position_source
        self.motion_source   = motion_source
        self.transport       = transport
        self.store           = store
        self.auto_request_location = auto_request_location
        self.motion_detection      = motion_detection
        self.updates_requested     = False
        self.closed                = False

        self.dispatcher    = EventDispatcher(scheduler)
        self.authorization = AuthorizationStateMachine(position_source)
        self.activity      = ActivityClassifierAdapter(motion_source, intake=self.submit_activity)
        self.sampling      = SamplingController(position_source)
        self.pipeline      = LocationPipeline(
            position_source, self.authorization, store, scheduler,
            intake             = self.submit_fix,
            debug_log_interval = location_log_interval,
        )
        self.lifecycle = LifecycleObserver()
        self.session   = MessagingSessionManager(
            transport, scheduler, settings, identity,
            store              = store,
            heartbeat_interval = heartbeat_interval,
            deliver            = self._post_transport,
        )
        self.policy = ConnectivityPolicy(
            self.session, self.lifecycle, scheduler, window_sec=reconnect_window,
        )

        self.authorization.add_listener(self._on_authorization_transition)
        self.activity.add_listener(self.sampling.on_activity)
        self.pipeline.subscribe(self.policy.on_fix)
        self.lifecycle.add_listener(self.policy.on_lifecycle_changed)
        position_source.set_authorization_handler(self.submit_authorization)

    # ── INTAKES (any thread) ─────────────────────────────────

    def _post(self, priority: EventPriority, handler, *args, name: str = '') -> None:
        if self.closed:
            logger.debug(f"Dropping {name or handler.__name__} — coordinator shut down")
            return
        self.dispatcher.post(priority, handler, *args, name=name)

    def _post_transport(self, handler, *args) -> None:
        self._post(EventPriority.TRANSPORT, handler, *args, name='transport')

    def submit_authorization(self, state) -> None:
        self._post(EventPriority.AUTHORIZATION, self.authorization.on_authorization_changed,
                   AuthorizationState(state), name='authorization')

    def submit_activity(self, activity: MotionActivity) -> None:
        self._post(EventPriority.ACTIVITY, self.activity.on_activity, activity, name='activity')

    def submit_category(self, category) -> None:
        self._post(EventPriority.ACTIVITY, self.activity.on_category,
                   ActivityCategory(category), name='activity')

    def submit_fix(self, fix: PositionFix) -> None:
        self._post(EventPriority.LOCATION, self.pipeline.on_fix_received, fix, name='fix')

    def submit_fixes(self, fixes: Sequence[PositionFix]) -> None:
        self._post(EventPriority.LOCATION, self.pipeline.on_fixes_received, list(fixes), name='fixes')

    def submit_lifecycle(self, phase) -> None:
        self._post(EventPriority.LIFECYCLE, self.lifecycle.on_phase_changed,
                   LifecyclePhase(phase), name='lifecycle')

    def request_location_updates(self) -> None:
        self._post(EventPriority.AUTHORIZATION, self._request_location_updates, name='request-location')

    def stop_location_updates(self) -> None:
        self._post(EventPriority.AUTHORIZATION, self._stop_location_updates, name='stop-location')

    def set_motion_detection(self, enabled: bool) -> None:
        handler = self.activity.start if enabled else self.activity.stop
        self._post(EventPriority.ACTIVITY, handler, name='motion-detection')

    # ── LIFETIME ─────────────────────────────────────────────

    def start(self) -> None:
        """Read the initial OS state and kick off configured startup requests."""
        self.submit_authorization(self.position_source.authorization_status())
        if self.motion_detection:
            self.set_motion_detection(True)
        if self.auto_request_location:
            self.request_location_updates()

    def shutdown(self) -> None:
        """Cancel every owned timer and OS subscription. Call on the dispatcher's context."""
        if self.closed:
            return
        self.closed = True
        self.dispatcher.close()
        self.pipeline.stop()
        self.activity.stop()
        self.policy.shutdown()
        self.session.disconnect()
        self.position_source.set_authorization_handler(None)
        logger.info("Coordinator shut down")

    # ── HANDLERS ─────────────────────────────────────────────

    def _request_location_updates(self) -> None:
        self.updates_requested = True
        prompted = self.authorization.request_permission()
        if self.authorization.is_granted:
            self._start_pipeline()
        elif not prompted:
            logger.warning(
                f"Location updates requested but permission is "
                f"'{self.authorization.state.value}' — change it in Settings"
            )

    def _stop_location_updates(self) -> None:
        self.updates_requested = False
        self.pipeline.stop()

    def _on_authorization_transition(self, previous: AuthorizationState, current: AuthorizationState) -> None:
        if is_granted(current) and not is_granted(previous):
            if self.updates_requested:
                self._start_pipeline()
        elif is_granted(previous) and not is_granted(current):
            self.pipeline.stop()

    def _start_pipeline(self) -> None:
        try:
            self.pipeline.start()
        except (PermissionDenied, ServiceUnavailable) as e:
            logger.warning(f"Location pipeline not started: {e}")

    # ── STATUS ───────────────────────────────────────────────

    def status(self) -> Dict[str, Any]:
        window = self.policy.window
        current = self.pipeline.current_fix
        last_known = self.pipeline.last_known_fix()
        return {
            "authorization":         self.authorization.state.value,
            "access_level":          self.authorization.access_level.value,
            "location_updates":      self.pipeline.is_running,
            "updates_requested":     self.updates_requested,
            "activity":              self.activity.current.value,
            "motion_monitoring":     self.activity.is_monitoring,
            "threshold_m":           self.sampling.threshold_m,
            "lifecycle":             self.lifecycle.phase.value,
            "connection":            self.session.state.value,
            "subscribed":            self.session.subscribed,
            "heartbeats_sent":       self.session.heartbeats_sent,
            "positions_sent":        self.session.positions_sent,
            "last_error":            str(self.session.last_error) if self.session.last_error else None,
            "reconnect_window":      {"opened_at": window[0], "deadline": window[1]} if window else None,
            "current_fix":           asdict(current) if current else None,
            "last_known_fix":        asdict(last_known) if last_known else None,
            "last_report_timestamp": self.store.load_last_report_timestamp(),
            "device_id":             self.session.identity.device_id,
        }


def build_coordinator(
    config:          Dict[str, Any],
    scheduler:       Scheduler,
    position_source: Optional[PositionSource]     = None,
    motion_source:   Optional[MotionSource]       = None,
    transport:       Optional[MessagingTransport] = None,
    store:           Optional[SqliteKeyValueStore] = None,
) -> Coordinator:
    """
    Build a Coordinator from a config dict (see pinpoint.config.DEFAULT_CONFIG).
    Collaborators default to the push-fed sources and the loopback broker.
    """
    store = store or SqliteKeyValueStore(Path(config["db_path"]))
    device_id = config.get("device_id") or store.load_or_create_device_id()

    settings = BrokerSettings(
        host           = config["broker_host"],
        port           = int(config["broker_port"]),
        username       = config.get("broker_username", ""),
        password       = config.get("broker_password", ""),
        use_tls        = bool(config.get("broker_tls", True)),
        keep_alive_sec = int(config.get("keep_alive_sec", 60)),
        auto_reconnect = bool(config.get("auto_reconnect", False)),
    )
    identity = SessionIdentity(device_id=device_id, client_id=f"pinpoint-{device_id}")

    return Coordinator(
        scheduler             = scheduler,
        position_source       = position_source or ExternalPositionSource(),
        motion_source         = motion_source or ExternalMotionSource(),
        transport             = transport or LoopbackTransport(scheduler),
        store                 = store,
        settings              = settings,
        identity              = identity,
        heartbeat_interval    = float(config["heartbeat_interval_sec"]),
        reconnect_window      = float(config["reconnect_window_sec"]),
        location_log_interval = float(config["location_log_interval_sec"]),
        auto_request_location = bool(config["auto_request_location"]),
        motion_detection      = bool(config["motion_detection"]),
    )
