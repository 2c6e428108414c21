"""
pinpoint/replay.py
Replay a recorded event trace through a full coordinator on a virtual
clock, with the loopback broker standing in for the network. Useful for
checking sampling / reconnect behaviour against a field recording without
a device.

TRACE FORMAT (JSON lines, optionally .gz; or one JSON document {"events": [...]}):
  {"t": 0.0,  "kind": "authorization", "state": "always"}
  {"t": 0.5,  "kind": "services", "enabled": false}
  {"t": 1.0,  "kind": "activity", "category": "cycling"}
  {"t": 1.0,  "kind": "activity", "automotive": true, "stationary": true}
  {"t": 2.0,  "kind": "fix", "lat": 44.97, "lon": -93.26}
  {"t": 3.0,  "kind": "lifecycle", "phase": "background"}
  {"t": 9.0,  "kind": "force_disconnect", "error": "timeout"}
  {"t": 12.0, "kind": "request_location"} / {"kind": "stop_location"}
  {"t": 15.0, "kind": "motion", "enabled": false}
t is seconds from the start of the trace.
"""

from __future__ import annotations

import gzip
import json
import logging
from dataclasses import dataclass, fields
from itertools import groupby
from pathlib import Path
from typing import Any, Dict, List, Optional

from pinpoint.activity import sample_for
from pinpoint.config import DEFAULT_CONFIG
from pinpoint.coordinator import Coordinator, build_coordinator
from pinpoint.dispatch.scheduler import ManualScheduler
from pinpoint.messaging.loopback import LoopbackTransport
from pinpoint.models.state import AuthorizationState, MotionActivity, PositionFix
from pinpoint.sources.external import ExternalMotionSource, ExternalPositionSource
from pinpoint.store.sqlite_store import SqliteKeyValueStore

logger = logging.getLogger(__name__)

EVENT_KINDS = {
    "authorization", "services", "activity", "fix", "lifecycle",
    "force_disconnect", "request_location", "stop_location", "motion",
}

_MOTION_FLAGS = {f.name for f in fields(MotionActivity)} - {"confidence", "timestamp"}


@dataclass
class ReplayEvent:
    t:       float
    kind:    str
    payload: Dict[str, Any]


@dataclass
class ReplaySummary:
    events:            int
    duration_sec:      float
    fixes_delivered:   int
    fixes_suppressed:  int
    fixes_accepted:    int
    fixes_rejected:    int
    connect_attempts:  int
    heartbeats_sent:   int
    positions_sent:    int
    windows_opened:    int
    windows_expired:   int
    final_connection:  str
    final_threshold_m: int
    last_known_fix:    Optional[PositionFix]


def load_trace(path: Path) -> List[Dict[str, Any]]:
    path = Path(path)
    opener = gzip.open if path.suffix == ".gz" else open
    with opener(path, "rt", encoding="utf-8") as handle:
        text = handle.read()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return [json.loads(line) for line in text.splitlines() if line.strip()]
    if isinstance(data, dict):
        return list(data["events"]) if "events" in data else [data]
    return list(data)


def build_events(raw: List[Dict[str, Any]]) -> List[ReplayEvent]:
    events: List[ReplayEvent] = []
    for i, item in enumerate(raw):
        kind = item.get("kind")
        t = item.get("t")
        if kind not in EVENT_KINDS:
            logger.warning(f"Trace event {i}: unknown kind {kind!r} — skipped")
            continue
        if t is None:
            logger.warning(f"Trace event {i}: missing 't' — skipped")
            continue
        payload = {k: v for k, v in item.items() if k not in ("t", "kind")}
        events.append(ReplayEvent(float(t), kind, payload))
    # Stable sort keeps recorded order for events sharing a timestamp
    events.sort(key=lambda e: e.t)
    return events


def _apply(
    event:       ReplayEvent,
    coordinator: Coordinator,
    position:    ExternalPositionSource,
    motion:      ExternalMotionSource,
    transport:   LoopbackTransport,
    now:         float,
) -> None:
    p = event.payload
    if event.kind == "authorization":
        position.report_authorization(AuthorizationState(p["state"]))
    elif event.kind == "services":
        restored = AuthorizationState(p.get("restored", AuthorizationState.UNDETERMINED.value))
        position.report_services(bool(p["enabled"]), restored)
    elif event.kind == "activity":
        confidence = p.get("confidence", "low")
        if "category" in p:
            motion.push_activity(sample_for(p["category"], confidence, now))
        else:
            flags = {k: bool(v) for k, v in p.items() if k in _MOTION_FLAGS}
            motion.push_activity(MotionActivity(confidence=confidence, timestamp=now, **flags))
    elif event.kind == "fix":
        position.push_fix(PositionFix(float(p["lat"]), float(p["lon"]), float(p.get("ts", now))))
    elif event.kind == "lifecycle":
        coordinator.submit_lifecycle(p["phase"])
    elif event.kind == "force_disconnect":
        transport.force_disconnect(p.get("error", "connection reset by peer"))
    elif event.kind == "request_location":
        coordinator.request_location_updates()
    elif event.kind == "stop_location":
        coordinator.stop_location_updates()
    elif event.kind == "motion":
        coordinator.set_motion_detection(bool(p.get("enabled", True)))


def replay_events(
    events:  List[ReplayEvent],
    db_path: Path,
    config:  Optional[Dict[str, Any]] = None,
    tail:    float = 30.0,
    latency: float = 0.05,
) -> ReplaySummary:
    """
    Feed events through a fresh coordinator. tail = virtual seconds to keep
    running after the last event so pending windows / heartbeats play out.
    """
    config = {**DEFAULT_CONFIG, **(config or {}), "db_path": str(db_path)}
    scheduler = ManualScheduler()
    position  = ExternalPositionSource()
    motion    = ExternalMotionSource()
    transport = LoopbackTransport(scheduler, latency=latency)
    coordinator = build_coordinator(
        config, scheduler,
        position_source = position,
        motion_source   = motion,
        transport       = transport,
        store           = SqliteKeyValueStore(Path(db_path)),
    )

    coordinator.start()
    scheduler.run_pending()
    # Events sharing a timestamp are pushed together and land in one dispatcher tick
    for t, group in groupby(events, key=lambda e: e.t):
        scheduler.advance_to(t)
        for event in group:
            try:
                _apply(event, coordinator, position, motion, transport, scheduler.now())
            except (KeyError, ValueError) as e:
                logger.warning(f"Trace event at t={event.t} ({event.kind}) ignored: {e}")
        scheduler.run_pending()
    scheduler.advance(tail)

    summary = ReplaySummary(
        events            = len(events),
        duration_sec      = scheduler.now(),
        fixes_delivered   = position.delivered,
        fixes_suppressed  = position.suppressed,
        fixes_accepted    = coordinator.pipeline.accepted,
        fixes_rejected    = coordinator.pipeline.rejected,
        connect_attempts  = coordinator.session.connect_attempts,
        heartbeats_sent   = coordinator.session.heartbeats_sent,
        positions_sent    = coordinator.session.positions_sent,
        windows_opened    = coordinator.policy.windows_opened,
        windows_expired   = coordinator.policy.windows_expired,
        final_connection  = coordinator.session.state.value,
        final_threshold_m = coordinator.sampling.threshold_m,
        last_known_fix    = coordinator.pipeline.last_known_fix(),
    )
    coordinator.shutdown()
    scheduler.run_pending()
    logger.info(f"Replay complete: {summary}")
    return summary


def replay_file(
    trace_path: Path,
    db_path:    Path,
    config:     Optional[Dict[str, Any]] = None,
    tail:       float = 30.0,
) -> ReplaySummary:
    return replay_events(build_events(load_trace(trace_path)), db_path, config=config, tail=tail)
