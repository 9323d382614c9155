"""
Event logging utilities for NDJSON format.
"""

import json
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .state import get_run_dir


EventCallback = Callable[[str, Dict[str, Any]], None]


class EventTypes:
    DEPLOY_START = "DEPLOY_START"
    DEPLOY_STEP = "DEPLOY_STEP"
    DEPLOY_SENT = "DEPLOY_SENT"
    VERIFY_ATTEMPT = "VERIFY_ATTEMPT"
    VERIFY_RUNNING = "VERIFY_RUNNING"
    SERVICE_DID_NOT_START = "SERVICE_DID_NOT_START"
    SERVICE_LOGS = "SERVICE_LOGS"
    HEALTH_OK = "HEALTH_OK"
    HEALTH_DEGRADED = "HEALTH_DEGRADED"
    HEALTH_WARN = "HEALTH_WARN"
    EXTERNAL_PROBE = "EXTERNAL_PROBE"
    STABILITY_WARN = "STABILITY_WARN"
    DONE = "DONE"
    ERROR = "ERROR"


# Last-event type to run status
_STATUS_MAP = {
    EventTypes.DEPLOY_START: "deploying",
    EventTypes.DEPLOY_STEP: "deploying",
    EventTypes.DEPLOY_SENT: "verifying",
    EventTypes.VERIFY_ATTEMPT: "verifying",
    EventTypes.VERIFY_RUNNING: "verifying",
    EventTypes.SERVICE_LOGS: "verifying",
    EventTypes.HEALTH_OK: "verifying",
    EventTypes.HEALTH_DEGRADED: "verifying",
    EventTypes.HEALTH_WARN: "verifying",
    EventTypes.EXTERNAL_PROBE: "verifying",
    EventTypes.STABILITY_WARN: "verifying",
    EventTypes.SERVICE_DID_NOT_START: "failed",
    EventTypes.ERROR: "failed",
    EventTypes.DONE: "healthy",
}


def emit_event(run_id: str, event_type: str, data: Dict[str, Any]) -> None:
    """
    Append an event to the run's events.ndjson file.

    Args:
        run_id: Run ID
        event_type: Event type (e.g., "VERIFY_ATTEMPT", "DONE")
        data: Event data
    """
    event = {
        "ts": datetime.now().isoformat(),
        "type": event_type,
        "data": data,
    }

    with open(get_run_dir(run_id) / "events.ndjson", "a") as f:
        f.write(json.dumps(event) + "\n")
        f.flush()


def event_recorder(run_id: str) -> EventCallback:
    """Return a callback that writes events for the given run."""
    def record(event_type: str, data: Dict[str, Any]) -> None:
        emit_event(run_id, event_type, data)
    return record


def read_events(run_id: str) -> list[Dict[str, Any]]:
    """
    Read all events from a run's events.ndjson file.

    Returns:
        List of events, skipping malformed lines
    """
    events_file = get_run_dir(run_id) / "events.ndjson"
    if not events_file.exists():
        return []

    events = []
    with open(events_file, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                continue

    return events


def get_last_event(run_id: str) -> Optional[Dict[str, Any]]:
    events = read_events(run_id)
    return events[-1] if events else None


def get_status_from_events(run_id: str) -> str:
    """
    Determine run status from its last event.

    Returns:
        One of "deploying", "verifying", "healthy", "failed" or "unknown"
    """
    last_event = get_last_event(run_id)
    if not last_event:
        return "unknown"

    return _STATUS_MAP.get(last_event.get("type", ""), "unknown")
